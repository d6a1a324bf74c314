from datetime import datetime
from decimal import Decimal

from beanie import DecimalAnnotation, Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class StakingAccount(Document):
    """One per (user_id, currency); balances mutated only by the staking ledger service."""
    user_id: str
    currency: str = "IPG"
    # stored as Decimal128
    available_balance: DecimalAnnotation = Decimal("0")
    staked_balance: DecimalAnnotation = Decimal("0")
    total_rewards_earned: DecimalAnnotation = Decimal("0")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "user_staking_accounts"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("currency", ASCENDING)], unique=True),
        ]
