from datetime import datetime
from decimal import Decimal

from beanie import DecimalAnnotation, Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel


class StakingLedgerEntry(Document):
    user_id: str
    staking_account_id: PydanticObjectId
    tx_type: str  # deposit, stake, unstake, reward, withdrawal
    amount: DecimalAnnotation
    fee_amount: DecimalAnnotation = Decimal("0")
    currency: str = "IPG"
    balance_before: DecimalAnnotation
    balance_after: DecimalAnnotation
    tx_hash: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "crypto_staking_ledger"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)]),
            # one deposit row per on-chain transaction, enforced by the database
            IndexModel(
                [("tx_hash", ASCENDING)],
                name="uniq_deposit_tx_hash",
                unique=True,
                partialFilterExpression={"tx_type": "deposit"},
            ),
        ]
