"""
Storage access for the deposit pipeline.

The monitor only talks to a DepositStore, constructed per invocation. MongoDepositStore
is the Beanie implementation; balance writes are conditional and the deposit tx_hash
is protected by a unique partial index, so concurrent invocations cannot double-credit.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any

from beanie import PydanticObjectId
from bson import Decimal128
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import DuplicateTransactionError, PersistenceError
from app.models.admin_notification import AdminNotification
from app.models.profile import Profile
from app.models.staking_account import StakingAccount
from app.models.staking_config import StakingConfig
from app.models.staking_ledger import StakingLedgerEntry


class AccountState(BaseModel):
    id: str
    user_id: str
    currency: str
    available_balance: Decimal


class DepositLedgerRow(BaseModel):
    user_id: str
    staking_account_id: str
    tx_type: str = "deposit"
    amount: Decimal
    fee_amount: Decimal = Decimal("0")
    currency: str
    balance_before: Decimal
    balance_after: Decimal
    tx_hash: str
    notes: str | None = None


class Notification(BaseModel):
    title: str
    message: str
    type: str
    priority: str = "normal"
    metadata: dict[str, Any] = Field(default_factory=dict)


class DepositStore(ABC):
    @abstractmethod
    async def get_hot_wallet_address(self) -> str | None:
        ...

    @abstractmethod
    async def get_user_wallet(self, user_id: str) -> str | None:
        """Wallet on the user's profile (BSC column preferred)."""

    @abstractmethod
    async def find_wallet_owners(self, address: str) -> list[str]:
        """user_id of every profile row holding address in either wallet column (case-insensitive)."""

    @abstractmethod
    async def has_deposit(self, tx_hash: str) -> bool:
        ...

    @abstractmethod
    async def get_or_create_account(self, user_id: str, currency: str) -> AccountState:
        ...

    @abstractmethod
    async def get_account(self, account_id: str) -> AccountState | None:
        ...

    @abstractmethod
    async def compare_and_set_balance(self, account_id: str, expected: Decimal, new: Decimal) -> bool:
        """Set available_balance to new only if it still equals expected."""

    @abstractmethod
    async def increment_balance(self, account_id: str, delta: Decimal) -> None:
        ...

    @abstractmethod
    async def insert_ledger_entry(self, row: DepositLedgerRow) -> str:
        """Append a ledger row; DuplicateTransactionError if tx_hash is already recorded."""

    @abstractmethod
    async def insert_notification(self, notification: Notification) -> None:
        ...


def _account_state(account: StakingAccount) -> AccountState:
    return AccountState(
        id=str(account.id),
        user_id=account.user_id,
        currency=account.currency,
        available_balance=account.available_balance,
    )


class MongoDepositStore(DepositStore):
    """Beanie-backed store; requires init_db() to have run."""

    async def get_hot_wallet_address(self) -> str | None:
        config = await StakingConfig.find_one()
        return config.admin_hot_wallet_address if config else None

    async def get_user_wallet(self, user_id: str) -> str | None:
        profile = await Profile.find_one(Profile.user_id == user_id)
        if not profile:
            return None
        return profile.bsc_wallet_address or profile.wallet_address or None

    async def find_wallet_owners(self, address: str) -> list[str]:
        pattern = {"$regex": f"^{re.escape(address)}$", "$options": "i"}
        profiles = await Profile.find(
            {"$or": [{"bsc_wallet_address": pattern}, {"wallet_address": pattern}]}
        ).to_list()
        return [p.user_id for p in profiles]

    async def has_deposit(self, tx_hash: str) -> bool:
        existing = await StakingLedgerEntry.find_one(
            StakingLedgerEntry.tx_hash == tx_hash,
            StakingLedgerEntry.tx_type == "deposit",
        )
        return existing is not None

    async def get_or_create_account(self, user_id: str, currency: str) -> AccountState:
        query = (StakingAccount.user_id == user_id, StakingAccount.currency == currency)
        try:
            account = await StakingAccount.find_one(*query)
            if account is None:
                account = StakingAccount(user_id=user_id, currency=currency)
                try:
                    await account.insert()
                except DuplicateKeyError:
                    # created by a concurrent invocation
                    account = await StakingAccount.find_one(*query)
        except PyMongoError as e:
            raise PersistenceError(f"Could not load staking account: {e}") from e
        if account is None:
            raise PersistenceError("Staking account vanished after creation")
        return _account_state(account)

    async def get_account(self, account_id: str) -> AccountState | None:
        try:
            account = await StakingAccount.get(PydanticObjectId(account_id))
        except PyMongoError as e:
            raise PersistenceError(f"Could not load staking account: {e}") from e
        return _account_state(account) if account else None

    async def compare_and_set_balance(self, account_id: str, expected: Decimal, new: Decimal) -> bool:
        try:
            result = await StakingAccount.get_motor_collection().update_one(
                {"_id": PydanticObjectId(account_id), "available_balance": Decimal128(str(expected))},
                {"$set": {"available_balance": Decimal128(str(new)), "updated_at": datetime.utcnow()}},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Balance update failed: {e}") from e
        return result.modified_count == 1

    async def increment_balance(self, account_id: str, delta: Decimal) -> None:
        try:
            await StakingAccount.get_motor_collection().update_one(
                {"_id": PydanticObjectId(account_id)},
                {
                    "$inc": {"available_balance": Decimal128(str(delta))},
                    "$set": {"updated_at": datetime.utcnow()},
                },
            )
        except PyMongoError as e:
            raise PersistenceError(f"Balance adjustment failed: {e}") from e

    async def insert_ledger_entry(self, row: DepositLedgerRow) -> str:
        entry = StakingLedgerEntry(
            **row.model_dump(exclude={"staking_account_id"}),
            staking_account_id=PydanticObjectId(row.staking_account_id),
        )
        try:
            await entry.insert()
        except DuplicateKeyError as e:
            raise DuplicateTransactionError(row.tx_hash) from e
        except PyMongoError as e:
            raise PersistenceError(f"Ledger insert failed: {e}", tx_hash=row.tx_hash) from e
        return str(entry.id)

    async def insert_notification(self, notification: Notification) -> None:
        try:
            await AdminNotification(**notification.model_dump()).insert()
        except PyMongoError as e:
            raise PersistenceError(f"Notification insert failed: {e}") from e
