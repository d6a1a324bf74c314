"""Staking ledger: idempotency guard and the only code path that credits a staking balance."""

from decimal import Decimal

from pydantic import BaseModel

from app.core.exceptions import DepositError, PersistenceError
from app.core.logging import get_logger
from app.services.deposit_store import DepositLedgerRow, DepositStore
from app.services.transfers import IPG_SYMBOL

log = get_logger(__name__)

MAX_BALANCE_ATTEMPTS = 5


class CreditResult(BaseModel):
    credited_amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    ledger_entry_id: str


async def already_processed(store: DepositStore, tx_hash: str) -> bool:
    """True if a deposit ledger row exists for tx_hash."""
    return await store.has_deposit(tx_hash)


async def credit(
    store: DepositStore,
    user_id: str,
    amount: Decimal,
    tx_hash: str,
    from_address: str,
    currency: str = IPG_SYMBOL,
) -> CreditResult:
    """
    Add amount to the user's available balance and append the deposit ledger row.

    The balance moves by compare-and-set on its previous value, re-read on conflict.
    If the ledger append then fails the increment is reversed, so callers see either
    a full credit or none. A DuplicateTransactionError means another invocation
    recorded the same tx_hash first.
    """
    if amount <= 0:
        raise ValueError("Deposit amount must be positive")
    account = await store.get_or_create_account(user_id, currency)
    for attempt in range(1, MAX_BALANCE_ATTEMPTS + 1):
        balance_before = account.available_balance
        balance_after = balance_before + amount
        if await store.compare_and_set_balance(account.id, balance_before, balance_after):
            break
        log.warning("balance_cas_conflict", account_id=account.id, tx_hash=tx_hash, attempt=attempt)
        account = await store.get_account(account.id)
        if account is None:
            raise PersistenceError("Staking account disappeared", tx_hash=tx_hash)
    else:
        raise PersistenceError("Balance kept changing concurrently", tx_hash=tx_hash)

    row = DepositLedgerRow(
        user_id=user_id,
        staking_account_id=account.id,
        amount=amount,
        currency=currency,
        balance_before=balance_before,
        balance_after=balance_after,
        tx_hash=tx_hash,
        notes=f"Deposit from {from_address}",
    )
    try:
        entry_id = await store.insert_ledger_entry(row)
    except DepositError as e:
        log.warning("credit_reverted", account_id=account.id, tx_hash=tx_hash, reason=e.message)
        try:
            await store.increment_balance(account.id, -amount)
        except PersistenceError:
            log.critical("credit_revert_failed", account_id=account.id, tx_hash=tx_hash, amount=str(amount))
            raise
        raise

    log.info(
        "deposit_credited",
        user_id=user_id,
        tx_hash=tx_hash,
        amount=str(amount),
        balance_after=str(balance_after),
    )
    return CreditResult(
        credited_amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        ledger_entry_id=entry_id,
    )
