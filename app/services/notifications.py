"""Admin notifications for deposits that need a human decision."""

from decimal import Decimal

from app.core.logging import get_logger
from app.services.deposit_store import DepositStore, Notification
from app.services.transfers import IPG_SYMBOL

log = get_logger(__name__)

AMBIGUOUS_WALLET_TYPE = "staking_deposit_blocked"


async def notify_ambiguous_wallet(
    store: DepositStore,
    tx_hash: str,
    from_address: str,
    amount: Decimal,
    user_ids: list[str],
    currency: str = IPG_SYMBOL,
) -> None:
    """One critical notification per blocked transfer, listing every candidate owner."""
    await store.insert_notification(
        Notification(
            title="Staking deposit blocked: wallet shared by multiple users",
            message=(
                f"Deposit of {amount} {currency} (tx {tx_hash}) from {from_address} was not credited: "
                f"the address is registered to {len(user_ids)} users ({', '.join(user_ids)}). "
                "Fix the profile wallets, then re-run manual recovery for this transaction."
            ),
            type=AMBIGUOUS_WALLET_TYPE,
            priority="critical",
            metadata={
                "reason": "ambiguous_wallet",
                "tx_hash": tx_hash,
                "from_address": from_address,
                "amount": str(amount),
                "currency": currency,
                "user_ids": list(user_ids),
            },
        )
    )
    log.info("ambiguous_wallet_notified", tx_hash=tx_hash, user_ids=user_ids)
