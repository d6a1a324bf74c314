"""
Staking deposit monitor: credits IPG transfers into the hot wallet exactly once.

Scan mode pulls recent transfers from the chain adapters (indexer first, RPC only when
the indexer yields nothing) and runs each through guard -> resolver -> ledger, one at a
time. Manual recovery runs a single operator-described transfer through the same
pipeline after checking its contract against the allow-list.
"""

import re
from decimal import Decimal
from typing import Any, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import (
    AdapterError,
    AmbiguousWalletError,
    ConfigurationError,
    DepositValidationError,
    DuplicateTransactionError,
    PersistenceError,
    UnknownSenderError,
)
from app.core.logging import get_logger
from app.services.chain_adapters import ChainAdapter
from app.services.deposit_store import DepositStore
from app.services.notifications import notify_ambiguous_wallet
from app.services.sender_resolver import require_user
from app.services.staking_ledger import already_processed, credit
from app.services.transfers import IPG_CONTRACT, IPG_SYMBOL, NormalizedTransfer, check_contract

log = get_logger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

TransferState = Literal[
    "already_credited",
    "unknown_sender",
    "ambiguous",
    "user_mismatch",
    "credited",
    "credit_failed",
]


class TransferOutcome(BaseModel):
    tx_hash: str
    state: TransferState
    amount: Decimal = Decimal("0")
    user_id: str | None = None
    error: str | None = None


class ScanResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    deposited: bool
    amount: float
    count: int
    scanned: int
    used_rpc: bool = Field(alias="usedRPC")
    blocked: int = 0
    skipped: int = 0
    already_processed: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    message: str


class ManualDeposit(BaseModel):
    tx_hash: str
    amount: Decimal
    from_address: str
    contract_address: str | None = None
    user_id: str | None = None


class ManualResult(BaseModel):
    deposited: bool
    amount: float
    credited: float
    success: bool
    error: str | None = None


_MANUAL_ERRORS = {
    "unknown_sender": "Sender wallet is not registered to any user",
    "ambiguous": "Sender wallet is registered to multiple users; escalated for manual review",
    "user_mismatch": "Sender wallet does not belong to the requested user",
}


class DepositMonitor:
    def __init__(self, store: DepositStore, adapters: Sequence[ChainAdapter]) -> None:
        self._store = store
        self._adapters = list(adapters)

    async def _hot_wallet(self) -> str:
        address = await self._store.get_hot_wallet_address()
        if not address:
            log.error("staking_not_configured")
            raise ConfigurationError("Staking not configured")
        return address.strip().lower()

    async def _collect(self, hot_wallet: str) -> tuple[list[NormalizedTransfer], bool, list[dict[str, Any]]]:
        """Transfers from the first adapter that yields any; (transfers, used_fallback, errors)."""
        errors: list[dict[str, Any]] = []
        used_fallback = False
        for index, adapter in enumerate(self._adapters):
            used_fallback = index > 0
            try:
                transfers = await adapter.fetch_transfers(hot_wallet)
            except AdapterError as e:
                log.warning("adapter_failed", adapter=adapter.name, error=e.message)
                errors.append({"source": adapter.name, "error": e.message})
                continue
            if transfers:
                return transfers, used_fallback, errors
        return [], used_fallback, errors

    async def process_transfer(
        self,
        transfer: NormalizedTransfer,
        expected_user_id: str | None = None,
    ) -> TransferOutcome:
        tx_hash = transfer.tx_hash
        if await already_processed(self._store, tx_hash):
            log.info("deposit_already_processed", tx_hash=tx_hash)
            return TransferOutcome(tx_hash=tx_hash, state="already_credited")

        try:
            user_id = await require_user(self._store, transfer.from_address, tx_hash=tx_hash)
        except UnknownSenderError:
            log.info("deposit_unknown_sender", tx_hash=tx_hash, from_address=transfer.from_address)
            return TransferOutcome(tx_hash=tx_hash, state="unknown_sender")
        except AmbiguousWalletError as e:
            log.error(
                "deposit_ambiguous_wallet",
                tx_hash=tx_hash,
                from_address=transfer.from_address,
                user_ids=e.user_ids,
            )
            error = None
            try:
                await notify_ambiguous_wallet(
                    self._store, tx_hash, transfer.from_address, transfer.amount, e.user_ids
                )
            except PersistenceError as ne:
                log.error("ambiguous_wallet_notify_failed", tx_hash=tx_hash, error=ne.message)
                error = ne.message
            return TransferOutcome(tx_hash=tx_hash, state="ambiguous", error=error)

        if expected_user_id and user_id != expected_user_id:
            log.warning("deposit_user_mismatch", tx_hash=tx_hash, expected=expected_user_id, resolved=user_id)
            return TransferOutcome(tx_hash=tx_hash, state="user_mismatch", user_id=user_id)

        try:
            result = await credit(
                self._store, user_id, transfer.amount, tx_hash, transfer.from_address, currency=IPG_SYMBOL
            )
        except DuplicateTransactionError:
            log.info("deposit_recorded_concurrently", tx_hash=tx_hash)
            return TransferOutcome(tx_hash=tx_hash, state="already_credited", user_id=user_id)
        except PersistenceError as e:
            log.error("deposit_credit_failed", tx_hash=tx_hash, user_id=user_id, error=e.message)
            return TransferOutcome(tx_hash=tx_hash, state="credit_failed", user_id=user_id, error=e.message)
        return TransferOutcome(
            tx_hash=tx_hash, state="credited", amount=result.credited_amount, user_id=user_id
        )

    async def scan(self, user_id: str | None = None) -> ScanResult:
        """Scan recent chain history and credit every new deposit (optionally one user's only)."""
        hot_wallet = await self._hot_wallet()
        log.info("deposit_scan_start", hot_wallet=hot_wallet, user_id=user_id)
        transfers, used_rpc, errors = await self._collect(hot_wallet)

        if user_id:
            wallet = await self._store.get_user_wallet(user_id)
            if wallet:
                wallet = wallet.strip().lower()
                transfers = [t for t in transfers if t.from_address == wallet]

        # sequential: two transfers of one user must not race on the same balance
        outcomes = []
        for transfer in transfers:
            outcomes.append(await self.process_transfer(transfer))

        credited = [o for o in outcomes if o.state == "credited"]
        total = sum((o.amount for o in credited), Decimal("0"))
        for o in outcomes:
            if o.error:
                errors.append({"tx_hash": o.tx_hash, "error": o.error})

        if credited:
            message = f"Processed {len(credited)} deposits totaling {total} {IPG_SYMBOL}"
        elif not transfers and errors:
            message = "Chain data unavailable"
        else:
            message = "No new deposits to process"
        result = ScanResult(
            deposited=bool(credited),
            amount=float(total),
            count=len(credited),
            scanned=len(transfers),
            used_rpc=used_rpc,
            blocked=sum(1 for o in outcomes if o.state == "ambiguous"),
            skipped=sum(1 for o in outcomes if o.state == "unknown_sender"),
            already_processed=sum(1 for o in outcomes if o.state == "already_credited"),
            errors=errors,
            message=message,
        )
        log.info(
            "deposit_scan_done",
            scanned=result.scanned,
            count=result.count,
            amount=result.amount,
            blocked=result.blocked,
            used_rpc=used_rpc,
        )
        return result

    async def recover(self, request: ManualDeposit) -> ManualResult:
        """Credit one operator-described transfer with the same checks as a scan."""
        contract = (request.contract_address or IPG_CONTRACT).strip().lower()
        verdict = check_contract(contract)
        if verdict != "allowed":
            log.error("manual_deposit_contract_rejected", contract=contract, verdict=verdict, tx_hash=request.tx_hash)
            raise DepositValidationError(
                f"Contract {contract} is not permitted for staking deposits",
                details={"contract_address": contract, "reason": verdict},
            )
        if not TX_HASH_RE.match(request.tx_hash.strip()):
            raise DepositValidationError("Invalid transaction hash")
        if not ADDRESS_RE.match(request.from_address.strip()):
            raise DepositValidationError("Invalid sender address")
        if not request.amount.is_finite() or request.amount <= 0:
            raise DepositValidationError("Amount must be positive")

        transfer = NormalizedTransfer(
            tx_hash=request.tx_hash.strip().lower(),
            from_address=request.from_address.strip().lower(),
            amount=request.amount,
        )
        log.info("manual_deposit_start", tx_hash=transfer.tx_hash, user_id=request.user_id)
        outcome = await self.process_transfer(transfer, expected_user_id=request.user_id)

        if outcome.state == "credited":
            return ManualResult(
                deposited=True, amount=float(request.amount), credited=float(outcome.amount), success=True
            )
        if outcome.state == "already_credited":
            return ManualResult(deposited=False, amount=float(request.amount), credited=0.0, success=True)
        return ManualResult(
            deposited=False,
            amount=float(request.amount),
            credited=0.0,
            success=False,
            error=outcome.error if outcome.state == "credit_failed" else _MANUAL_ERRORS[outcome.state],
        )
