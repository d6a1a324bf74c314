from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_deposit_monitor
from app.services.deposit_monitor import DepositMonitor, ManualDeposit, ManualResult, ScanResult

router = APIRouter()


class DepositMonitorRequest(BaseModel):
    user_id: str | None = None
    tx_hash: str | None = None
    amount: Decimal | None = None
    from_address: str | None = None
    contract_address: str | None = None

    @property
    def is_manual(self) -> bool:
        return self.tx_hash is not None and self.amount is not None and self.from_address is not None


@router.post(
    "/deposit-monitor",
    response_model=ScanResult | ManualResult,
    response_model_exclude_none=True,
)
async def deposit_monitor(
    body: DepositMonitorRequest | None = None,
    monitor: DepositMonitor = Depends(get_deposit_monitor),
):
    """Scan for new IPG deposits, or credit one transaction when tx_hash, amount and from_address are given."""
    body = body or DepositMonitorRequest()
    if body.is_manual:
        return await monitor.recover(
            ManualDeposit(
                tx_hash=body.tx_hash,
                amount=body.amount,
                from_address=body.from_address,
                contract_address=body.contract_address,
                user_id=body.user_id,
            )
        )
    return await monitor.scan(user_id=body.user_id)
