"""Cron: scheduled staking deposit scan."""

import httpx

from app.core.config import get_settings
from app.core.exceptions import ConfigurationError
from app.core.logging import get_logger
from app.db.init import init_db
from app.deps import build_adapters
from app.services.deposit_monitor import DepositMonitor, ScanResult
from app.services.deposit_store import MongoDepositStore

log = get_logger(__name__)


async def run_staking_deposit_scan(user_id: str | None = None) -> ScanResult | None:
    """One scan with a fresh store and HTTP client. Returns None when staking is not configured."""
    await init_db()
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        monitor = DepositMonitor(MongoDepositStore(), build_adapters(http, settings))
        try:
            result = await monitor.scan(user_id=user_id)
        except ConfigurationError as e:
            log.error("staking_scan_skipped", reason=e.message)
            return None
    if result.errors:
        log.warning("staking_scan_errors", errors=result.errors)
    return result
