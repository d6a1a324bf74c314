"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

import asyncio

from arq.cron import cron
from arq.worker import Worker

from app.core.config import get_settings
from app.worker.tasks import get_redis_settings, scan_staking_deposits, shutdown, startup


def scan_minutes(interval: int) -> set[int]:
    interval = min(max(1, interval), 60)
    return set(range(0, 60, interval))


async def main():
    worker = Worker(
        functions=[scan_staking_deposits],
        cron_jobs=[
            cron(
                scan_staking_deposits,
                minute=scan_minutes(get_settings().staking_scan_interval_minutes),
                second=0,
                unique=True,
            ),
        ],
        redis_settings=get_redis_settings(),
        on_startup=startup,
        on_shutdown=shutdown,
    )
    try:
        await worker.async_run()
    finally:
        await worker.close()


if __name__ == "__main__":
    asyncio.run(main())
