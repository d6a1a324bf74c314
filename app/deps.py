"""Shared FastAPI dependencies. Everything here is built per request."""

from typing import AsyncIterator

import httpx
from fastapi import Depends

from app.core.config import Settings, get_settings
from app.services.chain_adapters import ChainAdapter, IndexerAdapter, RpcLogAdapter
from app.services.deposit_monitor import DepositMonitor
from app.services.deposit_store import DepositStore, MongoDepositStore


def get_deposit_store() -> DepositStore:
    return MongoDepositStore()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=get_settings().http_timeout_seconds) as client:
        yield client


def build_adapters(http: httpx.AsyncClient, settings: Settings) -> list[ChainAdapter]:
    """Chain adapters in priority order: indexer, then RPC fallback."""
    return [
        IndexerAdapter(
            http,
            api_url=settings.bscscan_api_url,
            api_key=settings.bscscan_api_key,
            page_size=settings.indexer_page_size,
        ),
        RpcLogAdapter(
            http,
            rpc_urls=settings.bsc_rpc_urls,
            lookback_blocks=settings.rpc_fallback_blocks,
        ),
    ]


async def get_deposit_monitor(
    store: DepositStore = Depends(get_deposit_store),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> DepositMonitor:
    return DepositMonitor(store, build_adapters(http, get_settings()))
