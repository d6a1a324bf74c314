"""
Sources of IPG transfers into the staking hot wallet.

Two implementations of one interface, tried in priority order by the deposit monitor:
- IndexerAdapter: BscScan `tokentx`, amounts scaled by the reported token decimals.
- RpcLogAdapter: raw `eth_getLogs` over a bounded window of recent blocks.

Both apply the contract allow-list and deny-list themselves; nothing downstream
sees a transfer of any other token.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

import httpx
from pydantic import ValidationError

from app.core.exceptions import AdapterError
from app.core.logging import get_logger
from app.services.transfers import (
    IPG_CONTRACT,
    TRANSFER_EVENT_TOPIC,
    IndexerTokenTransfer,
    NormalizedTransfer,
    RpcTransferLog,
    check_contract,
    normalize_indexer_transfer,
    normalize_rpc_log,
    pad_address_topic,
    topic_to_address,
)

log = get_logger(__name__)

RawT = TypeVar("RawT")

MAX_LOOKBACK_BLOCKS = 5000
DECIMALS_SELECTOR = "0x313ce567"  # decimals()


class ChainAdapter(ABC, Generic[RawT]):
    name: str

    @abstractmethod
    async def fetch_raw(self, hot_wallet: str) -> list[RawT]:
        """Fetch raw transfer records; raise AdapterError on transport failure."""

    @abstractmethod
    def normalize(self, raw: list[RawT], hot_wallet: str) -> list[NormalizedTransfer]:
        """Drop non-creditable records and convert the rest."""

    async def fetch_transfers(self, hot_wallet: str) -> list[NormalizedTransfer]:
        hot_wallet = hot_wallet.lower()
        raw = await self.fetch_raw(hot_wallet)
        transfers = []
        for t in self.normalize(raw, hot_wallet):
            # zero-value transfers (address poisoning spam) carry nothing to credit
            if t.amount <= 0:
                log.info("zero_value_transfer_ignored", adapter=self.name, tx_hash=t.tx_hash)
                continue
            transfers.append(t)
        log.info("adapter_transfers", adapter=self.name, raw=len(raw), accepted=len(transfers))
        return transfers

    def _is_creditable(self, tx_hash: str, contract: str | None, to: str, hot_wallet: str) -> bool:
        verdict = check_contract(contract)
        if verdict == "forbidden":
            log.error("forbidden_contract_blocked", adapter=self.name, tx_hash=tx_hash, contract=contract)
            return False
        if verdict == "unrecognized":
            log.warning("non_ipg_contract_blocked", adapter=self.name, tx_hash=tx_hash, contract=contract)
            return False
        return to.lower() == hot_wallet


class IndexerAdapter(ChainAdapter[IndexerTokenTransfer]):
    name = "bscscan"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_url: str,
        api_key: str = "",
        page_size: int = 200,
    ) -> None:
        self._http = http
        self._api_url = api_url
        self._api_key = api_key
        self._page_size = page_size

    async def fetch_raw(self, hot_wallet: str) -> list[IndexerTokenTransfer]:
        params = {
            "module": "account",
            "action": "tokentx",
            "contractaddress": IPG_CONTRACT,
            "address": hot_wallet,
            "page": 1,
            "offset": self._page_size,
            "sort": "desc",
            "apikey": self._api_key,
        }
        try:
            resp = await self._http.get(self._api_url, params=params)
        except httpx.HTTPError as e:
            raise AdapterError("Indexer request failed", adapter=self.name, original_error=e) from e
        if resp.status_code != 200:
            log.warning("indexer_bad_status", status_code=resp.status_code)
            return []
        try:
            data = resp.json()
        except ValueError as e:
            raise AdapterError("Indexer returned invalid JSON", adapter=self.name, original_error=e) from e
        if not isinstance(data, dict):
            log.warning("indexer_unexpected_body")
            return []
        result = data.get("result")
        if data.get("status") != "1" or not isinstance(result, list):
            # "No transactions found" is reported as status 0
            log.info("indexer_no_transactions", message=data.get("message"))
            return []
        records = []
        for item in result:
            try:
                records.append(IndexerTokenTransfer.model_validate(item))
            except ValidationError as e:
                log.warning("indexer_record_invalid", record=item, errors=e.error_count())
        return records

    def normalize(self, raw: list[IndexerTokenTransfer], hot_wallet: str) -> list[NormalizedTransfer]:
        return [
            normalize_indexer_transfer(r)
            for r in raw
            if self._is_creditable(r.hash, r.contract_address, r.to, hot_wallet)
        ]


class RpcLogAdapter(ChainAdapter[RpcTransferLog]):
    name = "rpc"

    def __init__(
        self,
        http: httpx.AsyncClient,
        rpc_urls: list[str],
        lookback_blocks: int = 2400,
    ) -> None:
        if not rpc_urls:
            raise ValueError("At least one RPC URL is required")
        self._http = http
        self._rpc_urls = rpc_urls
        self._lookback_blocks = min(max(1, lookback_blocks), MAX_LOOKBACK_BLOCKS)
        self._decimals: int | None = None

    async def _call(self, method: str, params: list[Any]) -> Any:
        """JSON-RPC call, trying each endpoint in order."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        last_error: Exception | None = None
        for url in self._rpc_urls:
            try:
                resp = await self._http.post(url, json=payload)
                resp.raise_for_status()
                body = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                log.warning("rpc_call_failed", url=url, method=method, error=str(e))
                continue
            if not isinstance(body, dict):
                last_error = ValueError(f"unexpected JSON-RPC body: {body!r}")
                log.warning("rpc_call_bad_body", url=url, method=method)
                continue
            if body.get("error"):
                last_error = RuntimeError(str(body["error"]))
                log.warning("rpc_call_error", url=url, method=method, error=body["error"])
                continue
            return body.get("result")
        raise AdapterError(f"{method} failed on all RPC endpoints", adapter=self.name, original_error=last_error)

    def _hex_quantity(self, value: Any, what: str) -> int:
        try:
            return int(value, 16)
        except (TypeError, ValueError) as e:
            raise AdapterError(
                f"{what} returned malformed data: {value!r}", adapter=self.name, original_error=e
            ) from e

    async def token_decimals(self) -> int:
        if self._decimals is None:
            out = await self._call("eth_call", [{"to": IPG_CONTRACT, "data": DECIMALS_SELECTOR}, "latest"])
            if not isinstance(out, str) or out in ("", "0x"):
                raise AdapterError("Token decimals() returned no data", adapter=self.name)
            self._decimals = self._hex_quantity(out, "decimals()")
        return self._decimals

    async def fetch_raw(self, hot_wallet: str) -> list[RpcTransferLog]:
        height = self._hex_quantity(await self._call("eth_blockNumber", []), "eth_blockNumber")
        from_block = max(1, height - self._lookback_blocks)
        log.info("rpc_scan_window", from_block=from_block, to_block=height)
        logs = await self._call("eth_getLogs", [{
            "fromBlock": hex(from_block),
            "toBlock": "latest",
            "address": IPG_CONTRACT,
            "topics": [TRANSFER_EVENT_TOPIC, None, pad_address_topic(hot_wallet)],
        }])
        if logs is None:
            logs = []
        if not isinstance(logs, list):
            raise AdapterError("eth_getLogs returned a non-list result", adapter=self.name)
        records = []
        for item in logs:
            try:
                records.append(RpcTransferLog.model_validate(item))
            except ValidationError as e:
                log.warning("rpc_log_invalid", record=item, errors=e.error_count())
        if records:
            await self.token_decimals()
        return records

    def normalize(self, raw: list[RpcTransferLog], hot_wallet: str) -> list[NormalizedTransfer]:
        out = []
        for entry in raw:
            topics = entry.topics
            if len(topics) < 3 or topics[0].lower() != TRANSFER_EVENT_TOPIC:
                continue
            # a log without an emitting address cannot be tied to the allow-listed token
            if not self._is_creditable(entry.transaction_hash, entry.address, topic_to_address(topics[2]), hot_wallet):
                continue
            out.append(normalize_rpc_log(entry, self._decimals))
        return out
