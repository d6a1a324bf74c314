import json
import os
from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "staking_test")
os.environ.setdefault("BSCSCAN_API_URL", "https://indexer.test/api")
os.environ.setdefault("BSC_RPC_URLS", "https://rpc-1.test,https://rpc-2.test")

from app.core.exceptions import DuplicateTransactionError, PersistenceError  # noqa: E402
from app.services.deposit_store import (  # noqa: E402
    AccountState,
    DepositLedgerRow,
    DepositStore,
    Notification,
)
from app.services.transfers import IPG_CONTRACT, TRANSFER_EVENT_TOPIC, pad_address_topic  # noqa: E402

HOT_WALLET = "0x" + "ab" * 20
WALLET_A = "0x" + "aa" * 20
WALLET_B = "0x" + "bb" * 20
STRANGER = "0x" + "cc" * 20
INDEXER_URL = "https://indexer.test/api"
RPC_URLS = ["https://rpc-1.test", "https://rpc-2.test"]


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def indexer_record(
    tx_hash: str,
    sender: str,
    amount: str,
    to: str = HOT_WALLET,
    contract: str = IPG_CONTRACT,
    decimals: int = 18,
) -> dict:
    return {
        "hash": tx_hash,
        "from": sender,
        "to": to,
        "value": str(int(Decimal(amount) * 10**decimals)),
        "tokenDecimal": str(decimals),
        "contractAddress": contract,
        "tokenSymbol": "IPG",
    }


def rpc_log(
    tx_hash: str,
    sender: str,
    amount: str,
    to: str = HOT_WALLET,
    contract: str = IPG_CONTRACT,
    decimals: int = 18,
) -> dict:
    return {
        "transactionHash": tx_hash,
        "address": contract,
        "topics": [TRANSFER_EVENT_TOPIC, pad_address_topic(sender), pad_address_topic(to)],
        "data": hex(int(Decimal(amount) * 10**decimals)),
        "blockNumber": "0xf4240",
    }


class InMemoryDepositStore(DepositStore):
    """DepositStore test double with the same conflict semantics as the Mongo store."""

    def __init__(self, hot_wallet: str | None = HOT_WALLET):
        self.hot_wallet = hot_wallet
        self.profiles: list[dict] = []
        self.accounts: dict[str, AccountState] = {}
        self.ledger: list[DepositLedgerRow] = []
        self.notifications: list[Notification] = []
        self.owner_lookups: list[str] = []
        # failure injection
        self.fail_ledger_insert = False
        self.fail_notifications = False
        self.cas_conflicts = 0
        self.recorded_elsewhere: set[str] = set()

    def add_profile(self, user_id: str, bsc_wallet_address: str | None = None, wallet_address: str | None = None):
        self.profiles.append(
            {"user_id": user_id, "bsc_wallet_address": bsc_wallet_address, "wallet_address": wallet_address}
        )

    def balance(self, user_id: str, currency: str = "IPG") -> Decimal:
        for acc in self.accounts.values():
            if acc.user_id == user_id and acc.currency == currency:
                return acc.available_balance
        return Decimal("0")

    async def get_hot_wallet_address(self) -> str | None:
        return self.hot_wallet

    async def get_user_wallet(self, user_id: str) -> str | None:
        for p in self.profiles:
            if p["user_id"] == user_id:
                return p["bsc_wallet_address"] or p["wallet_address"] or None
        return None

    async def find_wallet_owners(self, address: str) -> list[str]:
        self.owner_lookups.append(address)
        a = address.lower()
        return [
            p["user_id"]
            for p in self.profiles
            if (p["bsc_wallet_address"] or "").lower() == a or (p["wallet_address"] or "").lower() == a
        ]

    async def has_deposit(self, tx_hash: str) -> bool:
        return any(r.tx_hash == tx_hash and r.tx_type == "deposit" for r in self.ledger)

    async def get_or_create_account(self, user_id: str, currency: str) -> AccountState:
        for acc in self.accounts.values():
            if acc.user_id == user_id and acc.currency == currency:
                return acc.model_copy()
        acc = AccountState(
            id=str(len(self.accounts) + 1), user_id=user_id, currency=currency, available_balance=Decimal("0")
        )
        self.accounts[acc.id] = acc
        return acc.model_copy()

    async def get_account(self, account_id: str) -> AccountState | None:
        acc = self.accounts.get(account_id)
        return acc.model_copy() if acc else None

    async def compare_and_set_balance(self, account_id: str, expected: Decimal, new: Decimal) -> bool:
        acc = self.accounts[account_id]
        if self.cas_conflicts:
            # another writer got there first
            self.cas_conflicts -= 1
            acc.available_balance += Decimal("1")
            return False
        if acc.available_balance != expected:
            return False
        acc.available_balance = new
        return True

    async def increment_balance(self, account_id: str, delta: Decimal) -> None:
        self.accounts[account_id].available_balance += delta

    async def insert_ledger_entry(self, row: DepositLedgerRow) -> str:
        if self.fail_ledger_insert:
            raise PersistenceError("Ledger insert failed: write concern error", tx_hash=row.tx_hash)
        if row.tx_hash in self.recorded_elsewhere or await self.has_deposit(row.tx_hash):
            raise DuplicateTransactionError(row.tx_hash)
        self.ledger.append(row)
        return str(len(self.ledger))

    async def insert_notification(self, notification: Notification) -> None:
        if self.fail_notifications:
            raise PersistenceError("Notification insert failed")
        self.notifications.append(notification)


class FakeChain:
    """Indexer API + JSON-RPC node behind an httpx.MockTransport."""

    def __init__(self):
        self.indexer_records: list[dict] = []
        self.indexer_http_status = 200
        self.indexer_down = False
        self.rpc_logs: list[dict] = []
        self.block_number = 1_000_000
        self.decimals = 18
        self.down_rpc_hosts: set[str] = set()
        # per-method overrides: a replacement "result", or a whole replacement JSON body
        self.rpc_results: dict[str, object] = {}
        self.rpc_bodies: dict[str, object] = {}
        self.indexer_requests: list[httpx.Request] = []
        self.rpc_calls: list[tuple[str, str, list]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.indexer_requests.append(request)
            if self.indexer_down:
                raise httpx.ConnectError("connection refused", request=request)
            if self.indexer_http_status != 200:
                return httpx.Response(self.indexer_http_status, text="bad gateway")
            if not self.indexer_records:
                return httpx.Response(200, json={"status": "0", "message": "No transactions found", "result": []})
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": self.indexer_records})

        body = json.loads(request.content)
        method = body["method"]
        self.rpc_calls.append((request.url.host, method, body["params"]))
        if request.url.host in self.down_rpc_hosts:
            return httpx.Response(503, text="rate limited")
        if method in self.rpc_bodies:
            return httpx.Response(200, json=self.rpc_bodies[method])
        if method in self.rpc_results:
            result = self.rpc_results[method]
        elif method == "eth_blockNumber":
            result = hex(self.block_number)
        elif method == "eth_getLogs":
            result = self.rpc_logs
        elif method == "eth_call":
            result = "0x" + format(self.decimals, "064x")
        else:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def rpc_methods(self) -> list[str]:
        return [m for _, m, _ in self.rpc_calls]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def store() -> InMemoryDepositStore:
    return InMemoryDepositStore()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest_asyncio.fixture
async def http(chain: FakeChain) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with chain.client() as c:
        yield c


@pytest_asyncio.fixture
async def client(store: InMemoryDepositStore, chain: FakeChain) -> AsyncGenerator[AsyncClient, None]:
    from app.deps import get_deposit_store, get_http_client
    from app.main import app

    async def _http():
        async with chain.client() as c:
            yield c

    app.dependency_overrides[get_deposit_store] = lambda: store
    app.dependency_overrides[get_http_client] = _http
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
