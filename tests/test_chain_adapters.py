from decimal import Decimal

import pytest

from app.core.exceptions import AdapterError
from app.services.chain_adapters import MAX_LOOKBACK_BLOCKS, IndexerAdapter, RpcLogAdapter
from app.services.transfers import IPG_CONTRACT, TRANSFER_EVENT_TOPIC, pad_address_topic
from tests.conftest import HOT_WALLET, INDEXER_URL, RPC_URLS, STRANGER, WALLET_A, indexer_record, rpc_log, tx

pytestmark = pytest.mark.asyncio

USDT = "0x55d398326f99059ff775485246999027b3197955"
OTHER_TOKEN = "0x" + "12" * 20


def indexer(http):
    return IndexerAdapter(http, api_url=INDEXER_URL, api_key="k", page_size=200)


async def test_indexer_request_parameters(chain, http):
    await indexer(http).fetch_transfers(HOT_WALLET.upper().replace("0X", "0x"))
    params = chain.indexer_requests[0].url.params
    assert params["action"] == "tokentx"
    assert params["contractaddress"] == IPG_CONTRACT
    assert params["address"] == HOT_WALLET
    assert params["offset"] == "200"
    assert params["sort"] == "desc"
    assert params["apikey"] == "k"


async def test_indexer_filters_contracts_and_recipient(chain, http):
    chain.indexer_records = [
        indexer_record(tx(1), WALLET_A, "150"),
        indexer_record(tx(2), WALLET_A, "99", contract=USDT),
        indexer_record(tx(3), WALLET_A, "99", contract=OTHER_TOKEN),
        indexer_record(tx(4), HOT_WALLET, "99", to=STRANGER),
        indexer_record(tx(5), STRANGER, "0.5", decimals=8),
    ]
    transfers = await indexer(http).fetch_transfers(HOT_WALLET)
    assert [t.tx_hash for t in transfers] == [tx(1), tx(5)]
    assert transfers[0].amount == Decimal("150")
    assert transfers[1].amount == Decimal("0.5")


async def test_indexer_skips_malformed_records(chain, http):
    chain.indexer_records = [{"hash": tx(1)}, indexer_record(tx(2), WALLET_A, "1")]
    transfers = await indexer(http).fetch_transfers(HOT_WALLET)
    assert [t.tx_hash for t in transfers] == [tx(2)]


async def test_indexer_non_success_status_is_empty(chain, http):
    assert await indexer(http).fetch_transfers(HOT_WALLET) == []
    chain.indexer_records = [indexer_record(tx(1), WALLET_A, "1")]
    chain.indexer_http_status = 502
    assert await indexer(http).fetch_transfers(HOT_WALLET) == []


async def test_indexer_transport_failure_raises(chain, http):
    chain.indexer_down = True
    with pytest.raises(AdapterError) as exc:
        await indexer(http).fetch_transfers(HOT_WALLET)
    assert exc.value.adapter == "bscscan"


async def test_rpc_scan_window_and_filter(chain, http):
    chain.rpc_logs = [rpc_log(tx(1), WALLET_A, "150")]
    adapter = RpcLogAdapter(http, rpc_urls=RPC_URLS, lookback_blocks=2400)
    transfers = await adapter.fetch_transfers(HOT_WALLET)

    assert chain.rpc_methods() == ["eth_blockNumber", "eth_getLogs", "eth_call"]
    (flt,) = chain.rpc_calls[1][2]
    assert flt["fromBlock"] == hex(chain.block_number - 2400)
    assert flt["toBlock"] == "latest"
    assert flt["address"] == IPG_CONTRACT
    assert flt["topics"] == [TRANSFER_EVENT_TOPIC, None, pad_address_topic(HOT_WALLET)]
    assert len(transfers) == 1
    assert transfers[0].from_address == WALLET_A
    assert transfers[0].amount == Decimal("150")


async def test_rpc_lookback_is_bounded(chain, http):
    adapter = RpcLogAdapter(http, rpc_urls=RPC_URLS, lookback_blocks=10_000_000)
    await adapter.fetch_transfers(HOT_WALLET)
    (flt,) = chain.rpc_calls[1][2]
    assert flt["fromBlock"] == hex(chain.block_number - MAX_LOOKBACK_BLOCKS)


async def test_rpc_reads_token_decimals(chain, http):
    chain.decimals = 6
    chain.rpc_logs = [rpc_log(tx(1), WALLET_A, "42.5", decimals=6)]
    transfers = await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    assert transfers[0].amount == Decimal("42.5")


async def test_rpc_skips_decimals_call_without_logs(chain, http):
    assert await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET) == []
    assert "eth_call" not in chain.rpc_methods()


async def test_rpc_drops_foreign_logs(chain, http):
    bad_topic = rpc_log(tx(3), WALLET_A, "1")
    bad_topic["topics"][0] = "0x" + "00" * 32
    chain.rpc_logs = [
        rpc_log(tx(1), WALLET_A, "1", contract=USDT),
        rpc_log(tx(2), WALLET_A, "1", to=STRANGER),
        bad_topic,
        {**rpc_log(tx(4), WALLET_A, "1"), "topics": [TRANSFER_EVENT_TOPIC]},
        rpc_log(tx(5), WALLET_A, "1"),
    ]
    transfers = await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    assert [t.tx_hash for t in transfers] == [tx(5)]


async def test_rpc_fails_over_between_endpoints(chain, http):
    chain.down_rpc_hosts = {"rpc-1.test"}
    chain.rpc_logs = [rpc_log(tx(1), WALLET_A, "3")]
    transfers = await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    assert len(transfers) == 1
    hosts = [h for h, m, _ in chain.rpc_calls if m == "eth_blockNumber"]
    assert hosts == ["rpc-1.test", "rpc-2.test"]


async def test_rpc_all_endpoints_down_raises(chain, http):
    chain.down_rpc_hosts = {"rpc-1.test", "rpc-2.test"}
    with pytest.raises(AdapterError) as exc:
        await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    assert exc.value.adapter == "rpc"


async def test_rpc_requires_urls(http):
    with pytest.raises(ValueError):
        RpcLogAdapter(http, rpc_urls=[])


async def test_zero_value_transfers_are_dropped(chain, http):
    chain.indexer_records = [indexer_record(tx(1), WALLET_A, "0"), indexer_record(tx(2), WALLET_A, "1")]
    transfers = await indexer(http).fetch_transfers(HOT_WALLET)
    assert [t.tx_hash for t in transfers] == [tx(2)]

    chain.rpc_logs = [rpc_log(tx(3), WALLET_A, "0"), {**rpc_log(tx(4), WALLET_A, "1"), "data": "0x"}]
    assert await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET) == []


async def test_indexer_skips_non_numeric_values(chain, http):
    chain.indexer_records = [
        {**indexer_record(tx(1), WALLET_A, "1"), "value": "12abc"},
        {**indexer_record(tx(2), WALLET_A, "1"), "value": "-5"},
        indexer_record(tx(3), WALLET_A, "1"),
    ]
    transfers = await indexer(http).fetch_transfers(HOT_WALLET)
    assert [t.tx_hash for t in transfers] == [tx(3)]


async def test_rpc_skips_logs_with_non_hex_data(chain, http):
    chain.rpc_logs = [{**rpc_log(tx(1), WALLET_A, "1"), "data": "0xzz"}, rpc_log(tx(2), WALLET_A, "2")]
    transfers = await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    assert [t.tx_hash for t in transfers] == [tx(2)]


@pytest.mark.parametrize(
    "method, result",
    [
        ("eth_blockNumber", None),
        ("eth_blockNumber", "latest"),
        ("eth_getLogs", {"unexpected": "object"}),
        ("eth_call", "0xzz"),
    ],
)
async def test_rpc_malformed_results_raise_adapter_error(chain, http, method, result):
    chain.rpc_logs = [rpc_log(tx(1), WALLET_A, "1")]
    chain.rpc_results[method] = result
    with pytest.raises(AdapterError) as exc:
        await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    assert exc.value.adapter == "rpc"


async def test_rpc_non_object_body_fails_over(chain, http):
    chain.rpc_bodies["eth_blockNumber"] = ["not", "a", "response"]
    with pytest.raises(AdapterError):
        await RpcLogAdapter(http, rpc_urls=RPC_URLS).fetch_transfers(HOT_WALLET)
    hosts = [h for h, m, _ in chain.rpc_calls if m == "eth_blockNumber"]
    assert hosts == ["rpc-1.test", "rpc-2.test"]
