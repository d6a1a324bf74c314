"""Token contract allow-list, raw transfer DTOs and the canonical normalized transfer."""

import re
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Staking is locked to IPG. Not configuration: changing it would let other tokens be credited.
IPG_CONTRACT = "0x05002c24c2a999253f5eee44a85c2b6bad7f656e"
IPG_SYMBOL = "IPG"

# Never credited to staking, even if an upstream source labels them as IPG.
FORBIDDEN_CONTRACTS = frozenset({
    "0x7437d96d2dca13525b4a6021865d41997dee1f09",  # USDI
    "0x742575866c0eb1b6b6350159d536447477085cef",  # BSK
    "0x55d398326f99059ff775485246999027b3197955",  # USDT
})

_UINT_RE = re.compile(r"^[0-9]+$")
_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

ContractCheck = Literal["allowed", "forbidden", "unrecognized"]


def check_contract(address: str | None) -> ContractCheck:
    addr = (address or "").strip().lower()
    if addr in FORBIDDEN_CONTRACTS:
        return "forbidden"
    if addr != IPG_CONTRACT:
        return "unrecognized"
    return "allowed"


def pad_address_topic(address: str) -> str:
    """0x-prefixed 32-byte topic for an address (eth_getLogs filter)."""
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")


def topic_to_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


def scale_amount(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


class IndexerTokenTransfer(BaseModel):
    """One record of a BscScan `tokentx` response."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hash: str
    from_address: str = Field(alias="from")
    to: str
    value: str
    token_decimal: int = Field(alias="tokenDecimal", ge=0)
    contract_address: str = Field(alias="contractAddress")

    @field_validator("value")
    @classmethod
    def _value_is_uint(cls, v: str) -> str:
        if not _UINT_RE.match(v):
            raise ValueError("value must be a base-10 integer string")
        return v


class RpcTransferLog(BaseModel):
    """One Transfer log returned by `eth_getLogs`."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_hash: str = Field(alias="transactionHash")
    address: str | None = None
    topics: list[str]
    data: str = "0x0"

    @field_validator("data")
    @classmethod
    def _data_is_hex(cls, v: str) -> str:
        if v and not _HEX_RE.match(v):
            raise ValueError("data must be 0x-prefixed hex")
        return v


class NormalizedTransfer(BaseModel):
    tx_hash: str
    from_address: str
    amount: Decimal


def normalize_indexer_transfer(record: IndexerTokenTransfer) -> NormalizedTransfer:
    return NormalizedTransfer(
        tx_hash=record.hash.lower(),
        from_address=record.from_address.lower(),
        amount=scale_amount(int(record.value), record.token_decimal),
    )


def normalize_rpc_log(log: RpcTransferLog, decimals: int) -> NormalizedTransfer:
    return NormalizedTransfer(
        tx_hash=log.transaction_hash.lower(),
        from_address=topic_to_address(log.topics[1]),
        amount=scale_amount(int(log.data, 16) if log.data not in ("", "0x") else 0, decimals),
    )
