"""Map an on-chain sending address to the internal user who owns it."""

from typing import Literal

from pydantic import BaseModel, Field

from app.core.exceptions import AmbiguousWalletError, UnknownSenderError
from app.services.deposit_store import DepositStore


class SenderResolution(BaseModel):
    status: Literal["resolved", "unknown", "ambiguous"]
    user_id: str | None = None
    candidate_user_ids: list[str] = Field(default_factory=list)


async def resolve_sender(store: DepositStore, from_address: str) -> SenderResolution:
    """
    Match against both wallet columns of every profile and count distinct users.
    One user holding the address in both columns is still a single owner; two
    different users sharing an address is ambiguous and must never be guessed.
    """
    owners = sorted(set(await store.find_wallet_owners(from_address.strip().lower())))
    if not owners:
        return SenderResolution(status="unknown")
    if len(owners) > 1:
        return SenderResolution(status="ambiguous", candidate_user_ids=owners)
    return SenderResolution(status="resolved", user_id=owners[0], candidate_user_ids=owners)


async def require_user(store: DepositStore, from_address: str, tx_hash: str | None = None) -> str:
    """Return the single owner of from_address or raise UnknownSenderError / AmbiguousWalletError."""
    resolution = await resolve_sender(store, from_address)
    if resolution.status == "unknown":
        raise UnknownSenderError(from_address, tx_hash=tx_hash)
    if resolution.status == "ambiguous":
        raise AmbiguousWalletError(from_address, resolution.candidate_user_ids, tx_hash=tx_hash)
    return resolution.user_id
