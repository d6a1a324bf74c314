import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.admin_notification import AdminNotification
from app.models.failed_job import FailedJob
from app.models.profile import Profile
from app.models.staking_account import StakingAccount
from app.models.staking_config import StakingConfig
from app.models.staking_ledger import StakingLedgerEntry

DOCUMENT_MODELS = [
    Profile,
    StakingConfig,
    StakingAccount,
    StakingLedgerEntry,
    AdminNotification,
    FailedJob,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db() -> None:
    settings = get_settings()
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    kwargs = {}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    # creates the unique tx_hash / (user_id, currency) indexes the ledger relies on
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
