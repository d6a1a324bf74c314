from beanie import Document
from pymongo import ASCENDING, IndexModel


class Profile(Document):
    """User profile owned by the web app; only the wallet columns are read here."""
    user_id: str
    bsc_wallet_address: str | None = None
    wallet_address: str | None = None

    class Settings:
        name = "profiles"
        indexes = [
            IndexModel([("user_id", ASCENDING)]),
            IndexModel([("bsc_wallet_address", ASCENDING)]),
            IndexModel([("wallet_address", ASCENDING)]),
        ]
