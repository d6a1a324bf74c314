from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]

# Public BSC endpoints (no API key)
_DEFAULT_RPC_URLS = [
    "https://bsc-dataseed.bnbchain.org",
    "https://bsc-dataseed1.defibit.io",
    "https://bsc-dataseed1.ninicoin.io",
]


def _parse_list(v: Any, default: List[str]) -> List[str]:
    try:
        if v is None or v == "":
            return default.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return default.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or default.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or default.copy()
    except Exception:
        return default.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="staking", alias="MONGODB_DB_NAME")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # BscScan indexer
    bscscan_api_key: str = Field(default="", alias="BSCSCAN_API_KEY")
    bscscan_api_url: str = Field(default="https://api.bscscan.com/api", alias="BSCSCAN_API_URL")
    indexer_page_size: int = Field(default=200, alias="INDEXER_PAGE_SIZE")

    # Node RPC fallback
    bsc_rpc_urls_raw: str = Field(
        default=",".join(_DEFAULT_RPC_URLS),
        alias="BSC_RPC_URLS",
        description="Comma-separated or JSON list",
    )
    rpc_fallback_blocks: int = Field(default=2400, alias="RPC_FALLBACK_BLOCKS")

    http_timeout_seconds: float = Field(default=15.0, alias="HTTP_TIMEOUT_SECONDS")

    # Scheduled scans
    staking_scan_interval_minutes: int = Field(default=5, alias="STAKING_SCAN_INTERVAL_MINUTES")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_list(getattr(self, "cors_origins_raw", None), _DEFAULT_CORS)

    @property
    def bsc_rpc_urls(self) -> List[str]:
        return _parse_list(getattr(self, "bsc_rpc_urls_raw", None), _DEFAULT_RPC_URLS)


@lru_cache
def get_settings() -> Settings:
    return Settings()
