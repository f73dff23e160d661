import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        environment: str,
        timezone: str,
        api_prefix: str,
        log_level: str,
        cors_origins: list[str],
        host: str,
        port: int,
    ) -> None:
        self.database_url = database_url
        self.environment = environment
        self.timezone = timezone
        self.api_prefix = api_prefix
        self.log_level = log_level
        self.cors_origins = cors_origins
        self.host = host
        self.port = port

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("BUDGET_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "budget.db"
        database_url = f"sqlite:///{default_db}"
    environment = os.getenv("BUDGET_ENV", "development").strip().lower()
    timezone = os.getenv("BUDGET_TIMEZONE", "").strip()
    api_prefix = "/" + os.getenv("BUDGET_API_PREFIX", "/api/v1").strip("/")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    cors_origins = _split_origins(
        os.getenv(
            "BUDGET_CORS_ORIGINS", "http://localhost:3000,http://localhost:5000"
        )
    )
    host = os.getenv("BUDGET_HOST", "0.0.0.0")
    port = int(os.getenv("BUDGET_PORT", "8000"))
    return Settings(
        database_url=database_url,
        environment=environment,
        timezone=timezone,
        api_prefix=api_prefix,
        log_level=log_level,
        cors_origins=cors_origins,
        host=host,
        port=port,
    )
