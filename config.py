import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        token_max_age_secs: int,
        default_currency: str,
        pending_lookback_days: int,
        fx_base_url: str,
        fx_timeout_secs: float,
        scheduler_enabled: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.token_max_age_secs = token_max_age_secs
        self.default_currency = default_currency
        self.pending_lookback_days = pending_lookback_days
        self.fx_base_url = fx_base_url
        self.fx_timeout_secs = fx_timeout_secs
        self.scheduler_enabled = scheduler_enabled
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "UTC")
    auth_secret = os.getenv(
        "FINTRACK_AUTH_SECRET",
        "5f1c0a9e37d84b6c2e0f4d1a8b7c6e5d4f3a2b1c0d9e8f7a6b5c4d3e2f1a0b9c",
    )
    token_max_age_secs = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_SECS", "604800"))
    default_currency = os.getenv("FINTRACK_DEFAULT_CURRENCY", "AED").upper()
    pending_lookback_days = int(os.getenv("FINTRACK_PENDING_LOOKBACK_DAYS", "7"))
    fx_base_url = os.getenv(
        "FINTRACK_FX_BASE_URL", "https://open.er-api.com/v6/latest"
    ).rstrip("/")
    fx_timeout_secs = float(os.getenv("FINTRACK_FX_TIMEOUT_SECS", "5"))
    scheduler_enabled = _env_flag("FINTRACK_SCHEDULER_ENABLED", "true")
    log_level = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        token_max_age_secs=token_max_age_secs,
        default_currency=default_currency,
        pending_lookback_days=pending_lookback_days,
        fx_base_url=fx_base_url,
        fx_timeout_secs=fx_timeout_secs,
        scheduler_enabled=scheduler_enabled,
        log_level=log_level,
    )
