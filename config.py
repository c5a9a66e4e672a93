"""Environment-driven settings for the finance tracker."""
import os
from functools import lru_cache


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        demo_username: str,
        seed_default_categories: bool,
        db_connect_retries: int,
        db_connect_delay: float,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.demo_username = demo_username
        self.seed_default_categories = seed_default_categories
        self.db_connect_retries = db_connect_retries
        self.db_connect_delay = db_connect_delay
        self.log_level = log_level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./finance.db"),
        timezone=os.getenv("APP_TIMEZONE", "UTC"),
        demo_username=os.getenv("DEMO_USERNAME", "demo"),
        seed_default_categories=_env_bool("SEED_DEFAULT_CATEGORIES", True),
        db_connect_retries=int(os.getenv("DB_CONNECT_RETRIES", "10")),
        db_connect_delay=float(os.getenv("DB_CONNECT_DELAY", "2")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
