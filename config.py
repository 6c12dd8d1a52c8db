from functools import lru_cache
import os


class Settings:
    """Service settings, read from the environment"""

    def __init__(self):
        self.default_currency = os.getenv("SETTLE_DEFAULT_CURRENCY", "USD")
        self.log_level = os.getenv("SETTLE_LOG_LEVEL", "INFO").upper()
        self.host = os.getenv("SETTLE_HOST", "0.0.0.0")
        self.port = int(os.getenv("SETTLE_PORT", "8000"))


@lru_cache()
def get_settings() -> Settings:
    return Settings()
