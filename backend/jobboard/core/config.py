import os
from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    # --- PROJECT INFO ---
    PROJECT_NAME: str = "Restaurant Jobs"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = int(os.getenv("PORT", 8000))

    # --- STORAGE ---
    # "redis" mirrors state into Redis, "memory" keeps the mirror in-process.
    STORAGE_BACKEND: str = "redis"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    STORAGE_KEY_PREFIX: str = "jobboard"

    # --- HOST ENVIRONMENT ---
    # Only consulted when no theme has been stored yet.
    PREFERS_DARK_APPEARANCE: bool = False

    # --- TIMINGS (seconds) ---
    NOTIFICATION_DURATION_SECONDS: float = 4.0
    PAYMENT_COMPLETION_DELAY_SECONDS: float = 2.0
    REPLY_DELAY_MIN_SECONDS: float = 2.0
    REPLY_DELAY_MAX_SECONDS: float = 5.0

    class Config:
        case_sensitive = True
        env_file = ".env"

@lru_cache()
def get_settings():
    return Settings()
