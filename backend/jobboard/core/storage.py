import json
import logging
from typing import Any, Optional, Protocol

import redis.asyncio as aioredis

from jobboard.core.config import Settings

logger = logging.getLogger("JobBoardStorage")

# Logical collection name -> key suffix in the key-value store.
STORAGE_KEYS = {
    "jobs": "jobs",
    "profile": "profile",
    "dark_mode": "darkMode",
    "conversations": "conversations",
    "payments": "payments",
    "visited": "visited",
}

VISITED_MARKER = "true"


class KeyValueStorage(Protocol):
    """
    Anything with async get/set over string keys and values.
    `redis.asyncio.Redis(decode_responses=True)` satisfies this as-is.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> Any: ...


class MemoryStorage:
    """
    Process-local key-value store. Used when Redis is not configured
    or not reachable; nothing survives a restart.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True


def storage_key(settings: Settings, name: str) -> str:
    """Full key for a logical collection, e.g. 'jobboard:jobs'."""
    suffix = STORAGE_KEYS[name]
    if not settings.STORAGE_KEY_PREFIX:
        return suffix
    return f"{settings.STORAGE_KEY_PREFIX}:{suffix}"


async def load_raw(storage: KeyValueStorage, key: str) -> Optional[str]:
    """Read a raw value. Storage failures count as 'absent'."""
    try:
        value = await storage.get(key)
    except Exception as e:
        logger.warning(f"Failed to read '{key}' from storage: {e}")
        return None
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Stored value for '{key}' is not valid UTF-8, ignoring it")
            return None
    return value


async def save_raw(storage: KeyValueStorage, key: str, value: str) -> bool:
    """Write a raw value. Failures are logged and reported as False, never raised."""
    try:
        await storage.set(key, value)
        return True
    except Exception as e:
        logger.error(f"Failed to write '{key}' to storage: {e}")
        return False


def decode_json(raw: Optional[str], key: str) -> Any:
    """Parse stored JSON. Returns None when absent or malformed."""
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Malformed JSON stored under '{key}', using default: {e}")
        return None


def encode_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


async def create_storage(settings: Settings) -> KeyValueStorage:
    """
    Build the configured backend. A Redis backend that does not answer
    PING falls back to memory so the app still starts.
    """
    if settings.STORAGE_BACKEND == "memory":
        logger.info("Using in-memory storage. State will not persist across restarts.")
        return MemoryStorage()

    redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await redis_client.ping()
        logger.info("Redis connection established.")
        return redis_client
    except Exception as e:
        logger.error(f"Redis connection failed: {e}. State will not persist across restarts.")
        await redis_client.aclose()
        return MemoryStorage()


async def close_storage(storage: KeyValueStorage) -> None:
    aclose = getattr(storage, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.warning(f"Error while closing storage: {e}")
