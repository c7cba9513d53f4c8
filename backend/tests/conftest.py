import os
import random

import pytest
import pytest_asyncio

# The app reads its settings at import time; keep tests off a real Redis.
os.environ.setdefault("STORAGE_BACKEND", "memory")

from jobboard.core.config import Settings
from jobboard.core.storage import MemoryStorage
from jobboard.models.notification import NotificationType
from jobboard.services.store import AppStore


@pytest.fixture
def settings() -> Settings:
    """Fast timings so deferred work completes within a test."""
    return Settings(
        STORAGE_BACKEND="memory",
        STORAGE_KEY_PREFIX="test",
        NOTIFICATION_DURATION_SECONDS=0.05,
        PAYMENT_COMPLETION_DELAY_SECONDS=0.05,
        REPLY_DELAY_MIN_SECONDS=0.02,
        REPLY_DELAY_MAX_SECONDS=0.04,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest_asyncio.fixture
async def make_store(settings, storage):
    """Factory for loaded stores; every store it builds is closed afterwards."""
    created = []

    async def _make(prefers_dark=lambda: False, backing=None) -> AppStore:
        store = AppStore(
            backing if backing is not None else storage,
            settings=settings,
            prefers_dark=prefers_dark,
            rng=random.Random(7),
        )
        await store.load()
        created.append(store)
        return store

    yield _make

    for store in created:
        await store.close()


@pytest_asyncio.fixture
async def store(make_store):
    return await make_store()


@pytest.fixture
def shown(store):
    """Messages of every notification shown by the store, in order."""
    messages = []
    store.notifications.subscribe(
        lambda event, n: messages.append(n.message) if event == "shown" else None
    )
    return messages


@pytest.fixture
def errors(store):
    """Messages of the error notifications shown by the store, in order."""
    messages = []
    store.notifications.subscribe(
        lambda event, n: messages.append(n.message)
        if event == "shown" and n.type == NotificationType.ERROR
        else None
    )
    return messages
