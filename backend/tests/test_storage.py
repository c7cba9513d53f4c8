import asyncio
import json
import logging
from unittest.mock import AsyncMock

import pytest

from jobboard.core.config import Settings
from jobboard.core.storage import MemoryStorage, create_storage, decode_json, storage_key
from jobboard.models.profile import Profile
from jobboard.services.store import AppStore

PERSISTED = ["jobs", "profile", "dark_mode", "conversations", "payments", "visited"]


@pytest.mark.asyncio
async def test_empty_storage_gives_defaults(make_store):
    store = await make_store(prefers_dark=lambda: True)

    assert store.jobs == []
    assert store.conversations == []
    assert store.payments == []
    assert store.profile == Profile()
    assert store.profile.to_json_dict()["preferences"] == {"currency": "USD", "language": "en", "timezone": "UTC"}
    assert store.profile.to_json_dict()["notifications"] == {"email": True, "push": True, "sms": False}
    assert store.dark_mode is True
    assert store.show_welcome is True


@pytest.mark.asyncio
async def test_stored_theme_wins_over_host_preference(make_store, storage):
    storage.data["test:darkMode"] = "false"

    store = await make_store(prefers_dark=lambda: True)

    assert store.dark_mode is False


@pytest.mark.asyncio
async def test_failing_appearance_check_means_light_mode(make_store):
    def prefers_dark():
        raise RuntimeError("no display")

    store = await make_store(prefers_dark=prefers_dark)

    assert store.dark_mode is False


@pytest.mark.asyncio
async def test_malformed_data_falls_back_to_defaults(make_store, storage):
    storage.data.update({
        "test:jobs": "[{not json",
        "test:profile": "{\"name\": ",
        "test:darkMode": "maybe",
        "test:conversations": json.dumps({"not": "a list"}),
        "test:payments": json.dumps([{"id": "1", "amount": -3, "description": "x", "recipient": "y"}]),
    })

    store = await make_store(prefers_dark=lambda: True)

    assert store.jobs == []
    assert store.profile == Profile()
    assert store.dark_mode is True
    assert store.conversations == []
    assert store.payments == []


@pytest.mark.asyncio
async def test_unreadable_storage_falls_back_to_defaults(make_store):
    backing = AsyncMock()
    backing.get.side_effect = ConnectionError("redis down")

    store = await make_store(backing=backing)

    assert store.jobs == []
    assert store.profile == Profile()
    assert store.show_welcome is True


@pytest.mark.asyncio
async def test_write_failures_keep_memory_state(make_store, caplog):
    backing = AsyncMock()
    backing.get.return_value = None
    backing.set.side_effect = ConnectionError("redis down")
    store = await make_store(backing=backing)

    with caplog.at_level(logging.ERROR, logger="JobBoardStorage"):
        job = store.create_job({"title": "Cook", "description": "Lunch", "pay": "$17/h"})
        await store.flush()

    assert store.get_job(job.id) is not None
    assert "Failed to write 'test:jobs'" in caplog.text


@pytest.mark.asyncio
async def test_rapid_mutations_persist_latest_state(store: AppStore, storage):
    for i in range(10):
        store.create_job({"title": f"Job {i}", "description": "d", "pay": "p"})
    store.toggle_theme()
    store.toggle_theme()
    store.toggle_theme()

    await store.flush()

    stored = json.loads(storage.data["test:jobs"])
    assert [job["title"] for job in stored] == [f"Job {i}" for i in range(10)]
    assert json.loads(storage.data["test:darkMode"]) is True


@pytest.mark.asyncio
async def test_writes_to_one_key_are_serialized():
    """A slow write must not be overtaken by a later one for the same key."""
    writes = []

    class SlowStorage(MemoryStorage):
        async def set(self, key, value):
            await asyncio.sleep(0.01)
            writes.append((key, value))
            return await super().set(key, value)

    slow = SlowStorage()
    store = AppStore(slow, settings=Settings(STORAGE_KEY_PREFIX="test"), prefers_dark=lambda: False)
    await store.load()

    store.toggle_theme()
    await asyncio.sleep(0)
    store.toggle_theme()
    store.toggle_theme()
    await store.close()

    theme_writes = [value for key, value in writes if key == "test:darkMode"]
    assert theme_writes == ["true", "true"]
    assert slow.data["test:darkMode"] == "true"


@pytest.mark.asyncio
async def test_state_round_trips_through_storage(make_store, storage):
    first = await make_store()
    first.update_profile({"name": "Cantina", "isPremium": True, "website": "https://cantina.example"})
    first.add_profile_comment("Great staff")
    first.add_payment_method({"type": "paypal", "paypalEmail": "pay@cantina.example"})
    job = first.create_job({"title": "Cook", "description": "Lunch", "pay": "$17/h", "category": "Delivery"})
    conv = first.start_conversation("Ana", "Shift", job.id, "Hi")
    first.send_message(conv.id, "Are you free?")
    first.process_payment({"amount": 12.5, "description": "Boost", "recipient": "Board", "type": "feature_boost"})
    first.toggle_theme()
    first.dismiss_welcome()
    await asyncio.sleep(0.2)
    await first.flush()
    saved = dict(storage.data)

    second = await make_store()

    for name in PERSISTED:
        assert second._encode(name) == saved[storage_key(second.settings, name)]
    assert second.show_welcome is False
    assert second.dark_mode is True


def test_profile_serialization_is_lossless():
    profile = Profile.model_validate({
        "name": "Cantina",
        "isPremium": True,
        "comments": ["a", "b"],
        "messages": [{"to": "Company", "text": "hello", "time": "10:00"}],
        "paymentMethods": [{"id": "1", "type": "card", "last4": "4242", "brand": "Visa", "isDefault": True}],
    })

    encoded = json.dumps(profile.to_json_dict())
    decoded = Profile.model_validate(json.loads(encoded))

    assert json.dumps(decoded.to_json_dict()) == encoded


@pytest.mark.asyncio
async def test_welcome_is_dismissed_once_and_for_all(make_store, storage):
    store = await make_store()
    store.dismiss_welcome(enable_dark_mode=True)
    store.dismiss_welcome()
    await store.flush()

    assert storage.data["test:visited"] == "true"
    assert store.dark_mode is True

    reopened = await make_store()
    assert reopened.show_welcome is False
    assert reopened.dark_mode is True


def test_decode_json_treats_garbage_as_absent():
    assert decode_json(None, "k") is None
    assert decode_json("", "k") is None
    assert decode_json("{oops", "k") is None
    assert decode_json("[1, 2]", "k") == [1, 2]


def test_storage_key_prefix():
    assert storage_key(Settings(STORAGE_KEY_PREFIX="jobboard"), "dark_mode") == "jobboard:darkMode"
    assert storage_key(Settings(STORAGE_KEY_PREFIX=""), "jobs") == "jobs"


@pytest.mark.asyncio
async def test_unreachable_redis_falls_back_to_memory():
    settings = Settings(STORAGE_BACKEND="redis", REDIS_URL="redis://127.0.0.1:1/0")

    backend = await create_storage(settings)

    assert isinstance(backend, MemoryStorage)
