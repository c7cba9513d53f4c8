import asyncio
import logging

import pytest

from jobboard.models.notification import NotificationType
from jobboard.services.notification import NotificationCenter


@pytest.mark.asyncio
async def test_notification_is_dismissed_after_duration():
    center = NotificationCenter(duration_seconds=0.05)

    shown = center.show("Saved", NotificationType.INFO)

    assert center.current == shown
    assert center.current.type == NotificationType.INFO
    await asyncio.sleep(0.1)
    assert center.current is None
    assert center.visible is False


@pytest.mark.asyncio
async def test_new_notification_replaces_the_visible_one():
    center = NotificationCenter(duration_seconds=0.08)
    center.show("first")
    await asyncio.sleep(0.05)

    second = center.show("second")

    # The first one's timer must not take the replacement down with it
    await asyncio.sleep(0.05)
    assert center.current == second
    await asyncio.sleep(0.06)
    assert center.current is None


@pytest.mark.asyncio
async def test_wait_until_idle():
    center = NotificationCenter(duration_seconds=0.05)
    center.show("busy")

    await asyncio.wait_for(center.wait_until_idle(), timeout=1)

    assert center.current is None


@pytest.mark.asyncio
async def test_listeners_receive_shown_and_dismissed_events():
    center = NotificationCenter(duration_seconds=0.02)
    events = []
    received = asyncio.Event()

    async def async_listener(event, notification):
        events.append(("async", event, notification.message))
        received.set()

    center.subscribe(lambda event, n: events.append(("sync", event, n.message)))
    center.subscribe(async_listener)

    center.show("hello")
    await asyncio.wait_for(received.wait(), timeout=1)
    await asyncio.sleep(0.05)

    assert ("sync", "shown", "hello") in events
    assert ("async", "shown", "hello") in events
    assert ("sync", "dismissed", "hello") in events


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_show(caplog):
    center = NotificationCenter(duration_seconds=0.02)

    def broken(event, notification):
        raise RuntimeError("boom")

    unsubscribe = center.subscribe(broken)
    with caplog.at_level(logging.ERROR, logger="JobBoardNotification"):
        center.show("still shown")

    assert center.current.message == "still shown"
    assert "boom" in caplog.text

    unsubscribe()
    center.close()
    assert center.current is None
