import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable, Optional

from jobboard.models.notification import Notification, NotificationType

logger = logging.getLogger("JobBoardNotification")

# listener(event, notification); event is "shown" or "dismissed"
Listener = Callable[[str, Notification], Any]


class NotificationCenter:
    """
    One notification slot. Showing a notification replaces whatever is
    visible and restarts the dismiss timer; nothing is queued behind it.
    """

    def __init__(self, duration_seconds: float = 4.0):
        self.duration_seconds = duration_seconds
        self.current: Optional[Notification] = None
        self._ids = itertools.count(1)
        self._dismiss_handle: Optional[asyncio.TimerHandle] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._listeners: list[Listener] = []
        self._listener_tasks: set[asyncio.Task] = set()

    @property
    def visible(self) -> bool:
        return self.current is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def show(self, message: str, type: NotificationType = NotificationType.SUCCESS) -> Notification:
        self._cancel_timer()
        replaced = self.current
        notification = Notification(id=next(self._ids), message=message, type=type)
        self.current = notification
        self._idle.clear()

        loop = asyncio.get_running_loop()
        self._dismiss_handle = loop.call_later(self.duration_seconds, self._expire, notification.id)

        if replaced is not None:
            logger.debug(f"Notification #{replaced.id} replaced by #{notification.id}")
        logger.info(f"[{notification.type.value}] {message}")
        self._publish("shown", notification)
        return notification

    def dismiss(self) -> None:
        self._cancel_timer()
        notification = self.current
        self.current = None
        self._idle.set()
        if notification is not None:
            self._publish("dismissed", notification)

    async def wait_until_idle(self) -> None:
        """Return once no notification is visible."""
        while self.current is not None:
            await self._idle.wait()

    def close(self) -> None:
        self._cancel_timer()
        self.current = None
        self._idle.set()
        for task in list(self._listener_tasks):
            task.cancel()
        self._listeners.clear()

    def _expire(self, notification_id: int) -> None:
        self._dismiss_handle = None
        if self.current is not None and self.current.id == notification_id:
            self.dismiss()

    def _cancel_timer(self) -> None:
        if self._dismiss_handle is not None:
            self._dismiss_handle.cancel()
            self._dismiss_handle = None

    def _publish(self, event: str, notification: Notification) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, notification)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._listener_tasks.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Notification listener failed: {error}")
