import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger("JobBoardScheduler")


class DeferredTask:
    """
    Handle for a one-shot delayed mutation, tied to the id of the entity
    it will touch (a payment id, a conversation id...).
    """

    def __init__(self, owner_id: str, label: str, delay: float):
        self.owner_id = owner_id
        self.label = label
        self.delay = delay
        self.fired = False
        self.cancelled = False
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return not (self.fired or self.cancelled)

    def cancel(self) -> bool:
        if not self.pending:
            return False
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        return True

    def __repr__(self) -> str:
        state = "fired" if self.fired else "cancelled" if self.cancelled else "pending"
        return f"<DeferredTask {self.label} owner={self.owner_id} delay={self.delay:.2f}s {state}>"


class DeferredTaskRegistry:
    """
    Keeps every scheduled task until it fires or is cancelled, so an entity
    removal or a teardown can revoke them deterministically.
    """

    def __init__(self):
        self._tasks: dict[str, list[DeferredTask]] = {}
        self.closed = False

    def schedule(
        self,
        owner_id: str,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        label: str = "task",
    ) -> Optional[DeferredTask]:
        if self.closed:
            logger.debug(f"Registry closed, not scheduling {label} for {owner_id}")
            return None

        task = DeferredTask(owner_id, label, delay)

        def run():
            self._forget(task)
            if task.cancelled:
                return
            task.fired = True
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Deferred {label} for {owner_id} failed")

        task._handle = asyncio.get_running_loop().call_later(delay, run)
        self._tasks.setdefault(owner_id, []).append(task)
        logger.debug(f"Scheduled {task!r}")
        return task

    def pending(self, owner_id: Optional[str] = None) -> list[DeferredTask]:
        if owner_id is not None:
            return [t for t in self._tasks.get(owner_id, []) if t.pending]
        return [t for tasks in self._tasks.values() for t in tasks if t.pending]

    def cancel_owner(self, owner_id: str) -> int:
        cancelled = sum(1 for t in self._tasks.pop(owner_id, []) if t.cancel())
        if cancelled:
            logger.info(f"Cancelled {cancelled} deferred task(s) for {owner_id}")
        return cancelled

    def cancel_all(self) -> int:
        cancelled = 0
        for owner_id in list(self._tasks):
            cancelled += self.cancel_owner(owner_id)
        return cancelled

    def close(self) -> int:
        self.closed = True
        return self.cancel_all()

    def _forget(self, task: DeferredTask) -> None:
        tasks = self._tasks.get(task.owner_id)
        if not tasks:
            return
        if task in tasks:
            tasks.remove(task)
        if not tasks:
            del self._tasks[task.owner_id]
