# backend/app/services/notifications.py
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

log = logging.getLogger("firesafe.notifications")


@dataclass
class Notification:
    recipient_id: str
    title: str
    message: str
    kind: str = "inspection"  # reminder|update|deadline|inspection
    priority: str = "medium"  # low|medium|high
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationChannel(ABC):
    """Delivery backend (push, SMS, email...). Lives outside the scheduling core."""

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationChannel(NotificationChannel):
    async def send(self, notification: Notification) -> None:
        log.info(
            "notification recipient=%s kind=%s title=%s",
            notification.recipient_id,
            notification.kind,
            notification.title,
        )


class Notifier:
    """
    Fire-and-forget dispatch. Callers never await delivery; failures are
    logged from the task's done-callback.
    """

    def __init__(self, channel: Optional[NotificationChannel] = None) -> None:
        self.channel = channel
        self._pending: set[asyncio.Task] = set()

    def notify(self, notification: Notification) -> Optional[asyncio.Task]:
        if self.channel is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning("notification dropped (no running loop) recipient=%s", notification.recipient_id)
            return None

        task = loop.create_task(self.channel.send(notification))
        self._pending.add(task)
        task.add_done_callback(self._done)
        return task

    def _done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("notification delivery failed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown / tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def assignment_notice(*, inspector_id: str, inspection_id: str, establishment_name: str, when: str) -> Notification:
    return Notification(
        recipient_id=str(inspector_id),
        title="New inspection assigned",
        message=f"You have been assigned to inspect {establishment_name} on {when}.",
        kind="inspection",
        priority="high",
        payload={"inspection_id": str(inspection_id)},
    )
