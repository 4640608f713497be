"""
Collaborator contracts consumed by the synchronization engines.

The engines only ever talk to these interfaces; api/firestore.py and
api/feed.py provide the production implementations, tests provide in-memory
fakes.
"""
from __future__ import annotations

import dataclasses
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable

from .models import Event, NotificationRecord, RawNotification, Severity

Unsubscribe = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


class DeviceRegistry(ABC):
    """Lists the devices owned by a user."""

    @abstractmethod
    async def list_devices(self, user_id: str) -> list[str]:
        """Return the identifiers of every device owned by user_id."""


class EventStore(ABC):
    """Per-device event history and its push channel."""

    @abstractmethod
    async def fetch_events(self, user_id: str, device_id: str) -> list[Event]:
        """Return the full event history of one device."""

    @abstractmethod
    def subscribe_events(
        self,
        user_id: str,
        device_id: str,
        on_update: Callable[[list[Event]], None],
        on_error: ErrorCallback,
        limit: int,
    ) -> Unsubscribe:
        """
        Open a push subscription on one device's event stream.

        on_update receives the complete current (most-recent `limit`) set on
        every change, ordered by descending timestamp.
        """

    @abstractmethod
    async def resolve(self, user_id: str, device_id: str, event_id: str) -> None:
        """Mark an event as resolved."""

    @abstractmethod
    async def delete(self, user_id: str, device_id: str, event_id: str) -> None:
        """Delete an event."""

    @abstractmethod
    async def create_event(
        self,
        user_id: str,
        device_id: str,
        timestamp: int,
        severity: Severity = Severity.MEDIUM,
        note: str = "",
    ) -> Event:
        """Create an event (manual test action)."""


class DeviceStatusStore(ABC):
    """Push channel on each device's status record."""

    @abstractmethod
    def subscribe_status(
        self,
        user_id: str,
        device_id: str,
        on_status: Callable[[dict[str, Any] | None], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """
        Open a push subscription on one device's status record.

        on_status receives the record's fields, or None when it does not exist.
        """


class NotificationFeed(ABC):
    """The external notification feed polled by the notification engine."""

    @abstractmethod
    async def fetch(self, user_id: str, device_id: str, days_back: int) -> list[RawNotification]:
        """Return notifications of the last days_back days."""


class NotificationStore(ABC):
    """Persisted per-user notification records."""

    @abstractmethod
    async def exists(self, user_id: str, notification_id: str) -> bool:
        """Return True when a record with this id is stored."""

    @abstractmethod
    async def write(self, user_id: str, record: NotificationRecord) -> None:
        """Store a new record."""

    @abstractmethod
    async def read_all(self, user_id: str) -> list[NotificationRecord]:
        """Return every record of the user, newest first."""

    @abstractmethod
    async def update_read_flag(self, user_id: str, notification_id: str, read: bool) -> None:
        """Set the read flag of one record."""

    @abstractmethod
    async def mark_all_read(self, user_id: str) -> int:
        """Set the read flag of every unread record; return how many changed."""


@dataclasses.dataclass
class LullabyBackend:
    """The set of collaborators one config entry works against."""

    registry: DeviceRegistry
    events: EventStore
    status: DeviceStatusStore
    feed: NotificationFeed
    notifications: NotificationStore
    close_callbacks: list[Callable[[], Any]] = dataclasses.field(default_factory=list)
    # Called periodically; each reports push channels that died on their own
    channel_checks: list[Callable[[], Any]] = dataclasses.field(default_factory=list)

    async def close(self) -> None:
        """Release every resource held by the collaborators."""
        for callback in self.close_callbacks:
            result = callback()
            if inspect.isawaitable(result):
                await result
        self.close_callbacks.clear()

    def check_channels(self) -> None:
        """Run every channel check; failures surface through on_error callbacks."""
        for check in self.channel_checks:
            check()
