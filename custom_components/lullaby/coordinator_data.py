"""
CoordinatorData — immutable snapshot of all Lullaby data shared with entities.

This is a pure data module with no HA or network dependencies.
"""
from __future__ import annotations

import dataclasses

from .device_activity import DeviceActivitySnapshot
from .models import Event, NotificationRecord


@dataclasses.dataclass(frozen=True)
class CoordinatorData:
    """
    Typed, copy-on-write snapshot of all Lullaby data.

    Always replace via dataclasses.replace() — never mutate in place.
    """

    # Device ids owned by the configured user
    device_ids: list[str] = dataclasses.field(default_factory=list)

    # All events of all devices, newest first
    events: list[Event] = dataclasses.field(default_factory=list)

    # Stored notifications, newest first
    notifications: list[NotificationRecord] = dataclasses.field(default_factory=list)

    # device_id → derived activity snapshot
    activity: dict[str, DeviceActivitySnapshot] = dataclasses.field(default_factory=dict)

    # Last failure of each pipeline, None when the last run succeeded
    events_error: str | None = None
    notifications_error: str | None = None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def events_for(self, device_id: str) -> list[Event]:
        return [e for e in self.events if e.device_id == device_id]
