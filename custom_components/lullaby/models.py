"""
Domain models for the Lullaby integration.

This module contains pure data classes representing Lullaby entities and their
mapping to/from stored documents. These classes have no dependencies on HTTP,
Firestore or Home Assistant internals.
"""
from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any

from .timestamps import normalize_timestamp, now_ms

_LOGGER = logging.getLogger(__name__)


class Severity(str, Enum):
    """Intensity of a wet-detection event."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        try:
            return cls(value)
        except ValueError:
            return cls.MEDIUM


@dataclasses.dataclass(frozen=True)
class Event:
    """Representation of a single wet-detection incident."""

    id: str
    device_id: str
    timestamp: int
    severity: Severity = Severity.MEDIUM
    note: str = ""
    resolved: bool = False
    alert_sent: bool = False
    created_at: int = 0
    updated_at: int = 0

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the event across all of a user's devices."""
        return self.device_id, self.id

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any], device_id: str) -> "Event":
        """Map a stored event document onto an Event."""
        if data.get("timestamp") is None:
            _LOGGER.warning("Event %s has no timestamp, using current time", doc_id)
        created_at = (
            normalize_timestamp(data["createdAt"]) if data.get("createdAt") is not None else now_ms()
        )
        updated_at = (
            normalize_timestamp(data["updatedAt"]) if data.get("updatedAt") is not None else created_at
        )
        return cls(
            id=doc_id,
            device_id=data.get("deviceId") or device_id,
            timestamp=normalize_timestamp(data.get("timestamp")),
            severity=Severity.parse(data.get("intensity")),
            note=data.get("notes") or "",
            resolved=bool(data.get("isResolved", False)),
            alert_sent=bool(data.get("alertSent", False)),
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclasses.dataclass(frozen=True)
class RawNotification:
    """A notification item as returned by the external notification feed."""

    notification_text: str
    notification_time: str
    user_id: str
    device_id: str
    notification_date: str = ""
    id: str | None = None
    read: bool = False

    @classmethod
    def from_json(cls, item: dict[str, Any]) -> "RawNotification":
        return cls(
            notification_text=item.get("notificationText") or "",
            notification_time=str(item.get("notificationTime") or ""),
            user_id=item.get("userId") or "",
            device_id=item.get("deviceId") or "",
            notification_date=item.get("notificationDate") or "",
            id=item.get("id"),
            read=bool(item.get("read", False)),
        )


@dataclasses.dataclass(frozen=True)
class NotificationRecord:
    """A processed notification as persisted in the notification store."""

    id: str
    title: str
    message: str
    date: str
    timestamp: int
    read: bool
    notification_text: str
    notification_time: str
    notification_date: str
    user_id: str
    device_id: str
    created_at: int

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "date": self.date,
            "timestamp": self.timestamp,
            "read": self.read,
            "notificationText": self.notification_text,
            "notificationTime": self.notification_time,
            "notificationDate": self.notification_date,
            "userId": self.user_id,
            "deviceId": self.device_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "NotificationRecord":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            message=data.get("message", ""),
            date=data.get("date", ""),
            timestamp=normalize_timestamp(data.get("timestamp")),
            read=bool(data.get("read", False)),
            notification_text=data.get("notificationText", ""),
            notification_time=data.get("notificationTime", ""),
            notification_date=data.get("notificationDate", ""),
            user_id=data.get("userId", ""),
            device_id=data.get("deviceId", ""),
            created_at=normalize_timestamp(data.get("createdAt")),
        )
