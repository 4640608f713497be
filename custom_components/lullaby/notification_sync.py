"""
NotificationSyncEngine — pull, merge, read.

Responsibilities:
- Pull the external notification feed for each of the user's devices.
- Merge pulled items into the notification store idempotently: derive a
  deterministic id, check for an existing record, write only when absent.
  Existing records (and their read flags) are never overwritten.
- Re-read the store; that read is the only source of the in-memory view.
- Mark notifications read (write-through, then mirror in memory).

No HA imports besides homeassistant.util.dt for the local "today".
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import date, timedelta
from typing import Iterable

from homeassistant.util import dt as dt_util

from .const import DEFAULT_DAYS_BACK
from .errors import NotFoundError, TransportError, UnauthenticatedError
from .models import NotificationRecord, RawNotification
from .store import NotificationFeed, NotificationStore
from .timestamps import normalize_timestamp, now_ms

_LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Record processing
# ---------------------------------------------------------------------------

def notification_id(raw: RawNotification) -> str:
    """Native id when present, else derived from owner and source time."""
    return raw.id or f"{raw.user_id}-{raw.notification_time}"


def split_title(text: str) -> tuple[str, str]:
    """Split source text into a title (first sentence) and the remaining body."""
    title = text.split(".", 1)[0] + "."
    return title, text[len(title):].strip()


def display_date(timestamp_ms: int, today: date | None = None) -> str:
    """Bucket a timestamp into Today / Yesterday / M/D/YYYY (local time)."""
    day = dt_util.as_local(dt_util.utc_from_timestamp(timestamp_ms / 1000)).date()
    if today is None:
        today = dt_util.now().date()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day.month}/{day.day}/{day.year}"


def build_record(raw: RawNotification, now: int | None = None, today: date | None = None) -> NotificationRecord:
    """Process a pulled item into the record written to the store."""
    title, message = split_title(raw.notification_text)
    timestamp = normalize_timestamp(raw.notification_time)
    return NotificationRecord(
        id=notification_id(raw),
        title=title,
        message=message,
        date=display_date(timestamp, today),
        timestamp=timestamp,
        read=raw.read,
        notification_text=raw.notification_text,
        notification_time=raw.notification_time,
        notification_date=raw.notification_date,
        user_id=raw.user_id,
        device_id=raw.device_id,
        created_at=now if now is not None else now_ms(),
    )


# ---------------------------------------------------------------------------
# NotificationSyncEngine
# ---------------------------------------------------------------------------

class NotificationSyncEngine:
    """
    Authoritative in-memory notification view for one user.

    The pull stage only ever populates the store; consumers read
    `notifications`, which always comes from the store (plus optimistic
    read-flag mirroring).
    """

    def __init__(
        self,
        feed: NotificationFeed,
        store: NotificationStore,
        days_back: int = DEFAULT_DAYS_BACK,
    ) -> None:
        self._feed = feed
        self._store = store
        self._days_back = days_back
        self._notifications: list[NotificationRecord] = []
        self._merge_lock = asyncio.Lock()

    @property
    def notifications(self) -> list[NotificationRecord]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def pull(self, user_id: str, device_id: str) -> list[RawNotification]:
        """Fetch the feed for one device; every item is tagged unread."""
        _LOGGER.debug("Polling notifications for user %s, device %s", user_id, device_id)
        items = await self._feed.fetch(user_id, device_id, self._days_back)
        return [dataclasses.replace(item, read=False) for item in items]

    async def merge(self, user_id: str, items: Iterable[RawNotification]) -> int:
        """
        Insert pulled items that are not stored yet; return how many were written.

        A failure on one item is logged and skipped so the rest of the batch
        still lands.
        """
        owned = [item for item in items if item.user_id == user_id and item.device_id]
        written = 0
        async with self._merge_lock:
            for item in owned:
                record_id = notification_id(item)
                try:
                    if await self._store.exists(user_id, record_id):
                        continue
                    await self._store.write(user_id, build_record(item))
                    written += 1
                except Exception as exc:  # noqa: BLE001
                    _LOGGER.warning("Failed to store notification %s: %s", record_id, exc)

        if written:
            _LOGGER.debug("Stored %s new notifications for user %s", written, user_id)
        else:
            _LOGGER.debug("No new notifications to store for user %s", user_id)
        return written

    async def read(self, user_id: str) -> list[NotificationRecord]:
        """Replace the in-memory view with the store's records, newest first."""
        records = await self._store.read_all(user_id)
        self._notifications = sorted(records, key=lambda r: r.timestamp, reverse=True)
        _LOGGER.debug("Retrieved %s notifications for user %s", len(records), user_id)
        return self.notifications

    async def refresh(self, user_id: str | None, device_ids: Iterable[str]) -> list[NotificationRecord]:
        """
        Pull and merge for every device, then re-read the store.

        The store is re-read even when some pulls failed so the view stays
        current; the first pull failure is raised afterwards.
        """
        if not user_id:
            raise UnauthenticatedError()

        device_ids = list(device_ids)
        pulled = await asyncio.gather(
            *[self.pull(user_id, device_id) for device_id in device_ids],
            return_exceptions=True,
        )

        failure: BaseException | None = None
        for device_id, result in zip(device_ids, pulled):
            if isinstance(result, BaseException):
                _LOGGER.warning("Failed to fetch notifications for device %s: %s", device_id, result)
                failure = failure or result
                continue
            await self.merge(user_id, result)

        await self.read(user_id)

        if failure is not None:
            raise TransportError(f"Failed to fetch notifications: {failure}") from failure
        return self.notifications

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    async def mark_read(self, user_id: str | None, notification_id: str) -> None:
        """Write the read flag through to the store, then mirror it locally."""
        if not user_id:
            raise UnauthenticatedError()
        if not any(n.id == notification_id for n in self._notifications):
            raise NotFoundError(f"Notification {notification_id} not found")

        await self._store.update_read_flag(user_id, notification_id, True)
        self._notifications = [
            dataclasses.replace(n, read=True) if n.id == notification_id else n
            for n in self._notifications
        ]

    async def mark_all_read(self, user_id: str | None) -> int:
        """Mark every stored notification read, then mirror it locally."""
        if not user_id:
            raise UnauthenticatedError()

        updated = await self._store.mark_all_read(user_id)
        self._notifications = [
            n if n.read else dataclasses.replace(n, read=True) for n in self._notifications
        ]
        _LOGGER.debug("Marked %s notifications as read for user %s", updated, user_id)
        return updated
