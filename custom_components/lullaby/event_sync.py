"""
EventSyncEngine — one ordered, deduplicated view of events across devices.

Responsibilities:
- Seed every device's slice from a bulk fetch (load_all).
- Keep each slice live through one push subscription per device.
- Apply the merge rule: an emission replaces only its own device's slice,
  then the global view is re-sorted newest first.
- Forward resolve / delete / create to the event store. The visible view only
  changes when the push channel re-emits, never optimistically.

No HA imports — callers receive changes through the on_change callback.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, Iterable

from .const import LIVE_EVENTS_LIMIT, TEST_EVENT_NOTE
from .errors import NotFoundError, TransportError, UnauthenticatedError, ValidationError
from .models import Event, Severity
from .store import DeviceRegistry, EventStore, Unsubscribe
from .subscriptions import SubscriptionSet
from .timestamps import now_ms

_LOGGER = logging.getLogger(__name__)


def _sort_key(event: Event) -> tuple[int, str, str]:
    return -event.timestamp, event.device_id, event.id


def merge_slices(slices: dict[str, tuple[Event, ...]]) -> list[Event]:
    """Flatten per-device slices into the global view, newest first."""
    return sorted((event for events in slices.values() for event in events), key=_sort_key)


def _owned(device_id: str, events: Iterable[Event]) -> tuple[Event, ...]:
    """One device's slice: owned by device_id, deduplicated by event id."""
    seen: dict[str, Event] = {}
    for event in events:
        if event.device_id != device_id:
            event = dataclasses.replace(event, device_id=device_id)
        seen.setdefault(event.id, event)
    return tuple(seen.values())


class EventSyncEngine:
    """
    Keyed per-device event slices plus the globally sorted view.

    The slices map (device_id → that device's current events) is the only
    mutable state; the sorted view is rebuilt from it on every slice update.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        store: EventStore,
        on_change: Callable[[list[Event]], None] | None = None,
        on_error: Callable[[str, Exception], None] | None = None,
        live_limit: int = LIVE_EVENTS_LIMIT,
    ) -> None:
        self._registry = registry
        self._store = store
        self._on_change = on_change
        self._on_error = on_error
        self._live_limit = live_limit
        self._user_id: str | None = None
        self._slices: dict[str, tuple[Event, ...]] = {}
        self._events: list[Event] = []
        self._subscriptions = SubscriptionSet()
        # device_id → token of the subscription currently allowed to deliver
        self._tokens: dict[str, object] = {}
        # device_id → number of push emissions merged so far
        self._pushes: dict[str, int] = {}
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def events(self) -> list[Event]:
        """The global view, newest first."""
        return list(self._events)

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @user_id.setter
    def user_id(self, user_id: str | None) -> None:
        if user_id != self._user_id:
            # A new identity never inherits the previous identity's channels
            self.close()
            self._slices.clear()
            self._publish()
        self._user_id = user_id

    @property
    def subscribed_devices(self) -> list[str]:
        return self._subscriptions.keys()

    def events_for(self, device_id: str) -> list[Event]:
        return list(self._slices.get(device_id, ()))

    def find(self, event_id: str, device_id: str | None = None) -> Event:
        """Locate an event in the current view."""
        for event in self._events:
            if event.id == event_id and (device_id is None or event.device_id == device_id):
                return event
        raise NotFoundError(f"Event {event_id} not found")

    # ------------------------------------------------------------------
    # Bulk load
    # ------------------------------------------------------------------

    async def load_all(self, user_id: str | None) -> list[Event]:
        """
        Fetch every device's full history and replace all slices.

        A device whose fetch fails keeps its previous slice and is logged; the
        load only fails as a whole when every device fails. A device whose
        push channel emitted while the fetch was pending keeps the pushed
        slice, which is never older than the fetch result.
        """
        if not user_id:
            raise UnauthenticatedError()
        self.user_id = user_id
        pushes_at_start = dict(self._pushes)

        device_ids = await self._registry.list_devices(user_id)
        results = await asyncio.gather(
            *[self._store.fetch_events(user_id, device_id) for device_id in device_ids],
            return_exceptions=True,
        )

        slices: dict[str, tuple[Event, ...]] = {}
        failures: dict[str, BaseException] = {}
        for device_id, result in zip(device_ids, results):
            if self._pushes.get(device_id, 0) != pushes_at_start.get(device_id, 0):
                # A push emission landed while the fetch was pending and is newer
                slices[device_id] = self._slices.get(device_id, ())
                continue
            if isinstance(result, BaseException):
                _LOGGER.warning("Failed to fetch events for device %s: %s", device_id, result)
                failures[device_id] = result
                slices[device_id] = self._slices.get(device_id, ())
            else:
                slices[device_id] = _owned(device_id, result)

        if device_ids and len(failures) == len(device_ids):
            first = next(iter(failures.values()))
            self.last_error = f"Failed to load events: {first}"
            raise TransportError(self.last_error) from first

        self.last_error = None
        self._slices = slices
        self._publish()
        return self.events

    # ------------------------------------------------------------------
    # Push channels
    # ------------------------------------------------------------------

    def subscribe(
        self,
        device_id: str,
        on_update: Callable[[list[Event]], None] | None = None,
    ) -> Unsubscribe:
        """
        Open the push subscription for one device's event stream.

        Every emission carries the device's complete current set and is
        merged into the global view; on_update also receives it. Any
        previous subscription for the device is torn down first.
        """
        self._subscriptions.close(device_id)
        handle = self._open(device_id, on_update)
        self._subscriptions.add(device_id, handle)
        return lambda: self._subscriptions.discard(device_id, handle)

    def sync_devices(self, device_ids: Iterable[str]) -> None:
        """Reconcile push subscriptions (and slices) with the device set."""
        wanted = list(dict.fromkeys(device_ids))
        try:
            self._subscriptions.reconcile(wanted, self._open)
        except Exception as exc:
            self.last_error = f"Failed to subscribe to device events: {exc}"
            raise
        removed = [d for d in self._slices if d not in wanted]
        for device_id in removed:
            del self._slices[device_id]
        if removed:
            self._publish()

    def apply_device_snapshot(self, device_id: str, events: Iterable[Event]) -> list[Event]:
        """Merge rule: replace only device_id's slice, then re-sort globally."""
        self._slices[device_id] = _owned(device_id, events)
        self._pushes[device_id] = self._pushes.get(device_id, 0) + 1
        self._publish()
        return self.events

    def close(self) -> None:
        """Tear down every push subscription."""
        self._subscriptions.close_all()

    def _open(
        self,
        device_id: str,
        on_update: Callable[[list[Event]], None] | None = None,
    ) -> Unsubscribe:
        """Open one store subscription; emissions after teardown are dropped."""
        user_id = self._require_user()
        token = object()
        self._tokens[device_id] = token
        _LOGGER.debug("Setting up event subscription for device %s", device_id)

        def _on_update(events: list[Event]) -> None:
            if self._tokens.get(device_id) is not token:
                return
            _LOGGER.debug("Real-time update for device %s: %s events", device_id, len(events))
            self.last_error = None
            self.apply_device_snapshot(device_id, events)
            if on_update is not None:
                on_update(list(events))

        def _on_error(exc: Exception) -> None:
            if self._tokens.get(device_id) is not token:
                return
            _LOGGER.warning("Event subscription error for device %s: %s", device_id, exc)
            self.last_error = f"Event subscription failed for device {device_id}: {exc}"
            if self._on_error is not None:
                self._on_error(device_id, exc)

        try:
            unsubscribe = self._store.subscribe_events(
                user_id, device_id, _on_update, _on_error, self._live_limit
            )
        except Exception:
            self._tokens.pop(device_id, None)
            raise

        def _teardown() -> None:
            if self._tokens.get(device_id) is token:
                del self._tokens[device_id]
            _LOGGER.debug("Cleaning up event subscription for device %s", device_id)
            unsubscribe()

        return _teardown

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    async def resolve(self, event_id: str, device_id: str | None = None) -> None:
        event = self.find(event_id, device_id)
        await self._store.resolve(self._require_user(), event.device_id, event.id)

    async def delete(self, event_id: str, device_id: str | None = None) -> None:
        event = self.find(event_id, device_id)
        await self._store.delete(self._require_user(), event.device_id, event.id)

    async def create_test_event(
        self,
        device_id: str,
        severity: Severity = Severity.MEDIUM,
        note: str = TEST_EVENT_NOTE,
    ) -> Event:
        """Write a manual event; it reaches the view through the push channel."""
        if not device_id:
            raise ValidationError("A device id is required to create an event")
        return await self._store.create_event(
            self._require_user(), device_id, now_ms(), severity, note
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_user(self) -> str:
        if not self._user_id:
            raise UnauthenticatedError()
        return self._user_id

    def _publish(self) -> None:
        self._events = merge_slices(self._slices)
        if self._on_change is not None:
            self._on_change(self.events)
