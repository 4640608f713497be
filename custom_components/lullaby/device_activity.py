"""
Device activity (liveness) derivation.

Each DeviceActivityMonitor watches one device's status record over a push
channel and derives an online/offline state from the normalized last-sync
timestamp and a staleness window. The state is evaluated when an update is
observed; nothing re-evaluates it on a timer.

No HA imports — this is a pure asyncio-side state machine.
"""
from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any, Callable

from .const import STALENESS_WINDOW_MS
from .store import DeviceStatusStore, Unsubscribe
from .timestamps import normalize_timestamp, now_ms

_LOGGER = logging.getLogger(__name__)

LAST_SYNC_FIELD = "lastSyncTime"
ERROR_NOT_FOUND = "Device not found"
ERROR_CONNECTION = "Failed to connect to device status"


class ActivityState(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERRORED = "errored"
    NOT_FOUND = "not_found"


@dataclasses.dataclass(frozen=True)
class DeviceActivitySnapshot:
    """Derived activity of one device; never persisted."""

    device_id: str
    state: ActivityState = ActivityState.INITIALIZING
    last_sync: int | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state is ActivityState.ACTIVE


def evaluate_status(
    device_id: str,
    status: dict[str, Any] | None,
    now: int | None = None,
    staleness_window_ms: int = STALENESS_WINDOW_MS,
) -> DeviceActivitySnapshot:
    """Derive the activity snapshot for one observed status record."""
    if status is None:
        return DeviceActivitySnapshot(device_id, ActivityState.NOT_FOUND, error=ERROR_NOT_FOUND)

    raw = status.get(LAST_SYNC_FIELD)
    if raw is None or raw == "":
        _LOGGER.debug("Device %s has no %s", device_id, LAST_SYNC_FIELD)
        return DeviceActivitySnapshot(device_id, ActivityState.INACTIVE)

    last_sync = normalize_timestamp(raw)
    if now is None:
        now = now_ms()
    elapsed = now - last_sync
    _LOGGER.debug("Device %s last sync %.2f minutes ago", device_id, elapsed / 60_000)

    state = ActivityState.ACTIVE if elapsed <= staleness_window_ms else ActivityState.INACTIVE
    return DeviceActivitySnapshot(device_id, state, last_sync=last_sync)


class DeviceActivityMonitor:
    """
    Watches one (user, device) status record.

    watch() always tears down the previous subscription before opening a new
    one, so at most one subscription is live per monitor. Callbacks delivered
    by a torn-down subscription are discarded so they can never set state for
    the wrong device.
    """

    def __init__(
        self,
        status_store: DeviceStatusStore,
        on_change: Callable[[DeviceActivitySnapshot], None] | None = None,
        staleness_window_ms: int = STALENESS_WINDOW_MS,
    ) -> None:
        self._store = status_store
        self._on_change = on_change
        self._staleness_window_ms = staleness_window_ms
        self._unsubscribe: Unsubscribe | None = None
        self._generation = 0
        self._user_id: str | None = None
        self._device_id: str | None = None
        self.snapshot: DeviceActivitySnapshot | None = None

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    def watch(self, user_id: str | None, device_id: str | None) -> None:
        """(Re)start watching; a missing user or device is a no-op."""
        self.stop()
        self._user_id = user_id
        self._device_id = device_id
        if not user_id or not device_id:
            self.snapshot = None
            return

        self._set(DeviceActivitySnapshot(device_id))
        generation = self._generation
        _LOGGER.debug("Setting up device status listener for device %s, user %s", device_id, user_id)

        def _on_status(status: dict[str, Any] | None) -> None:
            if generation != self._generation:
                return
            self._set(evaluate_status(
                device_id, status, staleness_window_ms=self._staleness_window_ms
            ))

        def _on_error(exc: Exception) -> None:
            if generation != self._generation:
                return
            _LOGGER.warning("Device status listener error for device %s: %s", device_id, exc)
            self._set(DeviceActivitySnapshot(
                device_id, ActivityState.ERRORED, error=f"{ERROR_CONNECTION}: {exc}"
            ))

        try:
            self._unsubscribe = self._store.subscribe_status(user_id, device_id, _on_status, _on_error)
        except Exception as exc:  # noqa: BLE001
            _on_error(exc)

    def stop(self) -> None:
        """Tear down the live subscription, if any."""
        self._generation += 1
        if self._unsubscribe is None:
            return
        _LOGGER.debug("Cleaning up device status listener for device %s", self._device_id)
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        unsubscribe()

    def _set(self, snapshot: DeviceActivitySnapshot) -> None:
        self.snapshot = snapshot
        if self._on_change is not None:
            self._on_change(snapshot)
