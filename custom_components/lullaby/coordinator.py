"""
DataUpdateCoordinator for the Lullaby integration.

Responsibilities:
- Own the LullabyBackend (stores + feed) for the lifetime of a config entry.
- Drive two polled tiers at different frequencies:
    Tier 1 — device list      every DEVICES_INTERVAL seconds
    Tier 2 — notification feed every NOTIFICATIONS_INTERVAL seconds
- Keep one event push subscription and one DeviceActivityMonitor per device,
  rebuilt whenever the device set changes.
- Push CoordinatorData snapshots to entities as soon as anything changes.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from datetime import timedelta

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import (
    CONF_DAYS_BACK,
    CONF_ENTRY_NAME,
    CONF_USER_ID,
    DEFAULT_DAYS_BACK,
    DEVICES_INTERVAL,
    DOMAIN,
    MANUFACTURER,
    NOTIFICATIONS_INTERVAL,
    VERSION,
)
from .coordinator_data import CoordinatorData
from .device_activity import DeviceActivityMonitor, DeviceActivitySnapshot
from .errors import LullabyError
from .event_sync import EventSyncEngine
from .models import Event, Severity
from .notification_sync import NotificationSyncEngine
from .store import LullabyBackend

_LOGGER = logging.getLogger(__name__)


class LullabyCoordinator(DataUpdateCoordinator[CoordinatorData]):
    """
    Coordinator for the Lullaby integration.

    Polls the device list and the notification feed on their own tiers and
    merges push emissions (events, device status) into the shared snapshot.
    """

    def __init__(self, hass: HomeAssistant, entry_data: dict, backend: LullabyBackend, config_entry=None) -> None:
        """Initialize the coordinator from config-entry data."""
        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            config_entry=config_entry,
            # Use the fastest tier as the HA poll interval; each tier is gated
            # internally with its own timestamp.
            update_interval=timedelta(seconds=min(DEVICES_INTERVAL, NOTIFICATIONS_INTERVAL)),
        )

        self.backend = backend
        self._entry_data = entry_data
        self.user_id: str | None = entry_data.get(CONF_USER_ID) or None

        self.event_sync = EventSyncEngine(
            backend.registry,
            backend.events,
            on_change=self._on_events_changed,
            on_error=self._on_events_error,
        )
        self.notification_sync = NotificationSyncEngine(
            backend.feed,
            backend.notifications,
            days_back=int(entry_data.get(CONF_DAYS_BACK, DEFAULT_DAYS_BACK)),
        )
        # device_id → activity monitor
        self._monitors: dict[str, DeviceActivityMonitor] = {}

        # Tier timestamps — initialized to 0 so every tier fires on first call
        self._last_devices_fetch: float = 0.0
        self._last_notifications_fetch: float = 0.0

        # Flag to distinguish first call from subsequent ones
        self._initial_refresh_done: bool = False

        # Snapshot starts empty; entities must handle missing data until first refresh
        self.data = CoordinatorData()

    # ------------------------------------------------------------------
    # HA entry point
    # ------------------------------------------------------------------

    async def _async_update_data(self) -> CoordinatorData:
        """
        Called by HA on every update_interval tick.

        First call: loads devices, events and notifications sequentially and
        returns a fully populated snapshot. Subsequent calls fire due tiers as
        background tasks and return the current snapshot immediately.
        """
        if not self.user_id:
            raise UpdateFailed("Lullaby user is not authenticated")

        if not self._initial_refresh_done:
            if not await self._run_devices_tier():
                raise UpdateFailed("Failed to fetch Lullaby device list")
            await self._run_events_tier()
            await self._run_notifications_tier()
            self._initial_refresh_done = True
            return self.data

        now = time.monotonic()

        if now - self._last_devices_fetch >= DEVICES_INTERVAL:
            self.hass.async_create_task(self._run_devices_tier())

        if now - self._last_notifications_fetch >= NOTIFICATIONS_INTERVAL:
            self.hass.async_create_task(self._run_notifications_tier())

        return self.data

    # ------------------------------------------------------------------
    # Tier 1 — device list (+ push subscriptions)
    # ------------------------------------------------------------------

    async def _run_devices_tier(self) -> bool:
        """Fetch the device list; rebuild push subscriptions when it changed."""
        self._last_devices_fetch = time.monotonic()
        try:
            device_ids = await self.backend.registry.list_devices(self.user_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Failed to fetch device list: %s", exc)
            return False

        if (
            device_ids != self.data.device_ids
            or len(self._monitors) != len(device_ids)
            or set(self.event_sync.subscribed_devices) != set(device_ids)
        ):
            self._sync_devices(device_ids)

        activity = {
            device_id: snapshot
            for device_id, snapshot in self.data.activity.items()
            if device_id in device_ids
        }
        self.async_set_updated_data(
            dataclasses.replace(self.data, device_ids=list(device_ids), activity=activity)
        )
        return True

    def _sync_devices(self, device_ids: list[str]) -> None:
        """Tear down subscriptions of removed devices, open them for new ones."""
        _LOGGER.debug("Device set changed: %s", device_ids)
        self.event_sync.user_id = self.user_id
        try:
            self.event_sync.sync_devices(device_ids)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Failed to subscribe to device events: %s", exc)
            self._on_events_error(None, exc)

        for device_id in [d for d in self._monitors if d not in device_ids]:
            self._monitors.pop(device_id).stop()

        for device_id in device_ids:
            if device_id not in self._monitors:
                monitor = DeviceActivityMonitor(self.backend.status, on_change=self._on_activity_changed)
                self._monitors[device_id] = monitor
                monitor.watch(self.user_id, device_id)

    # ------------------------------------------------------------------
    # Events — bulk load + push merge
    # ------------------------------------------------------------------

    async def _run_events_tier(self) -> None:
        """Seed every device's event slice from the bulk fetch."""
        try:
            await self.event_sync.load_all(self.user_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Failed to load events: %s", exc)
            self.async_set_updated_data(dataclasses.replace(self.data, events_error=str(exc)))
            return
        self.async_set_updated_data(dataclasses.replace(self.data, events_error=None))

    def _on_events_changed(self, events: list[Event]) -> None:
        self.async_set_updated_data(
            dataclasses.replace(self.data, events=events, events_error=self.event_sync.last_error)
        )

    def _on_events_error(self, device_id: str | None, exc: Exception) -> None:
        self.async_set_updated_data(dataclasses.replace(self.data, events_error=str(exc)))

    # ------------------------------------------------------------------
    # Device activity
    # ------------------------------------------------------------------

    def _on_activity_changed(self, snapshot: DeviceActivitySnapshot) -> None:
        activity = dict(self.data.activity)
        activity[snapshot.device_id] = snapshot
        self.async_set_updated_data(dataclasses.replace(self.data, activity=activity))

    def get_activity(self, device_id: str) -> DeviceActivitySnapshot | None:
        return self.data.activity.get(device_id)

    def async_refresh_activity_labels(self, *_) -> None:
        """
        Re-render entities so the "time ago" labels stay current.

        Also asks the backend to report push channels that stopped streaming,
        which surfaces them through the usual on_error callbacks.
        """
        self.backend.check_channels()
        self.async_update_listeners()

    # ------------------------------------------------------------------
    # Tier 2 — notifications
    # ------------------------------------------------------------------

    async def _run_notifications_tier(self) -> None:
        """Pull the feed for every device, merge into the store, re-read it."""
        self._last_notifications_fetch = time.monotonic()
        error = None
        try:
            await self.notification_sync.refresh(self.user_id, self.data.device_ids)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Failed to refresh notifications: %s", exc)
            error = str(exc)

        self.async_set_updated_data(
            dataclasses.replace(
                self.data,
                notifications=self.notification_sync.notifications,
                notifications_error=error,
            )
        )

    async def async_refresh_notifications(self) -> None:
        """On-demand notification refresh."""
        await self._run_notifications_tier()

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    async def async_resolve_event(self, event_id: str, device_id: str | None = None) -> None:
        """Resolve an event; the push channel delivers the visible change."""
        try:
            await self.event_sync.resolve(event_id, device_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to resolve event %s: %s", event_id, exc)
            raise HomeAssistantError(f"Failed to resolve event {event_id}: {exc}") from exc

    async def async_delete_event(self, event_id: str, device_id: str | None = None) -> None:
        """Delete an event; the push channel delivers the visible change."""
        try:
            await self.event_sync.delete(event_id, device_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to delete event %s: %s", event_id, exc)
            raise HomeAssistantError(f"Failed to delete event {event_id}: {exc}") from exc

    async def async_create_test_event(self, device_id: str, severity: Severity = Severity.MEDIUM) -> Event:
        """Create a manual test event for device_id."""
        try:
            return await self.event_sync.create_test_event(device_id, severity)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to create test event for device %s: %s", device_id, exc)
            raise HomeAssistantError(f"Failed to create test event: {exc}") from exc

    async def async_mark_notification_read(self, notification_id: str) -> None:
        """Mark one notification read and push the updated snapshot."""
        try:
            await self.notification_sync.mark_read(self.user_id, notification_id)
        except LullabyError as exc:
            _LOGGER.error("Failed to mark notification %s as read: %s", notification_id, exc)
            raise HomeAssistantError(str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to mark notification %s as read: %s", notification_id, exc)
            raise HomeAssistantError("Failed to update notification status") from exc
        self._push_notifications()

    async def async_mark_all_notifications_read(self) -> None:
        """Mark every notification read and push the updated snapshot."""
        try:
            await self.notification_sync.mark_all_read(self.user_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to mark all notifications as read: %s", exc)
            raise HomeAssistantError("Failed to update notification statuses") from exc
        self._push_notifications()

    def _push_notifications(self) -> None:
        self.async_set_updated_data(
            dataclasses.replace(self.data, notifications=self.notification_sync.notifications)
        )

    # ------------------------------------------------------------------
    # Entity helper — device info dict
    # ------------------------------------------------------------------

    def get_device_info(self, device_id: str) -> dict | None:
        """Return the HA DeviceInfo dict for the given device_id."""
        if device_id not in self.data.device_ids:
            return None
        return {
            "identifiers": {(DOMAIN, f"{self.user_id}_{device_id}")},
            "name": f"Lullaby sensor {device_id}",
            "manufacturer": MANUFACTURER,
            "model": "Wetness sensor",
            "sw_version": VERSION,
        }

    def get_account_info(self) -> dict:
        """Return the HA DeviceInfo dict for the account-level entities."""
        return {
            "identifiers": {(DOMAIN, f"{self.user_id}_account")},
            "name": self._entry_data.get(CONF_ENTRY_NAME) or "Lullaby",
            "manufacturer": MANUFACTURER,
            "sw_version": VERSION,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_shutdown(self) -> None:
        """Clean up all resources owned by this coordinator."""
        await super().async_shutdown()
        self.event_sync.close()
        for monitor in self._monitors.values():
            monitor.stop()
        self._monitors.clear()
        await self.backend.close()

    @property
    def live_subscription_count(self) -> int:
        """Open event subscriptions plus open status subscriptions."""
        return len(self.event_sync.subscribed_devices) + sum(
            1 for m in self._monitors.values() if m.is_subscribed
        )

    @property
    def entry_data(self):
        return self._entry_data
