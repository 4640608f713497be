"""
Platform for Lullaby sensor integration.
This module is responsible for setting up the last sync, last wet event and
unresolved events sensors of every device, plus the account-level unread
notifications sensor, and updating them from the coordinator snapshot.
"""
from __future__ import annotations

import logging
from datetime import datetime

from homeassistant.components.sensor import SensorEntity, SensorDeviceClass, SensorStateClass
from homeassistant.core import HomeAssistant
from homeassistant import config_entries
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity
from homeassistant.util import dt as dt_util

from custom_components.lullaby.coordinator import LullabyCoordinator

_LOGGER = logging.getLogger(__name__)


def _as_datetime(timestamp_ms: int | None) -> datetime | None:
    if timestamp_ms is None:
        return None
    return dt_util.utc_from_timestamp(timestamp_ms / 1000)


class LullabyDeviceSensor(CoordinatorEntity[LullabyCoordinator], SensorEntity):
    """Base for per-device sensors. Subclasses set _key, _label and implement native_value."""

    _key: str = ""
    _label: str = ""

    def __init__(self, coordinator: LullabyCoordinator, device_id: str) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._device_id = device_id
        self._attr_unique_id = f"lullaby_{coordinator.user_id}_{device_id}_{self._key}"
        self._attr_name = f"Lullaby sensor {device_id} {self._label}"

    @property
    def device_info(self) -> DeviceInfo | None:
        """Return the device info."""
        return self.coordinator.get_device_info(self._device_id)


class LullabyLastSyncSensor(LullabyDeviceSensor):
    """
    Representation of the last time a device reported to the backend.
    """
    _key = "last_sync"
    _label = "Last Sync"
    _attr_icon = "mdi:sync"

    @property
    def device_class(self) -> SensorDeviceClass | str | None:
        return SensorDeviceClass.TIMESTAMP

    @property
    def native_value(self) -> datetime | None:
        snapshot = self.coordinator.get_activity(self._device_id)
        if snapshot is None:
            return None
        return _as_datetime(snapshot.last_sync)


class LullabyLastEventSensor(LullabyDeviceSensor):
    """
    Representation of the most recent wet event of a device.
    """
    _key = "last_event"
    _label = "Last Wet Event"
    _attr_icon = "mdi:water-alert"

    @property
    def device_class(self) -> SensorDeviceClass | str | None:
        return SensorDeviceClass.TIMESTAMP

    @property
    def native_value(self) -> datetime | None:
        events = self.coordinator.data.events_for(self._device_id)
        if not events:
            return None
        # Events are kept newest first
        return _as_datetime(events[0].timestamp)

    @property
    def extra_state_attributes(self) -> dict:
        events = self.coordinator.data.events_for(self._device_id)
        if not events:
            return {}
        latest = events[0]
        return {
            "event_id": latest.id,
            "severity": latest.severity.value,
            "note": latest.note,
            "resolved": latest.resolved,
        }


class LullabyUnresolvedEventsSensor(LullabyDeviceSensor):
    """
    Representation of the number of unresolved events of a device.
    """
    _key = "unresolved_events"
    _label = "Unresolved Events"
    _attr_icon = "mdi:bed"

    @property
    def state_class(self) -> SensorStateClass | str | None:
        return SensorStateClass.MEASUREMENT

    @property
    def native_value(self) -> int:
        return sum(1 for e in self.coordinator.data.events_for(self._device_id) if not e.resolved)


class LullabyUnreadNotificationsSensor(CoordinatorEntity[LullabyCoordinator], SensorEntity):
    """
    Representation of the number of unread notifications of the account.
    """

    def __init__(self, coordinator: LullabyCoordinator) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._attr_unique_id = f"lullaby_{coordinator.user_id}_unread_notifications"
        self._attr_name = "Lullaby Unread Notifications"
        self._attr_icon = "mdi:bell-badge"

    @property
    def device_info(self) -> DeviceInfo | None:
        """Return the device info."""
        return self.coordinator.get_account_info()

    @property
    def state_class(self) -> SensorStateClass | str | None:
        return SensorStateClass.MEASUREMENT

    @property
    def native_value(self) -> int:
        return self.coordinator.data.unread_count

    @property
    def extra_state_attributes(self) -> dict:
        latest = self.coordinator.data.notifications[:1]
        attributes = {"error": self.coordinator.data.notifications_error}
        if latest:
            attributes["latest_title"] = latest[0].title
            attributes["latest_date"] = latest[0].date
        return attributes


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add sensors for passed config_entry in HA."""
    coordinator: LullabyCoordinator = config_entry.runtime_data

    entities: list[SensorEntity] = []
    for device_id in coordinator.data.device_ids:
        entities.append(LullabyLastSyncSensor(coordinator, device_id))
        entities.append(LullabyLastEventSensor(coordinator, device_id))
        entities.append(LullabyUnresolvedEventsSensor(coordinator, device_id))
    entities.append(LullabyUnreadNotificationsSensor(coordinator))

    _LOGGER.debug("Adding %s sensors", len(entities))
    async_add_entities(entities)
