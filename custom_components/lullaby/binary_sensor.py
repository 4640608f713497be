"""
Platform for Lullaby connectivity sensors.
One binary sensor per device shows whether the device reported to the backend
within the staleness window.
"""
from __future__ import annotations

import logging

from homeassistant.components.binary_sensor import BinarySensorEntity, BinarySensorDeviceClass
from homeassistant.core import HomeAssistant
from homeassistant import config_entries
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from custom_components.lullaby.coordinator import LullabyCoordinator
from custom_components.lullaby.device_activity import ActivityState
from custom_components.lullaby.timestamps import format_time_ago, format_timestamp

_LOGGER = logging.getLogger(__name__)


class LullabyConnectivitySensor(CoordinatorEntity[LullabyCoordinator], BinarySensorEntity):
    """
    Representation of a Lullaby sensor's connectivity.
    On while the device synced within the staleness window.
    """

    def __init__(self, coordinator: LullabyCoordinator, device_id: str) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._device_id = device_id
        self._attr_unique_id = f"lullaby_{coordinator.user_id}_{device_id}_connectivity"
        self._attr_name = f"Lullaby sensor {device_id} Connectivity"
        self._attr_icon = "mdi:access-point-network"

    @property
    def device_info(self) -> DeviceInfo | None:
        """Return the device info."""
        return self.coordinator.get_device_info(self._device_id)

    @property
    def device_class(self) -> BinarySensorDeviceClass | str | None:
        return BinarySensorDeviceClass.CONNECTIVITY

    @property
    def available(self) -> bool:
        snapshot = self.coordinator.get_activity(self._device_id)
        if snapshot is None or snapshot.state == ActivityState.ERRORED:
            return False
        return super().available

    @property
    def is_on(self) -> bool | None:
        snapshot = self.coordinator.get_activity(self._device_id)
        if snapshot is None or snapshot.state == ActivityState.INITIALIZING:
            return None
        return snapshot.is_active

    @property
    def extra_state_attributes(self) -> dict:
        snapshot = self.coordinator.get_activity(self._device_id)
        if snapshot is None:
            return {}
        return {
            "state": snapshot.state.value,
            "last_sync": format_timestamp(snapshot.last_sync) if snapshot.last_sync is not None else None,
            "last_sync_ago": format_time_ago(snapshot.last_sync),
            "error": snapshot.error,
        }


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add connectivity sensors for passed config_entry in HA."""
    coordinator: LullabyCoordinator = config_entry.runtime_data

    entities = [
        LullabyConnectivitySensor(coordinator, device_id)
        for device_id in coordinator.data.device_ids
    ]
    _LOGGER.debug("Adding %s connectivity sensors", len(entities))
    async_add_entities(entities)
