"""
Platform for Lullaby buttons.
Account buttons mark notifications read or refresh the feed on demand; each
device gets a button that writes a manual test event.
"""
from __future__ import annotations

import logging

from homeassistant.components.button import ButtonEntity
from homeassistant.core import HomeAssistant
from homeassistant import config_entries
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from custom_components.lullaby.coordinator import LullabyCoordinator

_LOGGER = logging.getLogger(__name__)


class LullabyMarkAllReadButton(CoordinatorEntity[LullabyCoordinator], ButtonEntity):
    """Marks every stored notification of the account as read."""

    def __init__(self, coordinator: LullabyCoordinator) -> None:
        super().__init__(coordinator)
        self._attr_unique_id = f"lullaby_{coordinator.user_id}_mark_all_read"
        self._attr_name = "Lullaby Mark All Notifications Read"
        self._attr_icon = "mdi:email-open-multiple"

    @property
    def device_info(self) -> DeviceInfo | None:
        return self.coordinator.get_account_info()

    async def async_press(self) -> None:
        await self.coordinator.async_mark_all_notifications_read()


class LullabyRefreshNotificationsButton(CoordinatorEntity[LullabyCoordinator], ButtonEntity):
    """Polls the notification feed immediately."""

    def __init__(self, coordinator: LullabyCoordinator) -> None:
        super().__init__(coordinator)
        self._attr_unique_id = f"lullaby_{coordinator.user_id}_refresh_notifications"
        self._attr_name = "Lullaby Refresh Notifications"
        self._attr_icon = "mdi:bell-refresh"

    @property
    def device_info(self) -> DeviceInfo | None:
        return self.coordinator.get_account_info()

    async def async_press(self) -> None:
        await self.coordinator.async_refresh_notifications()


class LullabyTestEventButton(CoordinatorEntity[LullabyCoordinator], ButtonEntity):
    """
    Representation of a Lullaby test event button.
    Writes a manual event for the device; it shows up once the device's event
    stream re-emits.
    """

    def __init__(self, coordinator: LullabyCoordinator, device_id: str) -> None:
        super().__init__(coordinator)
        self._device_id = device_id
        self._attr_unique_id = f"lullaby_{coordinator.user_id}_{device_id}_test_event"
        self._attr_name = f"Lullaby sensor {device_id} Create Test Event"
        self._attr_icon = "mdi:water-plus"

    @property
    def device_info(self) -> DeviceInfo | None:
        return self.coordinator.get_device_info(self._device_id)

    async def async_press(self) -> None:
        event = await self.coordinator.async_create_test_event(self._device_id)
        _LOGGER.debug("Created test event %s for device %s", event.id, self._device_id)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: config_entries.ConfigEntry,
    async_add_entities,
):
    """Add buttons for passed config_entry in HA."""
    coordinator: LullabyCoordinator = config_entry.runtime_data

    entities: list[ButtonEntity] = [
        LullabyMarkAllReadButton(coordinator),
        LullabyRefreshNotificationsButton(coordinator),
    ]
    for device_id in coordinator.data.device_ids:
        entities.append(LullabyTestEventButton(coordinator, device_id))

    async_add_entities(entities)
