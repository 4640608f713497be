"""
Domain services for the Lullaby integration.

Exposes the write paths that have no natural entity: resolving and deleting
a single wet event and marking a single notification read. Each call is
routed to the loaded config entry whose snapshot holds the referenced item.
"""
from __future__ import annotations

import logging

import homeassistant.helpers.config_validation as cv
import voluptuous as vol

from homeassistant.config_entries import ConfigEntryState
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError

from .const import DOMAIN
from .coordinator import LullabyCoordinator

_LOGGER = logging.getLogger(__name__)

SERVICE_RESOLVE_EVENT = "resolve_event"
SERVICE_DELETE_EVENT = "delete_event"
SERVICE_MARK_NOTIFICATION_READ = "mark_notification_read"

ATTR_CONFIG_ENTRY_ID = "config_entry_id"
ATTR_EVENT_ID = "event_id"
ATTR_DEVICE_ID = "device_id"
ATTR_NOTIFICATION_ID = "notification_id"

EVENT_SCHEMA = vol.Schema({
    vol.Required(ATTR_EVENT_ID): cv.string,
    vol.Optional(ATTR_DEVICE_ID): cv.string,
    vol.Optional(ATTR_CONFIG_ENTRY_ID): cv.string,
})

NOTIFICATION_SCHEMA = vol.Schema({
    vol.Required(ATTR_NOTIFICATION_ID): cv.string,
    vol.Optional(ATTR_CONFIG_ENTRY_ID): cv.string,
})


def _loaded_coordinators(hass: HomeAssistant, call: ServiceCall) -> list[LullabyCoordinator]:
    entry_id = call.data.get(ATTR_CONFIG_ENTRY_ID)
    coordinators = [
        entry.runtime_data
        for entry in hass.config_entries.async_entries(DOMAIN)
        if entry.state is ConfigEntryState.LOADED
        and (entry_id is None or entry.entry_id == entry_id)
    ]
    if not coordinators:
        raise HomeAssistantError("No loaded Lullaby entry")
    return coordinators


def _coordinator_for_event(hass: HomeAssistant, call: ServiceCall) -> LullabyCoordinator:
    event_id = call.data[ATTR_EVENT_ID]
    device_id = call.data.get(ATTR_DEVICE_ID)
    for coordinator in _loaded_coordinators(hass, call):
        for event in coordinator.data.events:
            if event.id == event_id and (device_id is None or event.device_id == device_id):
                return coordinator
    raise HomeAssistantError(f"Event {event_id} not found")


def _coordinator_for_notification(hass: HomeAssistant, call: ServiceCall) -> LullabyCoordinator:
    notification_id = call.data[ATTR_NOTIFICATION_ID]
    for coordinator in _loaded_coordinators(hass, call):
        if any(n.id == notification_id for n in coordinator.data.notifications):
            return coordinator
    raise HomeAssistantError(f"Notification {notification_id} not found")


def async_setup_services(hass: HomeAssistant) -> None:
    """Register the Lullaby domain services."""

    async def _resolve_event(call: ServiceCall) -> None:
        coordinator = _coordinator_for_event(hass, call)
        _LOGGER.debug("Resolving event %s", call.data[ATTR_EVENT_ID])
        await coordinator.async_resolve_event(call.data[ATTR_EVENT_ID], call.data.get(ATTR_DEVICE_ID))

    async def _delete_event(call: ServiceCall) -> None:
        coordinator = _coordinator_for_event(hass, call)
        _LOGGER.debug("Deleting event %s", call.data[ATTR_EVENT_ID])
        await coordinator.async_delete_event(call.data[ATTR_EVENT_ID], call.data.get(ATTR_DEVICE_ID))

    async def _mark_notification_read(call: ServiceCall) -> None:
        coordinator = _coordinator_for_notification(hass, call)
        await coordinator.async_mark_notification_read(call.data[ATTR_NOTIFICATION_ID])

    hass.services.async_register(DOMAIN, SERVICE_RESOLVE_EVENT, _resolve_event, schema=EVENT_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_DELETE_EVENT, _delete_event, schema=EVENT_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_MARK_NOTIFICATION_READ, _mark_notification_read, schema=NOTIFICATION_SCHEMA
    )
