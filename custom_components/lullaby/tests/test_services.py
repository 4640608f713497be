"""
Tests for services.py — the resolve / delete / mark-read domain services.

Covers:
- async_setup registers every service with its schema
- calls are routed to the loaded entry whose snapshot holds the item
- unknown items and missing entries raise HomeAssistantError
- an explicit config_entry_id restricts the lookup
"""

from __future__ import annotations

import unittest
from unittest.mock import AsyncMock, MagicMock

import voluptuous as vol

from homeassistant.config_entries import ConfigEntryState
from homeassistant.exceptions import HomeAssistantError

from custom_components.lullaby.coordinator_data import CoordinatorData
from custom_components.lullaby.services import (
    EVENT_SCHEMA,
    NOTIFICATION_SCHEMA,
    async_setup_services,
)

from .test_common import make_event, make_record


def _make_entry(entry_id: str, data: CoordinatorData, state=ConfigEntryState.LOADED) -> MagicMock:
    coordinator = MagicMock()
    coordinator.data = data
    coordinator.async_resolve_event = AsyncMock()
    coordinator.async_delete_event = AsyncMock()
    coordinator.async_mark_notification_read = AsyncMock()
    entry = MagicMock()
    entry.entry_id = entry_id
    entry.state = state
    entry.runtime_data = coordinator
    return entry


def _register(entries) -> dict:
    """Register the services on a mocked hass and return name → handler."""
    hass = MagicMock()
    hass.config_entries.async_entries.return_value = entries
    async_setup_services(hass)
    return {
        call.args[1]: call.args[2]
        for call in hass.services.async_register.call_args_list
    }


def _call(**data) -> MagicMock:
    call = MagicMock()
    call.data = data
    return call


class TestServiceRegistration(unittest.TestCase):

    def test_all_services_registered(self):
        hass = MagicMock()

        async_setup_services(hass)

        registered = {
            call.args[1]: call.kwargs["schema"]
            for call in hass.services.async_register.call_args_list
        }
        self.assertEqual(registered, {
            "resolve_event": EVENT_SCHEMA,
            "delete_event": EVENT_SCHEMA,
            "mark_notification_read": NOTIFICATION_SCHEMA,
        })
        for call in hass.services.async_register.call_args_list:
            self.assertEqual(call.args[0], "lullaby")

    def test_event_schema_requires_event_id(self):
        with self.assertRaises(vol.Invalid):
            EVENT_SCHEMA({"device_id": "d1"})
        self.assertEqual(EVENT_SCHEMA({"event_id": "e1"}), {"event_id": "e1"})


class TestServiceRouting(unittest.IsolatedAsyncioTestCase):

    async def test_async_setup_registers_services(self):
        from custom_components.lullaby import async_setup

        hass = MagicMock()
        hass.data = {}

        self.assertTrue(await async_setup(hass, {}))
        self.assertEqual(hass.services.async_register.call_count, 3)

    async def test_resolve_routes_to_entry_holding_event(self):
        first = _make_entry("a", CoordinatorData(events=[make_event("e1", "d1")]))
        second = _make_entry("b", CoordinatorData(events=[make_event("e2", "d2")]))
        handlers = _register([first, second])

        await handlers["resolve_event"](_call(event_id="e2"))

        second.runtime_data.async_resolve_event.assert_awaited_once_with("e2", None)
        first.runtime_data.async_resolve_event.assert_not_awaited()

    async def test_delete_passes_device_id(self):
        entry = _make_entry("a", CoordinatorData(events=[make_event("e1", "d1")]))
        handlers = _register([entry])

        await handlers["delete_event"](_call(event_id="e1", device_id="d1"))

        entry.runtime_data.async_delete_event.assert_awaited_once_with("e1", "d1")

    async def test_event_on_other_device_not_found(self):
        entry = _make_entry("a", CoordinatorData(events=[make_event("e1", "d1")]))
        handlers = _register([entry])

        with self.assertRaises(HomeAssistantError):
            await handlers["resolve_event"](_call(event_id="e1", device_id="d2"))
        entry.runtime_data.async_resolve_event.assert_not_awaited()

    async def test_mark_notification_read(self):
        entry = _make_entry("a", CoordinatorData(notifications=[make_record("n1")]))
        handlers = _register([entry])

        await handlers["mark_notification_read"](_call(notification_id="n1"))

        entry.runtime_data.async_mark_notification_read.assert_awaited_once_with("n1")

    async def test_unknown_notification_raises(self):
        entry = _make_entry("a", CoordinatorData(notifications=[make_record("n1")]))
        handlers = _register([entry])

        with self.assertRaises(HomeAssistantError):
            await handlers["mark_notification_read"](_call(notification_id="missing"))

    async def test_unloaded_entries_are_ignored(self):
        entry = _make_entry(
            "a", CoordinatorData(events=[make_event("e1", "d1")]), state=ConfigEntryState.NOT_LOADED
        )
        handlers = _register([entry])

        with self.assertRaises(HomeAssistantError) as ctx:
            await handlers["resolve_event"](_call(event_id="e1"))
        self.assertIn("No loaded Lullaby entry", str(ctx.exception))

    async def test_config_entry_id_restricts_lookup(self):
        first = _make_entry("a", CoordinatorData(events=[make_event("e1", "d1")]))
        second = _make_entry("b", CoordinatorData(events=[make_event("e1", "d1")]))
        handlers = _register([first, second])

        await handlers["resolve_event"](_call(event_id="e1", config_entry_id="b"))

        second.runtime_data.async_resolve_event.assert_awaited_once_with("e1", None)
        first.runtime_data.async_resolve_event.assert_not_awaited()
