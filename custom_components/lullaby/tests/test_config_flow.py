"""
Unit tests for config_flow.py — CustomFlow (initial setup) and OptionsFlowHandler (options editing).

Coverage:
- CustomFlow.async_step_user:
    * GET (no input) → returns FORM with step_id "user"
    * Valid full input → CREATE_ENTRY with correct title and all data fields
    * Empty entry_name      → FORM with errors["base"] == "entry_name_required"
    * Empty user_id         → FORM with errors["base"] == "user_id_required"
    * Empty credentials     → FORM with errors["base"] == "credentials_required"
    * Duplicate user id aborts the flow

- OptionsFlowHandler.async_step_init:
    * GET (no input) → returns FORM with step_id "init", defaults come from config_entry.data
    * Defaults from config_entry.options override config_entry.data
    * Valid user input → CREATE_ENTRY and async_update_entry with the new values

- _validate_credentials: missing fields, missing key file, unreachable API
"""

from __future__ import annotations

import unittest
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

from homeassistant.data_entry_flow import AbortFlow

from custom_components.lullaby.config_flow import CustomFlow, OptionsFlowHandler


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_mock_config_entry(data: Dict[str, Any], options: Dict[str, Any] | None = None) -> MagicMock:
    """Return a minimal mock ConfigEntry with .data and .options dicts."""
    entry = MagicMock()
    entry.data = dict(data)
    entry.options = dict(options) if options is not None else {}
    return entry


def _make_flow() -> CustomFlow:
    """Return a CustomFlow instance with a mocked hass."""
    flow = CustomFlow()
    flow.hass = MagicMock()
    return flow


def _make_options_flow(data: Dict[str, Any], options: Dict[str, Any] | None = None) -> OptionsFlowHandler:
    """Return an OptionsFlowHandler instance with a mocked hass."""
    entry = _make_mock_config_entry(data, options)
    handler = OptionsFlowHandler(entry)
    handler.hass = MagicMock()
    return handler


def _schema_defaults(result) -> dict:
    schema = result["data_schema"].schema
    return {
        str(key): key.default()
        for key in schema
        if hasattr(key, "default") and callable(key.default)
    }


VALIDATE = "custom_components.lullaby.config_flow._validate_credentials"

VALID_USER_INPUT = {
    "entry_name": "Kids Room",
    "user_id": "firebase-uid-1",
    "project_id": "lullaby-prod",
    "credentials_path": "/config/lullaby.json",
    "api_url": "https://lullaby.example.com/api",
    "notification_days_back": 7,
}

VALID_ENTRY_DATA = {
    "entry_name": "Original Name",
    "user_id": "firebase-uid-1",
    "project_id": "lullaby-prod",
    "credentials_path": "/config/original.json",
    "api_url": "https://lullaby.example.com/api",
    "notification_days_back": 7,
}

VALID_OPTIONS_INPUT = {
    "entry_name": "Updated Name",
    "user_id": "firebase-uid-2",
    "project_id": "",
    "credentials_path": "/config/updated.json",
    "api_url": "https://other.example.com/api",
    "notification_days_back": 14,
}


# ---------------------------------------------------------------------------
# CustomFlow — initial config
# ---------------------------------------------------------------------------

class TestCustomFlow(unittest.IsolatedAsyncioTestCase):
    """Tests for CustomFlow.async_step_user."""

    async def test_shows_form_on_get(self):
        flow = _make_flow()

        result = await flow.async_step_user(user_input=None)

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["step_id"], "user")
        self.assertEqual(result.get("errors", {}), {})

    async def test_form_defaults(self):
        flow = _make_flow()

        result = await flow.async_step_user(user_input=None)

        defaults = _schema_defaults(result)
        self.assertEqual(defaults["api_url"], "https://lullaby-server.vercel.app/api")
        self.assertEqual(defaults["notification_days_back"], 7)

    async def test_valid_input_creates_entry(self):
        flow = _make_flow()

        with patch(VALIDATE, new=AsyncMock(return_value=None)):
            result = await flow.async_step_user(user_input=dict(VALID_USER_INPUT))

        self.assertEqual(result["type"], "create_entry")
        self.assertEqual(result["title"], VALID_USER_INPUT["entry_name"])
        self.assertEqual(result["data"], VALID_USER_INPUT)

    async def test_empty_entry_name_returns_form_with_error(self):
        flow = _make_flow()

        result = await flow.async_step_user(user_input=dict(VALID_USER_INPUT, entry_name=""))

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["errors"]["base"], "entry_name_required")

    async def test_empty_user_id_returns_form_with_error(self):
        flow = _make_flow()

        result = await flow.async_step_user(user_input=dict(VALID_USER_INPUT, user_id=""))

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["errors"]["base"], "user_id_required")

    async def test_empty_credentials_returns_form_with_error(self):
        flow = _make_flow()

        result = await flow.async_step_user(user_input=dict(VALID_USER_INPUT, credentials_path=""))

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["errors"]["base"], "credentials_required")

    async def test_duplicate_user_aborts_flow(self):
        flow = _make_flow()

        with self.assertRaises(AbortFlow) as ctx:
            with patch.object(flow, "_async_abort_entries_match", side_effect=AbortFlow("already_configured")):
                await flow.async_step_user(user_input=dict(VALID_USER_INPUT))

        self.assertEqual(str(ctx.exception.reason), "already_configured")

    async def test_duplicate_check_uses_user_id_as_key(self):
        flow = _make_flow()

        with patch.object(flow, "_async_abort_entries_match") as mock_abort_match, \
             patch(VALIDATE, new=AsyncMock(return_value=None)):
            await flow.async_step_user(user_input=dict(VALID_USER_INPUT))

        mock_abort_match.assert_called_once_with({"user_id": VALID_USER_INPUT["user_id"]})

    async def test_cannot_connect_returns_form_with_error(self):
        flow = _make_flow()

        with patch(VALIDATE, new=AsyncMock(return_value="cannot_connect")):
            result = await flow.async_step_user(user_input=dict(VALID_USER_INPUT))

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["errors"]["base"], "cannot_connect")

    async def test_credential_check_skipped_when_fields_are_empty(self):
        flow = _make_flow()

        with patch(VALIDATE, new=AsyncMock(return_value=None)) as mock_validate:
            await flow.async_step_user(user_input=dict(VALID_USER_INPUT, user_id=""))

        mock_validate.assert_not_called()


# ---------------------------------------------------------------------------
# OptionsFlowHandler — options editing
# ---------------------------------------------------------------------------

class TestOptionsFlowHandler(unittest.IsolatedAsyncioTestCase):
    """Tests for OptionsFlowHandler.async_step_init."""

    async def test_shows_form_on_get(self):
        handler = _make_options_flow(VALID_ENTRY_DATA)

        result = await handler.async_step_init(user_input=None)

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["step_id"], "init")
        self.assertEqual(result.get("errors", {}), {})

    async def test_form_defaults_come_from_entry_data(self):
        handler = _make_options_flow(VALID_ENTRY_DATA, options={})

        result = await handler.async_step_init(user_input=None)

        defaults = _schema_defaults(result)
        for key, value in VALID_ENTRY_DATA.items():
            self.assertEqual(defaults[key], value)

    async def test_options_override_data_defaults(self):
        handler = _make_options_flow(VALID_ENTRY_DATA, options={"entry_name": "Options Name", "notification_days_back": 3})

        result = await handler.async_step_init(user_input=None)

        defaults = _schema_defaults(result)
        self.assertEqual(defaults["entry_name"], "Options Name")
        self.assertEqual(defaults["notification_days_back"], 3)
        self.assertEqual(defaults["user_id"], VALID_ENTRY_DATA["user_id"])

    async def test_valid_update_creates_entry(self):
        handler = _make_options_flow(VALID_ENTRY_DATA)

        with patch(VALIDATE, new=AsyncMock(return_value=None)):
            result = await handler.async_step_init(user_input=dict(VALID_OPTIONS_INPUT))

        self.assertEqual(result["type"], "create_entry")
        self.assertEqual(result["data"], VALID_OPTIONS_INPUT)

    async def test_valid_update_calls_async_update_entry(self):
        handler = _make_options_flow(VALID_ENTRY_DATA)

        with patch(VALIDATE, new=AsyncMock(return_value=None)):
            await handler.async_step_init(user_input=dict(VALID_OPTIONS_INPUT))

        handler.hass.config_entries.async_update_entry.assert_called_once()
        call = handler.hass.config_entries.async_update_entry.call_args
        self.assertEqual(call.kwargs["data"], VALID_OPTIONS_INPUT)
        self.assertEqual(call.kwargs["title"], "Updated Name")

    async def test_empty_user_id_returns_form_with_error(self):
        handler = _make_options_flow(VALID_ENTRY_DATA)

        result = await handler.async_step_init(user_input=dict(VALID_OPTIONS_INPUT, user_id=""))

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["errors"]["base"], "user_id_required")

    async def test_invalid_auth_returns_form_with_error(self):
        handler = _make_options_flow(VALID_ENTRY_DATA)

        with patch(VALIDATE, new=AsyncMock(return_value="invalid_auth")):
            result = await handler.async_step_init(user_input=dict(VALID_OPTIONS_INPUT))

        self.assertEqual(result["type"], "form")
        self.assertEqual(result["errors"]["base"], "invalid_auth")
        handler.hass.config_entries.async_update_entry.assert_not_called()


# ---------------------------------------------------------------------------
# _validate_credentials unit tests (the helper itself)
# ---------------------------------------------------------------------------

class TestValidateCredentials(unittest.IsolatedAsyncioTestCase):
    """Unit tests for the _validate_credentials module-level helper."""

    def _hass(self, key_file_exists: bool = True) -> MagicMock:
        hass = MagicMock()
        hass.async_add_executor_job = AsyncMock(return_value=key_file_exists)
        return hass

    async def test_returns_none_when_everything_is_reachable(self):
        from custom_components.lullaby import _validate_credentials

        with patch("custom_components.lullaby.check_api_availability", new=AsyncMock(return_value=True)):
            result = await _validate_credentials(self._hass(), dict(VALID_USER_INPUT))

        self.assertIsNone(result)

    async def test_missing_user_id_is_invalid_auth(self):
        from custom_components.lullaby import _validate_credentials

        result = await _validate_credentials(self._hass(), dict(VALID_USER_INPUT, user_id=""))

        self.assertEqual(result, "invalid_auth")

    async def test_missing_key_file_is_invalid_auth(self):
        from custom_components.lullaby import _validate_credentials

        result = await _validate_credentials(self._hass(key_file_exists=False), dict(VALID_USER_INPUT))

        self.assertEqual(result, "invalid_auth")

    async def test_unreachable_api_is_cannot_connect(self):
        from custom_components.lullaby import _validate_credentials

        with patch("custom_components.lullaby.check_api_availability", new=AsyncMock(return_value=False)) as check_api:
            result = await _validate_credentials(self._hass(), dict(VALID_USER_INPUT))

        self.assertEqual(result, "cannot_connect")
        check_api.assert_awaited_once_with(VALID_USER_INPUT["api_url"])
