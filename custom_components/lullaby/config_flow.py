"""Config flow for Lullaby bedwetting monitor integration."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional
import homeassistant.helpers.config_validation as cv
import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback

from . import _validate_credentials
from .const import (
    CONF_API_URL,
    CONF_CREDENTIALS_PATH,
    CONF_DAYS_BACK,
    CONF_ENTRY_NAME,
    CONF_PROJECT_ID,
    CONF_USER_ID,
    DEFAULT_API_URL,
    DEFAULT_DAYS_BACK,
    DOMAIN,
)

days_back_int = vol.All(vol.Coerce(int), vol.Range(min=1, max=90))

_LOGGER = logging.getLogger(__name__)

# field name → default shown on a fresh form
FIELD_DEFAULTS: Dict[str, Any] = {
    CONF_ENTRY_NAME: 'My Lullaby Account',
    CONF_USER_ID: '',
    CONF_PROJECT_ID: '',
    CONF_CREDENTIALS_PATH: '',
    CONF_API_URL: DEFAULT_API_URL,
    CONF_DAYS_BACK: DEFAULT_DAYS_BACK,
}


def _build_schema(defaults: Dict[str, Any]) -> vol.Schema:
    return vol.Schema(
        {
            vol.Required(CONF_ENTRY_NAME, default=defaults[CONF_ENTRY_NAME]): cv.string,
            vol.Required(CONF_USER_ID, default=defaults[CONF_USER_ID]): cv.string,
            vol.Optional(CONF_PROJECT_ID, default=defaults[CONF_PROJECT_ID]): cv.string,
            vol.Required(CONF_CREDENTIALS_PATH, default=defaults[CONF_CREDENTIALS_PATH]): cv.string,
            vol.Required(CONF_API_URL, default=defaults[CONF_API_URL]): cv.string,
            vol.Required(CONF_DAYS_BACK, default=defaults[CONF_DAYS_BACK]): days_back_int,
        }
    )


CONFIG_SCHEMA = _build_schema(FIELD_DEFAULTS)


def _check_required(user_input: Dict[str, Any], check_entry_name: bool = True) -> Dict[str, str]:
    """Return form errors for empty required fields."""
    errors: Dict[str, str] = {}
    # If entry_name is null or empty string, add error
    if check_entry_name and not user_input.get(CONF_ENTRY_NAME):
        errors['base'] = 'entry_name_required'
    # If user id is null or empty string, add error
    if not user_input.get(CONF_USER_ID):
        errors['base'] = 'user_id_required'
    # If credentials path is null or empty string, add error
    if not user_input.get(CONF_CREDENTIALS_PATH):
        errors['base'] = 'credentials_required'
    return errors


class CustomFlow(config_entries.ConfigFlow, domain=DOMAIN):
    data: Optional[Dict[str, Any]]

    async def async_step_user(self, user_input: Optional[Dict[str, Any]] = None):
        errors: Dict[str, str] = {}
        if user_input is not None:
            self.data = user_input
            errors = _check_required(self.data)
            if not errors:
                # One entry per Lullaby user
                self._async_abort_entries_match({CONF_USER_ID: self.data[CONF_USER_ID]})
                error = await _validate_credentials(self.hass, self.data)
                if error:
                    errors['base'] = error
            if not errors:
                return self.async_create_entry(title=f"{self.data[CONF_ENTRY_NAME]}", data=self.data)

        return self.async_show_form(step_id="user", data_schema=CONFIG_SCHEMA, errors=errors)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Get the options flow for this handler."""
        return OptionsFlowHandler(config_entry)


class OptionsFlowHandler(config_entries.OptionsFlow):
    """Handles options flow for the component."""

    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        self._entry = config_entry

    def _current_defaults(self) -> Dict[str, Any]:
        """Options override data, data overrides the fresh-form defaults."""
        defaults = dict(FIELD_DEFAULTS)
        for key in FIELD_DEFAULTS:
            if key in self._entry.data:
                defaults[key] = self._entry.data[key]
            if key in self._entry.options:
                defaults[key] = self._entry.options[key]
        return defaults

    async def async_step_init(
        self, user_input: Dict[str, Any] = None
    ) -> Dict[str, Any]:
        errors: Dict[str, str] = {}

        if user_input is not None:
            errors = _check_required(user_input, check_entry_name=False)
            if not errors:
                error = await _validate_credentials(self.hass, user_input)
                if error:
                    errors['base'] = error
            if not errors:
                new_data = {key: user_input.get(key, FIELD_DEFAULTS[key]) for key in FIELD_DEFAULTS}

                # Rename the entry in the UI; the update listener reloads it
                self.hass.config_entries.async_update_entry(
                    self._entry,
                    data=new_data,
                    title=new_data[CONF_ENTRY_NAME],
                )

                return self.async_create_entry(title=f"{new_data[CONF_ENTRY_NAME]}", data=new_data)

        return self.async_show_form(
            step_id="init", data_schema=_build_schema(self._current_defaults()), errors=errors
        )
