import logging
import os
from datetime import timedelta

from homeassistant import config_entries, core
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
import homeassistant.helpers.config_validation as cv
from homeassistant.helpers.event import async_track_time_interval

from .api.feed import HttpNotificationFeed
from .api.firestore import FirestoreBackend
from .const import (
    ACTIVITY_LABEL_REFRESH_INTERVAL,
    CONF_API_URL,
    CONF_CREDENTIALS_PATH,
    CONF_PROJECT_ID,
    CONF_USER_ID,
    DEFAULT_API_URL,
    DOMAIN,
)
from .coordinator import LullabyCoordinator
from .requests import check_api_availability
from .services import async_setup_services

PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.BINARY_SENSOR, Platform.BUTTON]
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)
_LOGGER = logging.getLogger(__name__)


async def async_setup(hass: core.HomeAssistant, config: dict) -> bool:
    """Set up the integration."""
    hass.data.setdefault(DOMAIN, {})
    async_setup_services(hass)
    return True


async def _validate_credentials(hass: HomeAssistant, entry_data: dict) -> str | None:
    """
    Check the configured collaborators before the coordinator is built.

    Returns an error key ("invalid_auth", "cannot_connect") or None when the
    entry looks usable.
    """
    if not entry_data.get(CONF_USER_ID) or not entry_data.get(CONF_CREDENTIALS_PATH):
        return "invalid_auth"
    if not await hass.async_add_executor_job(os.path.isfile, entry_data[CONF_CREDENTIALS_PATH]):
        return "invalid_auth"
    if not await check_api_availability(entry_data.get(CONF_API_URL) or DEFAULT_API_URL):
        return "cannot_connect"
    return None


async def async_setup_entry(
    hass: core.HomeAssistant, entry: config_entries.ConfigEntry
) -> bool:
    """Set up platform from a ConfigEntry."""
    error = await _validate_credentials(hass, dict(entry.data))
    if error == "cannot_connect":
        raise ConfigEntryNotReady("Cannot reach the Lullaby notification API")
    if error == "invalid_auth":
        raise ConfigEntryNotReady("Lullaby user id or credentials are missing")

    try:
        firestore_backend = await hass.async_add_executor_job(
            FirestoreBackend.from_service_account,
            entry.data[CONF_CREDENTIALS_PATH],
            entry.data.get(CONF_PROJECT_ID) or None,
            hass.loop,
        )
    except Exception as exc:
        _LOGGER.error("Failed to initialize Firestore client: %s", exc)
        raise ConfigEntryNotReady(f"Failed to load Firestore credentials: {exc}") from exc

    feed = HttpNotificationFeed(entry.data.get(CONF_API_URL) or DEFAULT_API_URL)
    coordinator = LullabyCoordinator(
        hass, dict(entry.data), firestore_backend.as_backend(feed), config_entry=entry
    )
    try:
        await coordinator.async_config_entry_first_refresh()
    except Exception:
        # Release the watches and client channels opened so far
        await coordinator.async_shutdown()
        raise
    entry.runtime_data = coordinator

    entry.async_on_unload(
        entry.add_update_listener(_async_update_listener)
    )
    entry.async_on_unload(
        async_track_time_interval(
            hass,
            coordinator.async_refresh_activity_labels,
            timedelta(seconds=ACTIVITY_LABEL_REFRESH_INTERVAL),
        )
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    return True


async def async_remove_config_entry_device(
    hass: core.HomeAssistant, config_entry: config_entries.ConfigEntry, device_entry
) -> bool:
    """Remove a device from the integration."""
    return True


async def _async_update_listener(hass: HomeAssistant, config_entry):
    """Handle config options update."""
    # Reload the integration when the options change.
    await hass.config_entries.async_reload(config_entry.entry_id)


async def async_unload_entry(
    hass: core.HomeAssistant, entry: config_entries.ConfigEntry
) -> bool:
    """Unload a config entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        await entry.runtime_data.async_shutdown()
    return unloaded
