"""
Low-level access to the external notification feed.

Responsible for:
- Fetching the notifications a device produced during the last N days
- Mapping the feed items onto RawNotification
"""
import asyncio
import logging

from custom_components.lullaby.const import DEFAULT_API_URL, DEFAULT_DAYS_BACK
from custom_components.lullaby.errors import TransportError
from custom_components.lullaby.models import RawNotification
from custom_components.lullaby.requests import make_request, ApiResponseError
from custom_components.lullaby.store import NotificationFeed

_LOGGER = logging.getLogger(__name__)


def notifications_url(api_url: str, user_id: str, device_id: str) -> str:
    return f"{api_url.rstrip('/')}/notifications/users/{user_id}/devices/{device_id}"


async def fetch_notifications(
    api_url: str,
    user_id: str,
    device_id: str,
    days_back: int = DEFAULT_DAYS_BACK,
) -> list[RawNotification]:
    """
    Fetch the notifications of one device from the feed.

    The feed answers with {"count": N, "items": [...]}; a missing items list
    is treated as empty.

    Corresponding CURL command:
    curl -X 'GET' '<api_url>/notifications/users/<UserID>/devices/<DeviceID>?daysback=7'

    Raises:
        TransportError: on timeouts, error statuses and malformed responses
    """
    url = notifications_url(api_url, user_id, device_id)
    params = {"daysback": days_back}
    try:
        raw_json = await make_request("GET", url, params=params)
    except ApiResponseError as e:
        _LOGGER.error("Error while getting notifications: %s", e)
        raise TransportError(f"Notification feed returned HTTP {e.status}") from e
    except (asyncio.TimeoutError, TimeoutError) as e:
        _LOGGER.warning("Timeout while getting notifications")
        raise TransportError("Timeout while fetching notifications") from e
    except Exception as e:
        raise TransportError(f"Failed to fetch notifications: {e}") from e

    if not isinstance(raw_json, dict):
        raise TransportError("Unexpected notification feed response")

    items = raw_json.get("items") or []
    _LOGGER.debug(
        "Feed returned %s notifications for device %s (count=%s)",
        len(items), device_id, raw_json.get("count"),
    )
    return [RawNotification.from_json(item) for item in items if isinstance(item, dict)]


class HttpNotificationFeed(NotificationFeed):
    """NotificationFeed backed by the HTTP notification API."""

    def __init__(self, api_url: str = DEFAULT_API_URL) -> None:
        self.api_url = api_url

    async def fetch(self, user_id: str, device_id: str, days_back: int) -> list[RawNotification]:
        return await fetch_notifications(self.api_url, user_id, device_id, days_back)
