"""
Low-level HTTP request library for the Lullaby notification API.
This module handles HTTP requests and error handling. It never retries;
recovery is left to the caller (next poll or manual refresh).
"""
import asyncio
import logging

import aiohttp

from .const import REQUEST_TIMEOUT

_LOGGER = logging.getLogger(__name__)


class ApiResponseError(Exception):
    """Exception raised when API returns an error response."""
    def __init__(self, status: int, body):
        self.status = status
        self.body = body
        super().__init__(f"API Error (HTTP {status}): {body}")


async def check_api_availability(url: str, timeout: int = REQUEST_TIMEOUT) -> bool:
    """
    Check if the notification API is reachable by sending a HEAD request.

    Args:
        url: Base URL of the API
        timeout: Timeout in seconds for the HEAD request

    Returns:
        True if the API answered with any non-5xx status, False otherwise
    """
    try:
        timeout_config = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=timeout_config) as session:
            async with session.head(url) as response:
                if response.status >= 500:
                    _LOGGER.warning("API URL is not reachable (status %s)", response.status)
                    return False
                return True
    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while checking API URL")
        return False
    except Exception as e:
        _LOGGER.error("Error while checking API availability: %s", e)
        return False


async def make_request(
    method: str,
    url: str,
    headers: dict | None = None,
    payload: dict | None = None,
    params: dict | None = None,
    timeout: int = REQUEST_TIMEOUT,
):
    """
    Make a single HTTP request and return the parsed JSON response.

    Args:
        method: HTTP method (GET, POST, PUT)
        url: Target URL for the request
        headers: HTTP headers dictionary (optional)
        payload: JSON payload for POST/PUT requests (optional)
        params: URL query parameters (optional)
        timeout: Total timeout in seconds

    Raises:
        asyncio.TimeoutError: If the request times out
        ApiResponseError: If the API answered with an error status
        ValueError: If the response has an unexpected content type
    """
    method = method.upper()
    if method not in ("GET", "POST", "PUT"):
        raise ValueError(f"Unsupported HTTP method: {method}")

    timeout_config = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=timeout_config) as session:
        async with session.request(method, url, headers=headers, json=payload, params=params) as response:
            return await _process_response(response, url)


async def _process_response(response, url: str):
    """
    Process HTTP response and extract JSON data.

    Args:
        response: aiohttp response object
        url: Request URL (for logging)

    Returns:
        Parsed JSON response

    Raises:
        ValueError: If response has unexpected content type
        ApiResponseError: For error statuses
    """
    content_type = response.headers.get('Content-Type', '')

    # Handle successful response
    if response.status == 200:
        if 'application/json' in content_type:
            return await response.json()
        _LOGGER.warning(
            "Unexpected content type in successful response: %s (status %s) from %s",
            content_type, response.status, url
        )
        text = await response.text()
        raise ValueError(f"Expected JSON but got {content_type}: {text[:200]}")

    # Handle error responses
    if 'application/json' in content_type:
        try:
            body = await response.json()
        except Exception as e:
            _LOGGER.error(
                "Failed to parse error response as JSON from %s: %s (status %s)",
                url, e, response.status
            )
            raise
        raise ApiResponseError(response.status, body)

    # Non-JSON error response (e.g., HTML error page)
    text = await response.text()
    _LOGGER.warning(
        "Received non-JSON error response from %s: status %s, content-type: %s, body preview: %s",
        url, response.status, content_type, text[:200]
    )
    raise ApiResponseError(response.status, text[:200])
