"""
SubscriptionSet — owns one push-subscription teardown handle per device.

This is a pure bookkeeping primitive with no HA or network dependencies.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable

from .store import Unsubscribe

_LOGGER = logging.getLogger(__name__)


class SubscriptionSet:
    """
    Teardown handles keyed by device id, owned by one engine.

    reconcile() brings the live set in line with the current device set:
    handles of removed devices are invoked and dropped before new ones are
    opened, unchanged devices keep their subscription. The number of live
    subscriptions therefore always equals the number of devices.
    """

    def __init__(self) -> None:
        # device_id → teardown handle
        self._handles: dict[str, Unsubscribe] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def keys(self) -> list[str]:
        return list(self._handles)

    def add(self, key: str, handle: Unsubscribe) -> None:
        """Register handle for key, tearing down any handle it replaces."""
        self.close(key)
        self._handles[key] = handle

    def reconcile(self, keys: Iterable[str], open_fn: Callable[[str], Unsubscribe]) -> None:
        """Close handles for vanished keys, then open handles for new keys."""
        wanted = list(dict.fromkeys(keys))
        for key in [k for k in self._handles if k not in wanted]:
            self.close(key)
        for key in wanted:
            if key not in self._handles:
                self._handles[key] = open_fn(key)

    def discard(self, key: str, handle: Unsubscribe) -> None:
        """Close key only while it is still owned by this exact handle."""
        if self._handles.get(key) is handle:
            self.close(key)

    def close(self, key: str) -> None:
        """Invoke and drop the handle for key, if any."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return
        try:
            handle()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.debug("Error tearing down subscription %s: %s", key, exc)

    def close_all(self) -> None:
        for key in list(self._handles):
            self.close(key)
