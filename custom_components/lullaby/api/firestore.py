"""
Google Cloud Firestore implementation of the Lullaby collaborator contracts.

Data layout:
    devices/{deviceId}                               registry (field userId)
    users/{uid}/devices/{deviceId}                   status record (lastSyncTime)
    users/{uid}/devices/{deviceId}/events/{eventId}  event history
    users/{uid}/notifications/{notificationId}       stored notifications

One-shot reads and writes go through the AsyncClient. Push channels use the
synchronous client's watch API, whose callbacks run on a background thread;
every emission is handed to the event loop with call_soon_threadsafe.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from custom_components.lullaby.const import LIVE_EVENTS_LIMIT
from custom_components.lullaby.errors import NotFoundError, TransportError
from custom_components.lullaby.models import Event, NotificationRecord, Severity
from custom_components.lullaby.store import (
    DeviceRegistry,
    DeviceStatusStore,
    ErrorCallback,
    EventStore,
    LullabyBackend,
    NotificationFeed,
    NotificationStore,
    Unsubscribe,
)

_LOGGER = logging.getLogger(__name__)

# Firestore rejects batches with more than 500 writes
_BATCH_SIZE = 500


class FirestoreBackend(DeviceRegistry, EventStore, DeviceStatusStore, NotificationStore):
    """Registry, event store, status store and notification store on Firestore."""

    def __init__(
        self,
        client: firestore.AsyncClient,
        watch_client: firestore.Client,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._client = client
        self._watch_client = watch_client
        self._loop = loop
        # live watch → callback reporting that it stopped on its own
        self._watches: dict[Any, Callable[[], None]] = {}

    @classmethod
    def from_service_account(
        cls,
        credentials_path: str,
        project_id: str | None,
        loop: asyncio.AbstractEventLoop,
    ) -> "FirestoreBackend":
        """
        Build both clients from a service-account key file.

        Reads the key file from disk; call it from an executor.
        """
        credentials = service_account.Credentials.from_service_account_file(credentials_path)
        project = project_id or credentials.project_id
        return cls(
            firestore.AsyncClient(project=project, credentials=credentials),
            firestore.Client(project=project, credentials=credentials),
            loop,
        )

    def as_backend(self, feed: NotificationFeed) -> LullabyBackend:
        return LullabyBackend(
            registry=self,
            events=self,
            status=self,
            feed=feed,
            notifications=self,
            close_callbacks=[self.close],
            channel_checks=[self.check_watches],
        )

    async def close(self) -> None:
        """Stop every watch that is still open and release both clients' channels."""
        for watch in list(self._watches):
            watch.unsubscribe()
        self._watches.clear()

        # A client only opens its channel on first use
        watch_api = getattr(self._watch_client, "_firestore_api_internal", None)
        if watch_api is not None:
            watch_api.transport.close()
        api = getattr(self._client, "_firestore_api_internal", None)
        if api is not None:
            await api.transport.close()

    def check_watches(self) -> int:
        """
        Report watches whose stream ended without being unsubscribed.

        The watch API has no error callback; a stream that fails for good
        just stops. Each stopped watch is reported once through its
        subscriber's on_error and dropped. Returns how many were found.
        """
        stopped = [watch for watch in self._watches if not watch.is_active]
        for watch in stopped:
            on_stopped = self._watches.pop(watch)
            on_stopped()
        return len(stopped)

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _device_ref(self, client, user_id: str, device_id: str):
        return client.collection("users").document(user_id).collection("devices").document(device_id)

    def _events_ref(self, client, user_id: str, device_id: str):
        return self._device_ref(client, user_id, device_id).collection("events")

    def _notifications_ref(self, user_id: str):
        return self._client.collection("users").document(user_id).collection("notifications")

    # ------------------------------------------------------------------
    # Device registry
    # ------------------------------------------------------------------

    async def list_devices(self, user_id: str) -> list[str]:
        query = self._client.collection("devices").where(filter=FieldFilter("userId", "==", user_id))
        try:
            return [doc.id async for doc in query.stream()]
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to list devices: {exc}") from exc

    # ------------------------------------------------------------------
    # Event store
    # ------------------------------------------------------------------

    async def fetch_events(self, user_id: str, device_id: str) -> list[Event]:
        query = self._events_ref(self._client, user_id, device_id).order_by(
            "timestamp", direction=firestore.Query.DESCENDING
        )
        try:
            return [
                Event.from_document(doc.id, doc.to_dict() or {}, device_id)
                async for doc in query.stream()
            ]
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to fetch events for device {device_id}: {exc}") from exc

    def subscribe_events(
        self,
        user_id: str,
        device_id: str,
        on_update: Callable[[list[Event]], None],
        on_error: ErrorCallback,
        limit: int = LIVE_EVENTS_LIMIT,
    ) -> Unsubscribe:
        query = (
            self._events_ref(self._watch_client, user_id, device_id)
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )

        def _deliver(docs) -> None:
            try:
                events = [Event.from_document(doc.id, doc.to_dict() or {}, device_id) for doc in docs]
            except Exception as exc:  # noqa: BLE001
                on_error(exc)
                return
            on_update(events)

        return self._watch(query, _deliver, on_error)

    async def resolve(self, user_id: str, device_id: str, event_id: str) -> None:
        ref = self._events_ref(self._client, user_id, device_id).document(event_id)
        try:
            await ref.update({"isResolved": True, "updatedAt": firestore.SERVER_TIMESTAMP})
        except gexc.NotFound as exc:
            raise NotFoundError("Event not found") from exc
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to resolve event {event_id}: {exc}") from exc

    async def delete(self, user_id: str, device_id: str, event_id: str) -> None:
        ref = self._events_ref(self._client, user_id, device_id).document(event_id)
        try:
            await ref.delete()
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to delete event {event_id}: {exc}") from exc

    async def create_event(
        self,
        user_id: str,
        device_id: str,
        timestamp: int,
        severity: Severity = Severity.MEDIUM,
        note: str = "",
    ) -> Event:
        data = {
            "deviceId": device_id,
            "timestamp": timestamp,
            "intensity": severity.value,
            "notes": note or "",
            "isResolved": False,
            "alertSent": False,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }
        try:
            _, ref = await self._events_ref(self._client, user_id, device_id).add(data)
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to create event: {exc}") from exc
        return Event(
            id=ref.id,
            device_id=device_id,
            timestamp=timestamp,
            severity=severity,
            note=note or "",
            created_at=timestamp,
            updated_at=timestamp,
        )

    # ------------------------------------------------------------------
    # Device status
    # ------------------------------------------------------------------

    def subscribe_status(
        self,
        user_id: str,
        device_id: str,
        on_status: Callable[[dict[str, Any] | None], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        ref = self._device_ref(self._watch_client, user_id, device_id)

        def _deliver(docs) -> None:
            snapshot = docs[0] if docs else None
            if snapshot is None or not snapshot.exists:
                on_status(None)
                return
            on_status(snapshot.to_dict() or {})

        return self._watch(ref, _deliver, on_error)

    # ------------------------------------------------------------------
    # Notification store
    # ------------------------------------------------------------------

    async def exists(self, user_id: str, notification_id: str) -> bool:
        try:
            snapshot = await self._notifications_ref(user_id).document(notification_id).get()
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to read notification {notification_id}: {exc}") from exc
        return snapshot.exists

    async def write(self, user_id: str, record: NotificationRecord) -> None:
        try:
            await self._notifications_ref(user_id).document(record.id).set(record.to_document())
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to store notification {record.id}: {exc}") from exc

    async def read_all(self, user_id: str) -> list[NotificationRecord]:
        query = self._notifications_ref(user_id).order_by("timestamp", direction=firestore.Query.DESCENDING)
        records = []
        try:
            async for doc in query.stream():
                data = doc.to_dict() or {}
                data.setdefault("id", doc.id)
                records.append(NotificationRecord.from_document(data))
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to read notifications: {exc}") from exc
        return records

    async def update_read_flag(self, user_id: str, notification_id: str, read: bool) -> None:
        try:
            await self._notifications_ref(user_id).document(notification_id).update({"read": read})
        except gexc.NotFound as exc:
            raise NotFoundError(f"Notification {notification_id} not found") from exc
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to update notification {notification_id}: {exc}") from exc

    async def mark_all_read(self, user_id: str) -> int:
        query = self._notifications_ref(user_id).where(filter=FieldFilter("read", "==", False))
        try:
            refs = [doc.reference async for doc in query.stream()]
            for start in range(0, len(refs), _BATCH_SIZE):
                batch = self._client.batch()
                for ref in refs[start:start + _BATCH_SIZE]:
                    batch.update(ref, {"read": True})
                await batch.commit()
        except gexc.GoogleAPICallError as exc:
            raise TransportError(f"Failed to mark notifications as read: {exc}") from exc
        return len(refs)

    # ------------------------------------------------------------------
    # Watch plumbing
    # ------------------------------------------------------------------

    def _watch(self, target, deliver: Callable[[list], None], on_error: ErrorCallback) -> Unsubscribe:
        """Start a watch on a query or document; deliveries run on the loop."""
        closed = False

        def _on_snapshot(docs, changes, read_time) -> None:
            if not closed:
                self._loop.call_soon_threadsafe(_deliver_on_loop, list(docs))

        def _deliver_on_loop(docs) -> None:
            # The watch may have been closed while the delivery was queued
            if not closed:
                deliver(docs)

        watch = target.on_snapshot(_on_snapshot)

        def _on_stopped() -> None:
            nonlocal closed
            closed = True
            _LOGGER.warning("Firestore watch stopped streaming")
            watch.unsubscribe()
            on_error(TransportError("Push channel stopped streaming"))

        self._watches[watch] = _on_stopped

        def _unsubscribe() -> None:
            nonlocal closed
            closed = True
            if self._watches.pop(watch, None) is not None:
                watch.unsubscribe()

        return _unsubscribe
