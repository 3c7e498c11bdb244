"""Activity store: persisted activity collection with a live snapshot stream."""

import asyncio
import logging
from typing import Any, NamedTuple, Protocol

from pydantic import ValidationError

from timeblock.core import db_client
from timeblock.core.config import Constants
from timeblock.core.errors import StoreWriteError, SubscriptionError
from timeblock.domain.activity import Activity
from timeblock.domain.update_models import ActivityPatch


logger = logging.getLogger(__name__)

_CLOSED = object()


class StoreSnapshot(NamedTuple):
    """Full activity list of a scope, read after every write up to ``revision``."""

    revision: int
    activities: list[Activity]


class ActivityStore(Protocol):
    """Boundary the timer engine persists through.

    Writes return the scope revision they were committed as; snapshots carry the
    revision they are known to include.
    """

    async def load(self, scope: str) -> list[Activity]: ...

    async def subscribe(self, scope: str) -> "ActivitySubscription": ...

    async def create(self, scope: str, fields: dict[str, Any]) -> str: ...

    async def update(self, scope: str, activity_id: str, patch: ActivityPatch) -> int: ...

    async def batch_update(self, scope: str, patches: list[tuple[str, ActivityPatch]]) -> int: ...

    async def delete(self, scope: str, activity_id: str) -> int: ...


class ActivitySubscription:
    """Async iterator over full activity snapshots of one scope.

    Each item replaces the previous snapshot wholesale. A failed load is raised
    from the iterator as ``SubscriptionError``.
    """

    def __init__(self, store: "SqliteActivityStore", scope: str) -> None:
        self._store = store
        self.scope = scope
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    def __aiter__(self) -> "ActivitySubscription":
        return self

    async def __anext__(self) -> StoreSnapshot:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise SubscriptionError(f"Failed to load activities for {self.scope}: {item}") from item
        return item

    def deliver(self, item: StoreSnapshot | Exception) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def close(self) -> None:
        """Stop the stream; pending snapshots are discarded after the sentinel."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        self._store.unsubscribe(self)


def _parse_records(records: list[dict[str, Any]]) -> list[Activity]:
    activities = []
    for record in records:
        try:
            activities.append(Activity.model_validate(record))
        except ValidationError as e:
            logger.warning("Skipping malformed activity record", extra={"record_id": record.get("id"), "error": str(e)})
    return activities


class SqliteActivityStore:
    """Activity store persisted through ``db_client``.

    Every successful write bumps the scope's revision, then the full activity
    list of that scope is re-read and broadcast to its subscribers tagged with
    that revision. Broadcasts can finish out of order; the revision lets a
    reader tell a late one from a fresh one.
    """

    def __init__(self, *, collection: str = Constants.ACTIVITIES_COLLECTION) -> None:
        self._collection = collection
        self._subscribers: dict[str, list[ActivitySubscription]] = {}
        self._revisions: dict[str, int] = {}

    def revision(self, scope: str) -> int:
        return self._revisions.get(scope, 0)

    def _bump(self, scope: str) -> int:
        self._revisions[scope] = self.revision(scope) + 1
        return self._revisions[scope]

    async def load(self, scope: str) -> list[Activity]:
        """Read the whole current activity list of *scope*, page by page."""
        filter_query = f'scope = "{db_client.sanitize_param(scope)}"'
        per_page = Constants.DEFAULT_PER_PAGE_LIMIT
        records: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await db_client.list_records(
                collection=self._collection,
                filter_query=filter_query,
                page=page,
                per_page=per_page,
            )
            records.extend(batch)
            if len(batch) < per_page:
                break
            page += 1
        if page > 1:
            logger.info("Loaded activities over several pages", extra={"scope": scope, "pages": page})
        return _parse_records(records)

    async def subscribe(self, scope: str) -> ActivitySubscription:
        """Open a snapshot stream for *scope*; the current list is delivered first.

        Raises:
            SubscriptionError: If the initial snapshot cannot be loaded
        """
        revision = self.revision(scope)
        try:
            initial = await self.load(scope)
        except Exception as e:
            logger.error("subscription_failed", extra={"scope": scope, "error": str(e)})
            raise SubscriptionError(f"Failed to load activities for {scope}: {e}") from e

        subscription = ActivitySubscription(self, scope)
        subscription.deliver(StoreSnapshot(revision, initial))
        self._subscribers.setdefault(scope, []).append(subscription)
        logger.info("Subscribed to activities", extra={"scope": scope, "count": len(initial)})
        return subscription

    def unsubscribe(self, subscription: ActivitySubscription) -> None:
        subscribers = self._subscribers.get(subscription.scope, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    async def _publish(self, scope: str, revision: int) -> int:
        subscribers = list(self._subscribers.get(scope, []))
        if not subscribers:
            return revision
        try:
            snapshot: StoreSnapshot | Exception = StoreSnapshot(revision, await self.load(scope))
        except Exception as e:
            logger.error("snapshot_publish_failed", extra={"scope": scope, "error": str(e)})
            snapshot = e
        for subscription in subscribers:
            subscription.deliver(snapshot)
        return revision

    async def create(self, scope: str, fields: dict[str, Any]) -> str:
        try:
            record = await db_client.create_record(collection=self._collection, data={**fields, "scope": scope})
        except Exception as e:
            raise StoreWriteError("create", f"Failed to create activity: {e}") from e
        await self._publish(scope, self._bump(scope))
        return record["id"]

    async def update(self, scope: str, activity_id: str, patch: ActivityPatch) -> int:
        data = patch.to_store()
        if not data:
            return self.revision(scope)
        try:
            await db_client.update_record(collection=self._collection, record_id=activity_id, data=data)
        except Exception as e:
            raise StoreWriteError("update", f"Failed to update activity {activity_id}: {e}") from e
        return await self._publish(scope, self._bump(scope))

    async def batch_update(self, scope: str, patches: list[tuple[str, ActivityPatch]]) -> int:
        updates = [(activity_id, patch.to_store()) for activity_id, patch in patches]
        updates = [(activity_id, data) for activity_id, data in updates if data]
        if not updates:
            return self.revision(scope)
        try:
            await db_client.batch_update_records(collection=self._collection, updates=updates)
        except Exception as e:
            raise StoreWriteError("batch_update", f"Failed to update {len(updates)} activities: {e}") from e
        return await self._publish(scope, self._bump(scope))

    async def delete(self, scope: str, activity_id: str) -> int:
        try:
            await db_client.delete_record(collection=self._collection, record_id=activity_id)
        except Exception as e:
            raise StoreWriteError("delete", f"Failed to delete activity {activity_id}: {e}") from e
        return await self._publish(scope, self._bump(scope))
