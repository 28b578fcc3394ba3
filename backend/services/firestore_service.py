import asyncio
import logging
import os
from typing import Any, Callable, Dict, List, Optional

from config import settings

logger = logging.getLogger(__name__)

# Subscribers receive the full document after every committed write,
# or None once the document has been deleted.
SnapshotCallback = Callable[[Optional[Dict[str, Any]]], None]
Unsubscribe = Callable[[], None]


class FirestoreService:
    """
    Async-friendly Firestore wrapper using run_in_executor to avoid
    blocking the event loop. Switch to AsyncClient once stable.

    Each room is one document in its game's collection, keyed by room code.
    The store only offers read / unconditional partial update / subscribe;
    there is no compare-and-swap, so callers verify after writing
    (see services.room_sync).
    """

    def __init__(self):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Lazy import so the service can be instantiated before GCP creds exist
        from google.cloud import firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    def _doc_ref(self, collection: str, doc_id: str):
        return self.db.collection(collection).document(doc_id)

    # ── Document CRUD ─────────────────────────────────────────────────────────

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = await self._run(lambda: self._doc_ref(collection, doc_id).get())
        if doc.exists:
            return doc.to_dict()
        return None

    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]):
        await self._run(lambda: self._doc_ref(collection, doc_id).set(data))

    async def update(self, collection: str, doc_id: str, updates: Dict[str, Any]):
        """Partial merge. Dotted keys ("round.frozen_word") address nested fields."""
        await self._run(lambda: self._doc_ref(collection, doc_id).update(updates))

    async def delete(self, collection: str, doc_id: str):
        await self._run(lambda: self._doc_ref(collection, doc_id).delete())

    async def find_by_field(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self.db.collection(collection).where(filter=FieldFilter(field, "==", value))
        docs = await self._run(lambda: list(query.stream()))
        return [d.to_dict() for d in docs]

    # ── Subscriptions ─────────────────────────────────────────────────────────

    def subscribe(self, collection: str, doc_id: str, callback: SnapshotCallback) -> Unsubscribe:
        """on_snapshot fires on a Firestore background thread. Callers on the
        event loop must hop back with loop.call_soon_threadsafe."""

        def on_snapshot(doc_snapshots, changes, read_time):
            for snapshot in doc_snapshots:
                callback(snapshot.to_dict() if snapshot.exists else None)
            if not doc_snapshots:
                callback(None)

        watch = self._doc_ref(collection, doc_id).on_snapshot(on_snapshot)
        logger.info(f"[{doc_id}] Subscribed to {collection}")
        return watch.unsubscribe


_session_store = None


def get_session_store():
    """Lazy singleton — initialised on first call, not at import time.
    This prevents credential errors from crashing the app before FastAPI boots.
    STORE_BACKEND=memory swaps in the in-process store.
    Use as a FastAPI dependency: Depends(get_session_store)
    """
    global _session_store
    if _session_store is None:
        if settings.store_backend == "memory":
            from services.memory_store import InMemorySessionStore
            _session_store = InMemorySessionStore()
        else:
            _session_store = FirestoreService()
        logger.info(f"Session store backend: {type(_session_store).__name__}")
    return _session_store
