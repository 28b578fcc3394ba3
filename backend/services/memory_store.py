"""
In-process session store with the same contract as FirestoreService.

Used for local play (STORE_BACKEND=memory) and the test suite. Documents are
deep-copied on the way in and out so callers never share mutable state with
the store, and subscribers are pushed the full document synchronously after
every committed write, as Firestore would (eventually) do.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from games.errors import SessionNotFound
from services.firestore_service import SnapshotCallback, Unsubscribe

logger = logging.getLogger(__name__)


def apply_update(doc: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``updates`` into ``doc`` in place. Dotted keys walk nested maps,
    creating intermediate maps where missing."""
    for path, value in updates.items():
        target = doc
        *parents, leaf = path.split(".")
        for key in parents:
            if not isinstance(target.get(key), dict):
                target[key] = {}
            target = target[key]
        target[leaf] = copy.deepcopy(value)
    return doc


class InMemorySessionStore:

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscribers: Dict[Tuple[str, str], List[SnapshotCallback]] = {}
        self.write_count = 0

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    def _notify(self, collection: str, doc_id: str) -> None:
        doc = self._docs(collection).get(doc_id)
        for callback in list(self._subscribers.get((collection, doc_id), [])):
            callback(copy.deepcopy(doc))

    # ── Document CRUD ─────────────────────────────────────────────────────────

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]):
        self._docs(collection)[doc_id] = copy.deepcopy(data)
        self.write_count += 1
        self._notify(collection, doc_id)

    async def update(self, collection: str, doc_id: str, updates: Dict[str, Any]):
        doc = self._docs(collection).get(doc_id)
        if doc is None:
            raise SessionNotFound(collection, doc_id)
        apply_update(doc, updates)
        self.write_count += 1
        self._notify(collection, doc_id)

    async def delete(self, collection: str, doc_id: str):
        if self._docs(collection).pop(doc_id, None) is not None:
            logger.info(f"[{doc_id}] Deleted from {collection}")
            self._notify(collection, doc_id)

    async def find_by_field(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        return [copy.deepcopy(d) for d in self._docs(collection).values() if d.get(field) == value]

    # ── Subscriptions ─────────────────────────────────────────────────────────

    def subscribe(self, collection: str, doc_id: str, callback: SnapshotCallback) -> Unsubscribe:
        key = (collection, doc_id)
        self._subscribers.setdefault(key, []).append(callback)
        # Firestore delivers the current snapshot immediately on listen
        doc = self._docs(collection).get(doc_id)
        callback(copy.deepcopy(doc))

        def unsubscribe() -> None:
            listeners = self._subscribers.get(key, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe
