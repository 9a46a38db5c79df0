"""
Process Mapping Studio
Session Metadata Store.

The metadata document only grows: each artifact list is an order-preserving,
de-duplicated union across turns and ``project_id`` keeps its first value.
Writes go through the session row's version stamp; a concurrent writer causes
``StaleDataError`` and the write is replayed on the fresh document.
"""

import logging
import threading
from contextlib import contextmanager

from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConflictError, NotFoundError
from app.models.session import METADATA_LIST_KEYS, AssistantSession, empty_metadata

logger = logging.getLogger(__name__)


def merge_metadata(base: dict | None, delta: dict | None) -> dict:
    merged = empty_metadata()
    base = base or {}
    delta = delta or {}

    merged["project_id"] = base.get("project_id") or delta.get("project_id") or None
    for key in METADATA_LIST_KEYS:
        seen = set()
        out = []
        for item in list(base.get(key) or []) + list(delta.get(key) or []):
            if item and item not in seen:
                seen.add(item)
                out.append(item)
        merged[key] = out
    return merged


class MetadataStore:

    def __init__(self, session, max_retries: int = 3):
        self.session = session
        self.max_retries = max(1, max_retries)

    def commit(self, session_id: str, updated: dict) -> dict:
        """Merge *updated* into the stored document and persist it.

        Returns the document as written. Raises ``ConflictError`` when every
        attempt lost the version race.
        """
        for attempt in range(1, self.max_retries + 1):
            row = self.session.get(AssistantSession, session_id)
            if row is None:
                raise NotFoundError("AssistantSession", session_id)

            doc = merge_metadata(row.session_metadata, updated)
            row.metadata_json = doc
            if not row.project_id and doc["project_id"]:
                row.project_id = doc["project_id"]
            try:
                self.session.commit()
                return doc
            except StaleDataError:
                self.session.rollback()
                logger.warning("Stale metadata write for session %s (attempt %d/%d)",
                               session_id, attempt, self.max_retries,
                               extra={"session_id": session_id})
                # Drop the cached row so the next read sees the winner's version
                self.session.expire_all()

        raise ConflictError("AssistantSession", "version", session_id)


class TurnLocks:
    """
    Per-session locks so one process never runs two turns of a session at once.

    A session's lock lives only while some turn holds or waits on it; the
    last holder out removes it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, session_id: str):
        with self._guard:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = self._locks[session_id] = [threading.Lock(), 0]
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[session_id]
