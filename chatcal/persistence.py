from __future__ import annotations

import logging

from pydantic import ValidationError

from chatcal.models import AuthSnapshot
from chatcal.services.sqlite_store import PersistenceError, SnapshotSQLiteStore
from chatcal.store import ConversationStore

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "auth_cache"


class AuthCache:
    """Best-effort durable copy of every conversation's accounts and disabled set.

    Each save writes a complete snapshot of all conversations, so concurrent
    saves simply leave the last writer's view in place.
    """

    def __init__(self, backend: SnapshotSQLiteStore | None) -> None:
        self._backend = backend

    def save(self, store: ConversationStore) -> bool:
        if self._backend is None:
            return False
        try:
            snapshot = {
                conversation_id: store.to_record(conversation_id)
                for conversation_id in store.conversation_ids()
            }
            data = AuthSnapshot.dump_json(snapshot, by_alias=True).decode("utf-8")
            self._backend.save_snapshot(SNAPSHOT_NAME, data)
        except (PersistenceError, OSError, ValueError) as exc:
            logger.error("Failed to save auth cache: %s", exc)
            return False
        logger.debug("Saved auth cache for %d conversation(s)", len(snapshot))
        return True

    def load(self, store: ConversationStore) -> int:
        """Restore persisted conversations into ``store``; returns how many."""

        if self._backend is None:
            return 0
        try:
            raw = self._backend.load_snapshot(SNAPSHOT_NAME)
        except PersistenceError as exc:
            logger.error("Failed to read auth cache, starting empty: %s", exc)
            return 0
        if not raw:
            return 0

        try:
            snapshot = AuthSnapshot.validate_json(raw)
        except ValidationError as exc:
            logger.error("Auth cache is corrupt, starting empty: %s", exc)
            return 0

        for conversation_id, record in snapshot.items():
            store.apply_record(conversation_id, record)
        logger.info("Loaded auth cache for %d conversation(s)", len(snapshot))
        return len(snapshot)
