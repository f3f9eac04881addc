from __future__ import annotations

import logging
from typing import Protocol

from chatcal.commit import CommitExecutor
from chatcal.config import Settings, settings
from chatcal.controller import ConversationController
from chatcal.extraction import ModelChain, ProposalExtractor
from chatcal.models import ConversationId
from chatcal.persistence import AuthCache
from chatcal.registry import AccountRegistry
from chatcal.services.google_calendar import GoogleCalendarClient, GoogleOAuthManager
from chatcal.services.llm_client import build_backends
from chatcal.services.sqlite_store import PersistenceError, SnapshotSQLiteStore
from chatcal.store import ConversationStore

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, conversation_id: ConversationId, text: str) -> None: ...


class LogNotifier:
    """Used when no chat transport is running."""

    async def notify(self, conversation_id: ConversationId, text: str) -> None:
        logger.info("No chat transport; dropping message for %s: %s", conversation_id, text)


_controller: ConversationController | None = None
_notifier: Notifier = LogNotifier()


def build_controller(config: Settings = settings) -> ConversationController:
    store = ConversationStore()
    try:
        backend: SnapshotSQLiteStore | None = SnapshotSQLiteStore(config.sqlite_db_path)
    except PersistenceError as exc:
        logger.error("Persistence disabled, state will not survive restarts: %s", exc)
        backend = None
    cache = AuthCache(backend)
    cache.load(store)

    registry = AccountRegistry(store, cache)
    oauth = GoogleOAuthManager(config)
    calendar = GoogleCalendarClient(oauth)
    extractor = ProposalExtractor(
        chain=ModelChain(build_backends(config)),
        registry=registry,
        timezone=config.default_timezone,
    )
    committer = CommitExecutor(
        registry=registry, calendar=calendar, timezone=config.default_timezone
    )
    return ConversationController(
        store=store,
        registry=registry,
        extractor=extractor,
        committer=committer,
        calendar=calendar,
        oauth=oauth,
    )


def get_controller() -> ConversationController:
    global _controller
    if _controller is None:
        _controller = build_controller()
    return _controller


def get_notifier() -> Notifier:
    return _notifier


def set_notifier(notifier: Notifier | None) -> None:
    global _notifier
    _notifier = notifier or LogNotifier()
