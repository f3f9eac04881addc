from __future__ import annotations

from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from chatcal.commit import CommitExecutor
from chatcal.controller import ConversationController
from chatcal.extraction import ModelChain, ProposalExtractor
from chatcal.models import CalendarRef, TokenSet
from chatcal.persistence import AuthCache
from chatcal.registry import AccountRegistry
from chatcal.services.google_calendar import CalendarInsertError
from chatcal.services.sqlite_store import SnapshotSQLiteStore
from chatcal.store import ConversationStore

CHAT = 1001
TZ = "Europe/Riga"

WORK = CalendarRef(id="work@group.calendar.google.com", display_name="Work")
HOME = CalendarRef(id="home@group.calendar.google.com", display_name="Home")


class StubBackend:
    """Returns queued answers; an Exception instance in the queue is raised."""

    def __init__(self, name: str, *answers: Any) -> None:
        self.name = name
        self.answers = list(answers)
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if self.answers else ""
        if isinstance(answer, Exception):
            raise answer
        return answer


class StubCalendar:
    def __init__(self) -> None:
        self.inserted: list[tuple[str, str, dict]] = []
        self.fail_titles: set[str] = set()
        self.calendars = [WORK, HOME]
        self.email: str | None = "someone@example.com"
        self.refreshed_token: str | None = None

    def insert_event(self, tokens: TokenSet, calendar_id: str, body: dict) -> str:
        if self.refreshed_token is not None:
            tokens.access_token = self.refreshed_token
        if body["summary"] in self.fail_titles:
            raise CalendarInsertError("backend error")
        self.inserted.append((tokens.access_token or "", calendar_id, body))
        return f"evt-{len(self.inserted)}"

    def list_calendars(self, tokens: TokenSet) -> list[CalendarRef]:
        return list(self.calendars)

    def fetch_email(self, tokens: TokenSet) -> str | None:
        return self.email


class StubOAuth:
    configured = True

    def __init__(self) -> None:
        self.states: list[str] = []
        self.fail_exchange = False

    def authorization_url(self, state: str) -> tuple[str, Any]:
        self.states.append(state)
        return f"https://accounts.example/consent?state={state}", {"state": state}

    def exchange_code(self, flow: Any, code: str) -> TokenSet:
        if self.fail_exchange:
            raise RuntimeError("invalid_grant")
        return TokenSet(access_token=f"access-{code}", refresh_token="refresh")


def fixed_clock(tz: str) -> datetime:
    return datetime(2025, 5, 20, 9, 0, tzinfo=ZoneInfo(tz))


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def sqlite_backend(tmp_path):
    backend = SnapshotSQLiteStore(str(tmp_path / "chatcal.db"))
    yield backend
    backend.close()


@pytest.fixture
def cache(sqlite_backend) -> AuthCache:
    return AuthCache(sqlite_backend)


@pytest.fixture
def registry(store, cache) -> AccountRegistry:
    return AccountRegistry(store, cache)


@pytest.fixture
def calendar() -> StubCalendar:
    return StubCalendar()


@pytest.fixture
def oauth() -> StubOAuth:
    return StubOAuth()


@pytest.fixture
def connect(registry):
    """Registers an account with the Work and Home calendars."""

    def _connect(chat: int = CHAT, email: str | None = "someone@example.com") -> int:
        return registry.register_account(
            chat, TokenSet(access_token=f"token-{email}"), [WORK, HOME], email
        )

    return _connect


@pytest.fixture
def make_controller(store, registry, calendar, oauth):
    def _make(*backends: StubBackend) -> ConversationController:
        extractor = ProposalExtractor(
            chain=ModelChain(backends),
            registry=registry,
            timezone=TZ,
            clock=fixed_clock,
        )
        committer = CommitExecutor(registry=registry, calendar=calendar, timezone=TZ)
        return ConversationController(
            store=store,
            registry=registry,
            extractor=extractor,
            committer=committer,
            calendar=calendar,
            oauth=oauth,
            nonce=lambda: "nonce",
        )

    return _make

