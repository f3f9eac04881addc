from __future__ import annotations

from datetime import datetime, timezone

import httplib2
import pytest
from googleapiclient.errors import HttpError

from chatcal.config import Settings
from chatcal.models import TokenSet
from chatcal.services import google_calendar
from chatcal.services.google_calendar import (
    CalendarInsertError,
    GoogleCalendarClient,
    GoogleOAuthManager,
)


@pytest.fixture
def oauth_manager() -> GoogleOAuthManager:
    config = Settings(
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_redirect_uri="http://localhost:3000/oauth2callback",
    )
    return GoogleOAuthManager(config)


class FakeRequest:
    def __init__(self, result: dict | None = None, error: Exception | None = None) -> None:
        self._result = result or {}
        self._error = error

    def execute(self) -> dict:
        if self._error is not None:
            raise self._error
        return self._result


class FakeService:
    def __init__(self, request: FakeRequest) -> None:
        self.request = request
        self.calls: list[dict] = []

    def events(self) -> "FakeService":
        return self

    def calendarList(self) -> "FakeService":
        return self

    def insert(self, **kwargs) -> FakeRequest:
        self.calls.append(kwargs)
        return self.request

    def list(self) -> FakeRequest:
        return self.request


def test_credentials_rebuilt_from_token_material(oauth_manager) -> None:
    tokens = TokenSet(
        access_token="access",
        refresh_token="refresh",
        expiry=datetime(2030, 1, 1, tzinfo=timezone.utc),
    )

    creds = oauth_manager.credentials_for(tokens)

    assert creds.token == "access"
    assert creds.refresh_token == "refresh"
    assert creds.client_id == "client-id"
    assert creds.expiry == datetime(2030, 1, 1)
    assert GoogleOAuthManager.tokens_from(creds).refresh_token == "refresh"


def test_expired_credentials_refresh_into_token_set(monkeypatch, oauth_manager) -> None:
    def fake_refresh(self, request) -> None:
        self.token = "fresh"
        self.expiry = datetime(2031, 1, 1)

    monkeypatch.setattr(google_calendar.Credentials, "refresh", fake_refresh)
    tokens = TokenSet(access_token="stale", refresh_token="refresh", expiry=datetime(2020, 1, 1))

    creds = oauth_manager.credentials_for(tokens)

    assert creds.token == "fresh"
    assert tokens.access_token == "fresh"
    assert tokens.expiry == datetime(2031, 1, 1)
    assert tokens.refresh_token == "refresh"


def test_authorization_url_carries_state(oauth_manager) -> None:
    url, flow = oauth_manager.authorization_url("42:abc")

    assert url.startswith(google_calendar.AUTH_URI)
    assert "state=42%3Aabc" in url
    assert "access_type=offline" in url
    assert flow is not None


def test_insert_event_returns_id(monkeypatch, oauth_manager) -> None:
    service = FakeService(FakeRequest({"id": "evt-9"}))
    monkeypatch.setattr(google_calendar, "build", lambda *args, **kwargs: service)
    client = GoogleCalendarClient(oauth_manager)

    event_id = client.insert_event(TokenSet(access_token="a"), "cal-1", {"summary": "x"})

    assert event_id == "evt-9"
    assert service.calls == [{"calendarId": "cal-1", "body": {"summary": "x"}}]


def test_insert_event_wraps_http_errors(monkeypatch, oauth_manager) -> None:
    error = HttpError(httplib2.Response({"status": 403}), b"forbidden")
    monkeypatch.setattr(
        google_calendar, "build", lambda *args, **kwargs: FakeService(FakeRequest(error=error))
    )
    client = GoogleCalendarClient(oauth_manager)

    with pytest.raises(CalendarInsertError):
        client.insert_event(TokenSet(access_token="a"), "cal-1", {"summary": "x"})


def test_list_calendars_maps_summary(monkeypatch, oauth_manager) -> None:
    payload = {"items": [{"id": "a@x", "summary": "Team"}, {"id": "b@x", "primary": True}]}
    monkeypatch.setattr(
        google_calendar, "build", lambda *args, **kwargs: FakeService(FakeRequest(payload))
    )
    client = GoogleCalendarClient(oauth_manager)

    calendars = client.list_calendars(TokenSet(access_token="a"))

    assert [(c.id, c.display_name, c.primary) for c in calendars] == [
        ("a@x", "Team", False),
        ("b@x", "No Title", True),
    ]
