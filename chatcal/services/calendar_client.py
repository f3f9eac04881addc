from __future__ import annotations

from typing import Any, Protocol

from chatcal.models import CalendarRef, TokenSet


class ICalendarClient(Protocol):
    """Calendar provider operations used by the commit executor and /auth.

    Implementations may refresh ``tokens`` in place when the access token expired.
    """

    def insert_event(self, tokens: TokenSet, calendar_id: str, body: dict[str, Any]) -> str: ...

    def list_calendars(self, tokens: TokenSet) -> list[CalendarRef]: ...

    def fetch_email(self, tokens: TokenSet) -> str | None: ...


class IOAuthManager(Protocol):
    """Authorization-code flow used by /auth and the redirect callback."""

    @property
    def configured(self) -> bool: ...

    def authorization_url(self, state: str) -> tuple[str, Any]: ...

    def exchange_code(self, flow: Any, code: str) -> TokenSet: ...
