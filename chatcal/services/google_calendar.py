from __future__ import annotations

import logging
from typing import Any

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from chatcal.config import Settings, settings
from chatcal.models import CalendarRef, TokenSet

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",
]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


class CalendarInsertError(RuntimeError):
    """Raised when the provider rejects or fails an event insert."""


class OAuthExchangeError(RuntimeError):
    """Raised when an authorization code cannot be turned into tokens."""


class GoogleOAuthManager:
    """Builds consent URLs, exchanges codes and rebuilds credentials from tokens."""

    def __init__(self, config: Settings = settings) -> None:
        self._config = config

    @property
    def configured(self) -> bool:
        return self._config.oauth_configured

    def _client_config(self) -> dict[str, Any]:
        return {
            "web": {
                "client_id": self._config.google_client_id,
                "client_secret": self._config.google_client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self._config.google_redirect_uri],
            }
        }

    def authorization_url(self, state: str) -> tuple[str, Flow]:
        """Returns the consent URL and the flow that must later exchange the code."""

        flow = Flow.from_client_config(
            self._client_config(),
            scopes=SCOPES,
            redirect_uri=self._config.google_redirect_uri,
        )
        url, _ = flow.authorization_url(
            access_type="offline",
            state=state,
            include_granted_scopes="true",
            prompt="consent",
        )
        return url, flow

    def exchange_code(self, flow: Flow, code: str) -> TokenSet:
        try:
            flow.fetch_token(code=code)
        except Exception as exc:  # oauthlib and requests errors share no base class
            raise OAuthExchangeError(str(exc)) from exc
        return self.tokens_from(flow.credentials)

    @staticmethod
    def tokens_from(creds: Credentials) -> TokenSet:
        return TokenSet(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expiry=creds.expiry,
            scopes=list(creds.scopes or SCOPES),
        )

    def credentials_for(self, tokens: TokenSet) -> Credentials:
        """Live credentials from stored token material plus static client config.

        Expired credentials are refreshed up front and the new access token is
        written back into ``tokens``, so the caller can persist it.
        """

        creds = self._build_credentials(tokens)
        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except Exception as exc:  # network failure or invalid_grant
                logger.warning("Failed to refresh Google token: %s", exc)
            else:
                tokens.access_token = creds.token
                tokens.expiry = creds.expiry
        return creds

    def _build_credentials(self, tokens: TokenSet) -> Credentials:
        expiry = tokens.expiry
        if expiry is not None and expiry.tzinfo is not None:
            expiry = expiry.replace(tzinfo=None)
        return Credentials(
            token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self._config.google_client_id,
            client_secret=self._config.google_client_secret,
            scopes=tokens.scopes or SCOPES,
            expiry=expiry,
        )


class GoogleCalendarClient:
    """Thin Google Calendar gateway; one discovery service per call."""

    def __init__(self, oauth: GoogleOAuthManager | None = None) -> None:
        self._oauth = oauth or GoogleOAuthManager()

    def _service(self, tokens: TokenSet, api: str = "calendar", version: str = "v3"):
        creds = self._oauth.credentials_for(tokens)
        return build(api, version, credentials=creds, cache_discovery=False)

    # ---------------------------------------------------------------- operations
    def insert_event(self, tokens: TokenSet, calendar_id: str, body: dict[str, Any]) -> str:
        try:
            created = (
                self._service(tokens)
                .events()
                .insert(calendarId=calendar_id, body=body)
                .execute()
            )
        except HttpError as exc:
            logger.error("Google API insert error on %s: %s", calendar_id, exc)
            raise CalendarInsertError(str(exc)) from exc
        event_id = created.get("id", "")
        logger.info("Inserted event %s into calendar %s", event_id, calendar_id)
        return event_id

    def list_calendars(self, tokens: TokenSet) -> list[CalendarRef]:
        response = self._service(tokens).calendarList().list().execute()
        return [
            CalendarRef(
                id=item.get("id", ""),
                display_name=item.get("summary") or "No Title",
                primary=bool(item.get("primary")),
            )
            for item in response.get("items", [])
        ]

    def fetch_email(self, tokens: TokenSet) -> str | None:
        try:
            info = self._service(tokens, "oauth2", "v2").userinfo().get().execute()
        except HttpError as exc:
            logger.warning("Could not fetch account email: %s", exc)
            return None
        return info.get("email")
