from __future__ import annotations

import logging
import secrets
from typing import Callable

from chatcal.commit import CommitExecutor
from chatcal.extraction import ExtractionError, ProposalExtractor
from chatcal.models import CandidateEvent, ConversationId, PendingAuthorization, Session
from chatcal.prompts import EDIT_TEMPLATE, PREVIOUS_EDITS
from chatcal.registry import AccountRegistry, RegistryError
from chatcal.services.calendar_client import ICalendarClient, IOAuthManager
from chatcal.store import ConversationStore

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Welcome! Send me a description of your calendar event and I'll help add it "
    "to your Google Calendar.\n\n"
    "Commands:\n"
    "/auth - Authenticate with Google Calendar (repeat to add more accounts)\n"
    "/calendars [enabled] - List connected accounts and calendars\n"
    "/disable <accountId> <calendar> - Stop using a calendar (index or ID)\n"
    "/enable <accountId> <calendar> - Use a disabled calendar again\n"
    "/confirm - Confirm adding the proposed event(s)\n"
    "/edit <changes> - Edit the proposed event(s)\n"
    "/clear - Forget all connected accounts for this chat"
)
NOTHING_PENDING = "No pending events. Send an event description first."
NOTHING_TO_EDIT = (
    "No pending events available to edit. Please provide an event description first."
)
EMPTY_EDIT = "Please provide the update changes after the /edit command."
EXTRACTION_FAILED = (
    "Error parsing event description. Please ensure your description is clear and try again."
)
EDIT_FAILED = "Error parsing updated event description. Please try again."
UNRECOGNIZED = (
    "Unrecognized command. Please send an event description or use a valid command."
)
CONFIRM_HINT = "If these look good, type /confirm to add the events, or /edit to modify."


class AuthorizationError(RuntimeError):
    """OAuth callback could not be completed; message is safe to show."""

    def __init__(self, message: str, conversation_id: ConversationId | None = None) -> None:
        super().__init__(message)
        self.conversation_id = conversation_id


def format_proposal(events: list[CandidateEvent], hint: str = CONFIRM_HINT) -> str:
    reply = "Proposed events:"
    for index, event in enumerate(events, start=1):
        reply += (
            f"\n\nEvent {index}:"
            f"\nTitle: {event.title}"
            f"\nStart: {event.start_time}"
            f"\nEnd: {event.end_time}"
            f"\nDescription: {event.description}"
            f"\nAccount: {event.account_id if event.account_id is not None else 'default'}"
            f"\nCalendar: {event.calendar or 'primary'}"
        )
    return f"{reply}\n\n{hint}"


def parse_command(text: str) -> tuple[str | None, str]:
    """Split ``/verb@bot args`` into ``("verb", "args")``; free text gives ``None``."""

    stripped = text.strip()
    if not stripped.startswith("/"):
        return None, stripped
    head, _, rest = stripped.partition(" ")
    verb = head[1:].split("@", 1)[0].lower()
    return verb, rest.strip()


class ConversationController:
    """Per-conversation propose → edit → confirm lifecycle plus account commands."""

    def __init__(
        self,
        *,
        store: ConversationStore,
        registry: AccountRegistry,
        extractor: ProposalExtractor,
        committer: CommitExecutor,
        calendar: ICalendarClient,
        oauth: IOAuthManager | None = None,
        nonce: Callable[[], str] = lambda: secrets.token_urlsafe(12),
    ) -> None:
        self._store = store
        self._registry = registry
        self._extractor = extractor
        self._committer = committer
        self._calendar = calendar
        self._oauth = oauth
        self._nonce = nonce
        self._commands: dict[str, Callable[[ConversationId, str], list[str]]] = {
            "start": self._cmd_start,
            "help": self._cmd_start,
            "auth": self._cmd_auth,
            "calendars": self._cmd_calendars,
            "disable": self._cmd_disable,
            "enable": self._cmd_enable,
            "confirm": self._cmd_confirm,
            "edit": self._cmd_edit,
            "clear": self._cmd_clear,
        }

    def session(self, conversation_id: ConversationId) -> Session | None:
        return self._store.sessions.get(conversation_id)

    # ------------------------------------------------------------------ inbound
    def handle_message(self, conversation_id: ConversationId, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        verb, args = parse_command(text)
        if verb is None:
            return self.propose(conversation_id, args)
        handler = self._commands.get(verb)
        if handler is None:
            return [UNRECOGNIZED]
        try:
            return handler(conversation_id, args)
        except RegistryError as exc:
            return [str(exc)]

    def propose(self, conversation_id: ConversationId, text: str) -> list[str]:
        # a new description always replaces whatever was pending
        self._store.sessions.pop(conversation_id, None)
        try:
            result = self._extractor.extract(conversation_id, text)
        except ExtractionError as exc:
            logger.warning("Extraction failed for conversation %s: %s", conversation_id, exc)
            return [EXTRACTION_FAILED]

        candidates = self._resolve_calendars(conversation_id, result.candidates)
        self._store.sessions[conversation_id] = Session(
            candidates=candidates,
            original_text=text,
            prior_trace=result.json_text,
        )
        return [format_proposal(candidates)]

    # ----------------------------------------------------------------- commands
    def _cmd_start(self, conversation_id: ConversationId, args: str) -> list[str]:
        return [HELP_TEXT]

    def _cmd_auth(self, conversation_id: ConversationId, args: str) -> list[str]:
        if self._oauth is None or not self._oauth.configured:
            return ["Google authentication is not configured on this server."]
        state = f"{conversation_id}:{self._nonce()}"
        url, flow = self._oauth.authorization_url(state)
        self._store.replace_pending_auth(
            PendingAuthorization(conversation_id=conversation_id, state=state, flow=flow)
        )
        return [f"Please authenticate with Google Calendar by visiting this URL: {url}"]

    def _cmd_calendars(self, conversation_id: ConversationId, args: str) -> list[str]:
        if not self._registry.accounts(conversation_id):
            return [
                "No authenticated calendars found. "
                "Please use /auth to connect your Google Calendar."
            ]
        if args.lower() == "enabled":
            listing = self._registry.list_accounts(conversation_id, enabled_only=True)
            return ["Enabled Calendars and Accounts:\n" + listing]
        listing = self._registry.list_accounts(conversation_id, include_disabled=True)
        return ["Authenticated Calendars and Accounts:\n" + listing]

    def _cmd_disable(self, conversation_id: ConversationId, args: str) -> list[str]:
        return self._toggle(conversation_id, args, disabled=True)

    def _cmd_enable(self, conversation_id: ConversationId, args: str) -> list[str]:
        return self._toggle(conversation_id, args, disabled=False)

    def _toggle(self, conversation_id: ConversationId, args: str, *, disabled: bool) -> list[str]:
        verb = "disable" if disabled else "enable"
        parts = args.split()
        if len(parts) < 2 or not parts[0].lstrip("-").isdigit():
            return [f"Usage: /{verb} <accountId> <calendar index or ID>"]
        account_id = int(parts[0])
        calendar_id = self._registry.resolve_calendar(
            conversation_id, account_id, parts[1], strict=True
        )
        changed = self._registry.set_disabled(conversation_id, account_id, calendar_id, disabled)
        state = "disabled" if disabled else "enabled"
        if changed:
            return [f"Calendar {calendar_id} for Account {account_id} is now {state}."]
        return [f"Calendar {calendar_id} for Account {account_id} is already {state}."]

    def _cmd_confirm(self, conversation_id: ConversationId, args: str) -> list[str]:
        session = self._store.sessions.get(conversation_id)
        if session is None:
            return [NOTHING_PENDING]
        try:
            outcomes = self._committer.commit(conversation_id, session.candidates)
        finally:
            self._store.sessions.pop(conversation_id, None)
        return [outcome.message for outcome in outcomes]

    def _cmd_edit(self, conversation_id: ConversationId, args: str) -> list[str]:
        if not args:
            return [EMPTY_EDIT]
        session = self._store.sessions.get(conversation_id)
        if session is None:
            return [NOTHING_TO_EDIT]

        combined = EDIT_TEMPLATE.format(original=session.original_text, latest=args)
        if session.edit_history:
            combined += PREVIOUS_EDITS.format(history=session.edit_history)
        try:
            result = self._extractor.extract(conversation_id, combined, session.prior_trace)
        except ExtractionError as exc:
            logger.warning("Edit extraction failed for conversation %s: %s", conversation_id, exc)
            return [EDIT_FAILED]

        candidates = self._resolve_calendars(conversation_id, result.candidates)
        session.record_edit(candidates, result.json_text, args)
        return [format_proposal(candidates, "If these look good, type /confirm to add the events.")]

    def _cmd_clear(self, conversation_id: ConversationId, args: str) -> list[str]:
        self._registry.clear(conversation_id)
        return ["All connected accounts and pending events for this chat were cleared."]

    # ------------------------------------------------------------ authorization
    def complete_authorization(self, code: str, state: str) -> tuple[ConversationId, str]:
        conversation_part, _, nonce = (state or "").partition(":")
        try:
            conversation_id = int(conversation_part)
        except ValueError:
            raise AuthorizationError("Invalid state parameter.") from None
        if not nonce:
            raise AuthorizationError("Invalid state parameter.")

        pending = self._store.pending_auth.get(state)
        if pending is None or self._oauth is None:
            raise AuthorizationError("OAuth client not found for this session.", conversation_id)

        try:
            tokens = self._oauth.exchange_code(pending.flow, code)
            calendars = self._calendar.list_calendars(tokens)
            email = self._calendar.fetch_email(tokens) or "Unknown Email"
        except Exception as exc:  # provider failures end the attempt, not the process
            logger.exception("Error during OAuth callback for conversation %s", conversation_id)
            raise AuthorizationError(
                "There was an error during Google Calendar authentication.", conversation_id
            ) from exc

        account_id = self._registry.register_account(conversation_id, tokens, calendars, email)
        self._store.pending_auth.pop(state, None)

        message = f"Account {account_id} ({email}) connected. Available calendars:\n"
        for index, calendar in enumerate(calendars, start=1):
            message += f"{index}. {calendar.display_name} (ID: {calendar.id})\n"
        return conversation_id, message

    # ---------------------------------------------------------------- internals
    def _resolve_calendars(
        self, conversation_id: ConversationId, candidates: list[CandidateEvent]
    ) -> list[CandidateEvent]:
        for event in candidates:
            if not event.calendar:
                continue
            account = self._registry.get_account(conversation_id, event.account_id)
            if account is None:
                account = self._registry.first_account(conversation_id)
            account_id = account.account_id if account else (event.account_id or 0)
            event.calendar = self._registry.resolve_calendar(
                conversation_id, account_id, event.calendar, strict=False
            )
        return candidates
