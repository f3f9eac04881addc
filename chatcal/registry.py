from __future__ import annotations

import logging

from chatcal.models import Account, CalendarRef, ConversationId, TokenSet
from chatcal.persistence import AuthCache
from chatcal.store import ConversationStore

logger = logging.getLogger(__name__)


class RegistryError(LookupError):
    """User-correctable lookup failure; the message is shown as-is."""


class NoAccountsError(RegistryError):
    def __init__(self) -> None:
        super().__init__(
            "No authenticated accounts found. Please use /auth to connect your Google Calendar."
        )


class UnknownAccountError(RegistryError):
    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found.")


class InvalidIndexError(RegistryError):
    def __init__(self, index: int, count: int) -> None:
        self.index = index
        self.count = count
        if count:
            detail = f"valid range is 1-{count}"
        else:
            detail = "this account has no calendars"
        super().__init__(f"Invalid calendar index {index}: {detail}.")


def _parse_index(identifier: str) -> int | None:
    try:
        return int(identifier.strip())
    except ValueError:
        return None


class AccountRegistry:
    """Accounts, calendar rosters and disabled calendars per conversation.

    Account ids are handed out as ``len(accounts) + 1``. Individual accounts
    are never removed (only ``clear`` drops a whole conversation), so ids stay
    unique and gap-free for the lifetime of a conversation.
    """

    def __init__(self, store: ConversationStore, cache: AuthCache) -> None:
        self._store = store
        self._cache = cache

    # ---------------------------------------------------------------- accounts
    def register_account(
        self,
        conversation_id: ConversationId,
        tokens: TokenSet,
        calendars: list[CalendarRef],
        email: str | None = None,
    ) -> int:
        accounts = self._store.accounts.setdefault(conversation_id, [])
        account = Account(
            account_id=len(accounts) + 1,
            email=email,
            calendars=list(calendars),
            tokens=tokens,
        )
        accounts.append(account)
        logger.info(
            "Registered account %d for conversation %s with %d calendar(s)",
            account.account_id,
            conversation_id,
            len(account.calendars),
        )
        self._persist()
        return account.account_id

    def accounts(self, conversation_id: ConversationId) -> list[Account]:
        return list(self._store.accounts.get(conversation_id, []))

    def get_account(
        self, conversation_id: ConversationId, account_id: int | None
    ) -> Account | None:
        if account_id is None:
            return None
        for account in self._store.accounts.get(conversation_id, []):
            if account.account_id == account_id:
                return account
        return None

    def first_account(self, conversation_id: ConversationId) -> Account | None:
        accounts = self._store.accounts.get(conversation_id)
        return accounts[0] if accounts else None

    def list_accounts(
        self,
        conversation_id: ConversationId,
        *,
        include_disabled: bool = True,
        enabled_only: bool = False,
    ) -> str:
        accounts = self._store.accounts.get(conversation_id, [])
        if not accounts:
            return "No accounts connected.\n"

        lines: list[str] = []
        for account in accounts:
            lines.append(f"{account.label}:")
            if not account.calendars:
                lines.append("- No calendars found.")
                continue
            for index, calendar in enumerate(account.calendars, start=1):
                disabled = self.is_disabled(
                    conversation_id, account.account_id, calendar.id
                )
                if disabled and (enabled_only or not include_disabled):
                    continue
                line = f"  {index}. {calendar.display_name} (ID: {calendar.id})"
                if disabled:
                    line += " [disabled]"
                lines.append(line)
        return "\n".join(lines) + "\n"

    # ---------------------------------------------------------------- resolver
    def resolve_calendar(
        self,
        conversation_id: ConversationId,
        account_id: int,
        identifier: str,
        *,
        strict: bool = True,
    ) -> str:
        """Map a 1-based calendar index to its id; raw ids pass through."""

        index = _parse_index(identifier)
        if index is None:
            return identifier

        try:
            accounts = self._store.accounts.get(conversation_id)
            if not accounts:
                raise NoAccountsError()
            account = self.get_account(conversation_id, account_id)
            if account is None:
                raise UnknownAccountError(account_id)
            if not 1 <= index <= len(account.calendars):
                raise InvalidIndexError(index, len(account.calendars))
        except RegistryError as exc:
            if strict:
                raise
            logger.debug("Leaving calendar %r unresolved: %s", identifier, exc)
            return identifier
        return account.calendars[index - 1].id

    # ---------------------------------------------------------- enable/disable
    def is_disabled(
        self, conversation_id: ConversationId, account_id: int, calendar_id: str
    ) -> bool:
        disabled = self._store.disabled.get(conversation_id, {})
        return calendar_id in disabled.get(account_id, set())

    def set_disabled(
        self,
        conversation_id: ConversationId,
        account_id: int,
        calendar_id: str,
        disabled: bool,
    ) -> bool:
        """Returns True when the disabled set actually changed."""

        if not self._store.accounts.get(conversation_id):
            raise NoAccountsError()
        if self.get_account(conversation_id, account_id) is None:
            raise UnknownAccountError(account_id)

        per_account = self._store.disabled.setdefault(conversation_id, {})
        calendar_ids = per_account.get(account_id, set())
        changed = (calendar_id in calendar_ids) != disabled
        if disabled:
            calendar_ids.add(calendar_id)
            per_account[account_id] = calendar_ids
        else:
            calendar_ids.discard(calendar_id)
            if not calendar_ids:
                per_account.pop(account_id, None)
        self._persist()
        return changed

    def save_tokens(self, conversation_id: ConversationId, account_id: int) -> None:
        """Persist token material that was refreshed in place on an account."""

        logger.info(
            "Saving refreshed tokens for account %d of conversation %s",
            account_id,
            conversation_id,
        )
        self._persist()

    # ------------------------------------------------------------------- reset
    def clear(self, conversation_id: ConversationId) -> None:
        self._store.forget(conversation_id)
        logger.info("Cleared all state for conversation %s", conversation_id)
        self._persist()

    def _persist(self) -> None:
        self._cache.save(self._store)
