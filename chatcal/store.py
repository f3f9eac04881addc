from __future__ import annotations

from dataclasses import dataclass, field

from chatcal.models import (
    Account,
    ConversationId,
    ConversationRecord,
    PendingAuthorization,
    Session,
)


@dataclass
class ConversationStore:
    """In-memory state for every conversation the process knows about.

    Sessions and pending authorizations live only here. Accounts and disabled
    calendars are mirrored to durable storage by ``AuthCache`` whenever the
    registry changes them.
    """

    sessions: dict[ConversationId, Session] = field(default_factory=dict)
    accounts: dict[ConversationId, list[Account]] = field(default_factory=dict)
    disabled: dict[ConversationId, dict[int, set[str]]] = field(default_factory=dict)
    pending_auth: dict[str, PendingAuthorization] = field(default_factory=dict)

    def conversation_ids(self) -> list[ConversationId]:
        return sorted(set(self.accounts) | set(self.disabled))

    def to_record(self, conversation_id: ConversationId) -> ConversationRecord:
        disabled = self.disabled.get(conversation_id, {})
        return ConversationRecord(
            accounts=list(self.accounts.get(conversation_id, [])),
            disabled_calendars={
                account_id: sorted(calendar_ids)
                for account_id, calendar_ids in disabled.items()
            },
        )

    def apply_record(
        self, conversation_id: ConversationId, record: ConversationRecord
    ) -> None:
        self.accounts[conversation_id] = list(record.accounts)
        self.disabled[conversation_id] = {
            account_id: set(calendar_ids)
            for account_id, calendar_ids in record.disabled_calendars.items()
        }

    def forget(self, conversation_id: ConversationId) -> None:
        self.sessions.pop(conversation_id, None)
        self.accounts.pop(conversation_id, None)
        self.disabled.pop(conversation_id, None)

    def replace_pending_auth(self, pending: PendingAuthorization) -> None:
        """Keep at most one outstanding consent flow per conversation."""

        stale = [
            state
            for state, entry in self.pending_auth.items()
            if entry.conversation_id == pending.conversation_id
        ]
        for state in stale:
            del self.pending_auth[state]
        self.pending_auth[pending.state] = pending
