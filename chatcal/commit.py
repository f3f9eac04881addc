from __future__ import annotations

import logging
from typing import Any

from chatcal.models import Account, CandidateEvent, CommitOutcome, ConversationId
from chatcal.registry import AccountRegistry
from chatcal.services.calendar_client import ICalendarClient
from chatcal.utils.time import to_utc_instant

logger = logging.getLogger(__name__)

PRIMARY_CALENDAR = "primary"


class CommitExecutor:
    """Dispatches confirmed candidates one by one; no atomicity across a batch."""

    def __init__(
        self,
        *,
        registry: AccountRegistry,
        calendar: ICalendarClient,
        timezone: str,
    ) -> None:
        self._registry = registry
        self._calendar = calendar
        self._timezone = timezone

    def commit(
        self, conversation_id: ConversationId, candidates: list[CandidateEvent]
    ) -> list[CommitOutcome]:
        return [self.commit_one(conversation_id, event) for event in candidates]

    def commit_one(
        self, conversation_id: ConversationId, event: CandidateEvent
    ) -> CommitOutcome:
        account = self._registry.get_account(conversation_id, event.account_id)
        if account is None:
            account = self._registry.first_account(conversation_id)
        if account is None:
            return CommitOutcome(
                title=event.title,
                status="failed",
                message="No authenticated Google account found. Use /auth to authenticate.",
            )

        calendar_id = event.calendar or PRIMARY_CALENDAR
        if self._is_disabled(conversation_id, account, calendar_id):
            logger.info(
                "Skipping '%s': calendar %s of account %d is disabled",
                event.title,
                calendar_id,
                account.account_id,
            )
            return CommitOutcome(
                title=event.title,
                status="skipped",
                message=(
                    f"Skipped '{event.title}': calendar {calendar_id} "
                    f"for Account {account.account_id} is disabled."
                ),
            )

        tokens_before = account.tokens.model_copy()
        try:
            body = self._to_payload(event)
            event_id = self._calendar.insert_event(account.tokens, calendar_id, body)
        except Exception:  # one bad candidate must not abort the rest
            logger.exception("Error adding event '%s'", event.title)
            return CommitOutcome(
                title=event.title,
                status="failed",
                message=f"There was an error adding the event '{event.title}'. Please try again.",
            )
        finally:
            # the calendar client refreshes expired access tokens in place
            if account.tokens != tokens_before:
                self._registry.save_tokens(conversation_id, account.account_id)

        return CommitOutcome(
            title=event.title,
            status="created",
            event_id=event_id,
            message=(
                f"Event added to calendar ({calendar_id}) "
                f"for Account {account.account_id}: {event.title}"
            ),
        )

    def _is_disabled(
        self, conversation_id: ConversationId, account: Account, calendar_id: str
    ) -> bool:
        candidates = {calendar_id}
        if calendar_id == PRIMARY_CALENDAR and account.primary_calendar_id:
            candidates.add(account.primary_calendar_id)
        return any(
            self._registry.is_disabled(conversation_id, account.account_id, candidate)
            for candidate in candidates
        )

    def _to_payload(self, event: CandidateEvent) -> dict[str, Any]:
        start = to_utc_instant(event.start_time, self._timezone)
        end = to_utc_instant(event.end_time, self._timezone)
        return {
            "summary": event.title,
            "description": event.description,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }
