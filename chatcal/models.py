from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

ConversationId = int


class RecordModel(BaseModel):
    """Base for everything written to the persisted auth record."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class CalendarRef(RecordModel):
    id: str
    display_name: str = "No Title"
    primary: bool = False


class TokenSet(RecordModel):
    """Inert OAuth token material; never a live client."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None  # naive UTC, as google-auth expects
    scopes: list[str] = Field(default_factory=list)


class Account(RecordModel):
    account_id: int
    email: Optional[str] = None
    calendars: list[CalendarRef] = Field(default_factory=list)
    tokens: TokenSet = Field(default_factory=TokenSet, alias="credentialHandle")

    @property
    def label(self) -> str:
        if self.email:
            return f"Account {self.account_id} ({self.email})"
        return f"Account {self.account_id}"

    @property
    def primary_calendar_id(self) -> Optional[str]:
        """Concrete id behind the provider's ``primary`` alias, when known."""

        for calendar in self.calendars:
            if calendar.primary:
                return calendar.id
        return None


class ConversationRecord(RecordModel):
    accounts: list[Account] = Field(default_factory=list)
    disabled_calendars: dict[int, list[str]] = Field(default_factory=dict)


AuthSnapshot = TypeAdapter(dict[ConversationId, ConversationRecord])


class CandidateEvent(BaseModel):
    """One event proposed by the LLM and awaiting /confirm."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    description: str = ""
    start_time: str
    end_time: str
    account_id: Optional[int] = Field(default=None, alias="accountId")
    calendar: Optional[str] = None

    @field_validator("calendar", mode="before")
    @classmethod
    def _stringify_calendar(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value: Any) -> Any:
        return "" if value is None else value


class CommitOutcome(BaseModel):
    title: str
    status: Literal["created", "skipped", "failed"]
    message: str
    event_id: Optional[str] = None


@dataclass(slots=True)
class Session:
    candidates: list[CandidateEvent]
    original_text: str
    prior_trace: str = ""
    edit_history: str = ""

    def record_edit(
        self, candidates: list[CandidateEvent], json_text: str, delta: str
    ) -> None:
        self.candidates = candidates
        self.prior_trace = _append_line(self.prior_trace, json_text)
        self.edit_history = _append_line(self.edit_history, delta)


@dataclass(slots=True)
class ExtractionResult:
    candidates: list[CandidateEvent]
    json_text: str


@dataclass(slots=True)
class PendingAuthorization:
    conversation_id: ConversationId
    state: str
    flow: Any = field(default=None, repr=False)


def _append_line(existing: str, addition: str) -> str:
    return f"{existing}\n{addition}" if existing else addition
