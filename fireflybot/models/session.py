"""
Conversation session model.

A Session tracks one chat's progress toward a complete draft transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from .transaction import DraftField, DraftTransaction


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_TYPE = "awaiting_type"
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_ACCOUNT = "awaiting_account"
    AWAITING_COUNTERPARTY = "awaiting_counterparty"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTING = "committing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_awaiting_field(self) -> bool:
        return self in FIELD_STATES.values()


TERMINAL_STATES = frozenset(
    {ConversationState.DONE, ConversationState.CANCELLED, ConversationState.FAILED}
)

# State that asks for each missing required field
FIELD_STATES = {
    DraftField.TYPE: ConversationState.AWAITING_TYPE,
    DraftField.AMOUNT: ConversationState.AWAITING_AMOUNT,
    DraftField.ACCOUNT: ConversationState.AWAITING_ACCOUNT,
    DraftField.COUNTERPARTY: ConversationState.AWAITING_COUNTERPARTY,
}

STATE_FIELDS = {state: draft_field for draft_field, state in FIELD_STATES.items()}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """Per-chat conversational state."""

    chat_id: str
    state: ConversationState = ConversationState.IDLE
    draft: Optional[DraftTransaction] = None
    prompted_field: Optional[DraftField] = None
    retries: int = 0
    commit_attempts: int = 0
    transaction_id: Optional[str] = None
    last_event_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime, idle_timeout: timedelta) -> bool:
        """Whether the session has been inactive longer than ``idle_timeout``."""
        return now - self.updated_at > idle_timeout

    def snapshot(self) -> dict[str, Any]:
        """Short description used in logs and administrator reports."""
        return {
            "chat_id": self.chat_id,
            "state": self.state.value,
            "draft": self.draft.to_dict() if self.draft else None,
            "retries": self.retries,
            "commit_attempts": self.commit_attempts,
            "transaction_id": self.transaction_id,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "chat_id": self.chat_id,
            "state": self.state.value,
            "draft": self.draft.to_dict() if self.draft else None,
            "prompted_field": (
                self.prompted_field.value if self.prompted_field else None
            ),
            "retries": self.retries,
            "commit_attempts": self.commit_attempts,
            "transaction_id": self.transaction_id,
            "last_event_id": self.last_event_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create a Session from its dictionary representation."""
        return cls(
            chat_id=str(data["chat_id"]),
            state=ConversationState(data["state"]),
            draft=DraftTransaction.from_dict(data["draft"]) if data.get("draft") else None,
            prompted_field=(
                DraftField(data["prompted_field"]) if data.get("prompted_field") else None
            ),
            retries=int(data.get("retries", 0)),
            commit_attempts=int(data.get("commit_attempts", 0)),
            transaction_id=data.get("transaction_id"),
            last_event_id=data.get("last_event_id"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
