from .account import AccountRef
from .extraction import ExtractionCandidate, ExtractionContext, ExtractionResult
from .session import (
    FIELD_STATES,
    STATE_FIELDS,
    TERMINAL_STATES,
    ConversationState,
    Session,
)
from .transaction import DraftField, DraftTransaction, TransactionType

__all__ = [
    "AccountRef",
    "ConversationState",
    "DraftField",
    "DraftTransaction",
    "ExtractionCandidate",
    "ExtractionContext",
    "ExtractionResult",
    "FIELD_STATES",
    "STATE_FIELDS",
    "Session",
    "TERMINAL_STATES",
    "TransactionType",
]
