"""
Conversation layer: the state machine and the service that drives it.

Structure:
- machine.py: Pure transition function and its effects
- service.py: Runs effects against the extractor, ledger and session store
- locks.py: Per-chat serialization
- messages.py: User-facing text
"""

from .locks import ChatLocks
from .machine import (
    CommitTransaction,
    ConversationMachine,
    ResolveAccount,
    Step,
)
from .service import ConversationService, Outcome

__all__ = [
    "ChatLocks",
    "CommitTransaction",
    "ConversationMachine",
    "ConversationService",
    "Outcome",
    "ResolveAccount",
    "Step",
]
