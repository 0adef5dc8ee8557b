"""
Firefly Bot - conversational transaction recorder

A chat bot that turns free-text messages into validated withdrawals,
deposits and transfers and records them in Firefly III.
"""

from .bot import FireflyBot, create_bot
from .bot import run as run_bot
from .config import VERSION
from .conversation import ConversationMachine, ConversationService
from .models import ConversationState, DraftTransaction, Session, TransactionType
from .services import AmountParser, LocalIntentExtractor

__version__ = VERSION

__all__ = [
    "AmountParser",
    "ConversationMachine",
    "ConversationService",
    "ConversationState",
    "DraftTransaction",
    "FireflyBot",
    "LocalIntentExtractor",
    "Session",
    "TransactionType",
    "create_bot",
    "run_bot",
]
