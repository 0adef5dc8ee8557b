from .client import FireflyBot, build_service, create_bot
from .cogs import ConversationCog, GeneralCog
from .dispatcher import Dispatcher, InboundMessage, chat_identity, format_report
from .runner import run

__all__ = [
    # Bot
    "FireflyBot",
    "build_service",
    "create_bot",
    "run",
    # Cogs
    "ConversationCog",
    "GeneralCog",
    # Dispatch
    "Dispatcher",
    "InboundMessage",
    "chat_identity",
    "format_report",
]
