from .conversation import ConversationCog
from .general import GeneralCog

__all__ = [
    "ConversationCog",
    "GeneralCog",
]
