from .base import IntentExtractor, LedgerClient, retry_with_backoff
from .firefly import FireflyClient, build_transaction_payload
from .wit import WitIntentExtractor

__all__ = [
    "FireflyClient",
    "IntentExtractor",
    "LedgerClient",
    "WitIntentExtractor",
    "build_transaction_payload",
    "retry_with_backoff",
]
