"""Interfaces for the external services the conversation depends on."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import wraps
from typing import Callable, Optional

from fireflybot.models import AccountRef, DraftTransaction, ExtractionContext, ExtractionResult

logger = logging.getLogger(__name__)


class IntentExtractor(ABC):
    """Turns free text into (field, value, confidence) candidates."""

    name: str = "unknown"

    @abstractmethod
    async def extract(
        self, text: str, context: Optional[ExtractionContext] = None
    ) -> ExtractionResult:
        """
        Extract candidate fields from ``text``.

        Absence of a field is a normal outcome, never an error.

        Raises:
            ExtractionUnavailable: On network or service errors
        """

    async def aclose(self) -> None:
        """Release any held resources."""


class LedgerClient(ABC):
    """Transport and response mapping for the ledger service. No business rules."""

    @abstractmethod
    async def create_transaction(self, draft: DraftTransaction) -> str:
        """
        Create a transaction and return its ledger id.

        Raises:
            LedgerUnreachable: Transient failure, safe to retry later
            LedgerRejected: The ledger refused the transaction
        """

    @abstractmethod
    async def resolve_account(self, name: str) -> Optional[AccountRef]:
        """
        Find the user's asset account called ``name``; None when it does not exist.

        Raises:
            LedgerUnreachable: Transient failure
            LedgerRejected: The ledger refused the lookup (e.g. bad token)
        """

    async def aclose(self) -> None:
        """Release any held resources."""


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    exceptions: tuple = (Exception,),
):
    """
    Decorator for retrying coroutines with exponential backoff.

    Used for ledger calls that may fail transiently. The last exception is
    re-raised once every attempt has failed.
    """

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        delay = min(base_delay * (2**attempt), max_delay)
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed for "
                            f"{func.__name__}: {e}. Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"All {max_attempts} attempts failed for {func.__name__}: {e}"
                        )
            raise last_exception

        return wrapper

    return decorator
