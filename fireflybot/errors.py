"""
Error types for the Firefly bot.

Each error carries a code and a context dict so that administrator reports
can include enough detail to reconcile by hand.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Standardized error codes."""

    EXTRACTION_UNAVAILABLE = "EXTRACTION_UNAVAILABLE"
    PARSE_FAILURE = "PARSE_FAILURE"
    LEDGER_UNREACHABLE = "LEDGER_UNREACHABLE"
    LEDGER_REJECTED = "LEDGER_REJECTED"
    SESSION_STORE_FAILURE = "SESSION_STORE_FAILURE"
    CONFIG_ERROR = "CONFIG_ERROR"


class FireflyBotError(Exception):
    """Base exception with structured error info."""

    code: ErrorCode

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    @property
    def transient(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to a report-friendly dict."""
        result = {"error": self.code.value, "message": self.message}
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class ExtractionUnavailable(FireflyBotError):
    """The intent extraction service could not be reached or answered badly."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(
            code=ErrorCode.EXTRACTION_UNAVAILABLE,
            message="Intent extraction service unavailable",
            detail=detail,
            context={"status_code": status_code} if status_code else None,
        )

    @property
    def transient(self) -> bool:
        return True


class ParseFailure(FireflyBotError):
    """User input did not match the shape expected for a field."""

    def __init__(self, field: str, text: str, detail: Optional[str] = None):
        self.field = field
        self.text = text
        super().__init__(
            code=ErrorCode.PARSE_FAILURE,
            message=f"Could not read a {field} from the reply",
            detail=detail,
            context={"field": field, "text": text},
        )


class LedgerUnreachable(FireflyBotError):
    """Transient ledger failure: network error, timeout, 5xx or throttling."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(
            code=ErrorCode.LEDGER_UNREACHABLE,
            message="Ledger service unreachable",
            detail=detail,
            context={"status_code": status_code} if status_code else None,
        )

    @property
    def transient(self) -> bool:
        return True


class LedgerRejected(FireflyBotError):
    """Permanent ledger failure; the message is shown to the user verbatim."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.errors = errors or {}
        super().__init__(
            code=ErrorCode.LEDGER_REJECTED,
            message=message,
            context={"status_code": status_code, "errors": self.errors},
        )


class SessionStoreFailure(FireflyBotError):
    """The session store could not read or write; the message is not processed."""

    def __init__(self, operation: str, chat_id: Optional[str], detail: str):
        super().__init__(
            code=ErrorCode.SESSION_STORE_FAILURE,
            message=f"Session store {operation} failed",
            detail=detail,
            context={"operation": operation, "chat_id": chat_id},
        )


class ConfigError(FireflyBotError):
    """A configuration value is missing or malformed."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(
            code=ErrorCode.CONFIG_ERROR,
            message=message,
            context={"key": key},
        )
