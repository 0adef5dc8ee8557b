"""
Transport-agnostic message dispatcher.

Routes inbound text events to the conversation service, returns the replies,
and reports unrecoverable conditions to the administrator channel.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from fireflybot.config import (
    DISCORD_MESSAGE_MAX_LENGTH,
    ERROR_MESSAGES,
    MAX_MESSAGE_LENGTH,
)
from fireflybot.conversation import ConversationService
from fireflybot.errors import SessionStoreFailure

logger = logging.getLogger(__name__)

AdminReporter = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class InboundMessage:
    """One text event from the chat transport."""

    chat_id: str
    text: str
    event_id: Optional[str] = None
    received_at: Optional[datetime] = None


def chat_identity(channel_id: Any, user_id: Any, is_dm: bool) -> str:
    """
    Chat identity for a Discord conversation.

    A DM channel belongs to one user; in a server channel every user gets a
    conversation of their own.
    """
    if is_dm:
        return str(channel_id)
    return f"{channel_id}:{user_id}"


def format_report(
    chat_id: str, reason: str, snapshot: Optional[dict[str, Any]] = None
) -> str:
    """Administrator message with enough context to reconcile by hand."""
    lines = [
        "🚨 **Firefly Bot Error**",
        f"Chat: `{chat_id}`",
        f"Reason: {reason}",
    ]
    if snapshot:
        lines.append("```json")
        lines.append(json.dumps(snapshot, indent=2, default=str))
        lines.append("```")

    report = "\n".join(lines)
    if len(report) > DISCORD_MESSAGE_MAX_LENGTH:
        report = report[: DISCORD_MESSAGE_MAX_LENGTH - 8] + "\n...```"
    return report


class Dispatcher:
    """Entry point for every inbound chat message."""

    def __init__(
        self,
        service: ConversationService,
        admin_reporter: Optional[AdminReporter] = None,
        max_length: int = MAX_MESSAGE_LENGTH,
    ):
        """
        Initialize the dispatcher.

        Args:
            service: Conversation service to route messages to
            admin_reporter: Coroutine that delivers a text to the administrator
            max_length: Longest accepted message, in characters
        """
        self.service = service
        self.admin_reporter = admin_reporter
        self.max_length = max_length

    async def dispatch(self, message: InboundMessage) -> list[str]:
        """
        Handle one inbound message.

        Returns:
            Replies to send back, in order. Empty for blank or duplicate events.
        """
        text = (message.text or "").strip()
        if not text:
            return []

        if len(text) > self.max_length:
            return [ERROR_MESSAGES["too_long"]]

        try:
            outcome = await self.service.handle(
                message.chat_id,
                text,
                event_id=message.event_id,
                now=message.received_at,
            )
        except SessionStoreFailure as e:
            logger.error(
                f"Session store failure for chat {message.chat_id}: {e.detail}",
                exc_info=True,
            )
            await self.report(
                message.chat_id,
                f"{e.message}: {e.detail}. Message not processed: {text!r}",
            )
            return [ERROR_MESSAGES["store_unavailable"]]
        except Exception as e:
            logger.error(
                f"Unexpected error handling chat {message.chat_id}: {e}", exc_info=True
            )
            await self.report(message.chat_id, f"Unexpected error: {e}")
            return [ERROR_MESSAGES["internal_error"]]

        for alert in outcome.alerts:
            await self.report(message.chat_id, alert, outcome.snapshot)

        return outcome.replies

    async def cancel(self, chat_id: str, now: Optional[datetime] = None) -> list[str]:
        """Handle an explicit cancel command received at ``now``."""
        return await self.dispatch(
            InboundMessage(chat_id=chat_id, text="cancel", received_at=now)
        )

    async def report(
        self, chat_id: str, reason: str, snapshot: Optional[dict[str, Any]] = None
    ):
        """Send a report to the administrator; failures are logged, not raised."""
        report = format_report(chat_id, reason, snapshot)
        if self.admin_reporter is None:
            logger.warning(f"No administrator channel configured: {report}")
            return
        try:
            await self.admin_reporter(report)
            logger.info(f"Reported error for chat {chat_id} to administrator")
        except Exception as e:
            logger.error(f"Failed to report error to administrator: {e}", exc_info=True)
