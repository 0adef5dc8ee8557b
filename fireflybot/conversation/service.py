"""
Conversation service.

Runs one inbound message through the whole pipeline for its chat:
load session -> extract intent -> transition -> ledger calls -> persist.
The per-chat lock is held for the entire sequence, so the next message of
the same chat only sees the saved result.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from fireflybot.clients.base import IntentExtractor, LedgerClient
from fireflybot.config import DEFAULT_CURRENCY, SESSION_RETENTION
from fireflybot.db import SessionRepository
from fireflybot.errors import (
    ExtractionUnavailable,
    LedgerRejected,
    LedgerUnreachable,
    SessionStoreFailure,
)
from fireflybot.models import (
    ConversationState,
    ExtractionContext,
    ExtractionResult,
    Session,
)
from fireflybot.models.session import utcnow

from . import messages
from .locks import ChatLocks
from .machine import CommitTransaction, ConversationMachine, ResolveAccount, Step

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    """What to send back for one inbound message."""

    replies: list[str] = field(default_factory=list)
    # Reasons to notify the administrator
    alerts: list[str] = field(default_factory=list)
    snapshot: Optional[dict[str, Any]] = None
    duplicate: bool = False


class ConversationService:
    """Executes the conversation machine against the real services."""

    def __init__(
        self,
        machine: ConversationMachine,
        store: SessionRepository,
        extractor: IntentExtractor,
        ledger: LedgerClient,
        default_currency: str = DEFAULT_CURRENCY,
        timezone: Optional[str] = None,
        locks: Optional[ChatLocks] = None,
    ):
        self.machine = machine
        self.store = store
        self.extractor = extractor
        self.ledger = ledger
        self.default_currency = default_currency
        self.timezone = timezone
        self.locks = locks or ChatLocks()

    async def handle(
        self,
        chat_id: str,
        text: str,
        event_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Outcome:
        """
        Process one message from ``chat_id``.

        Args:
            chat_id: Chat identity
            text: Raw message text
            event_id: Transport id of the message; a repeat of the last
                processed id is ignored
            now: Time of the message

        Returns:
            Outcome with the replies and any administrator alerts

        Raises:
            SessionStoreFailure: If the session cannot be loaded or saved before
                anything was written to the ledger; no state change is applied
        """
        chat_id = str(chat_id)
        async with self.locks.hold(chat_id):
            now = now or utcnow()
            session = self.store.load(chat_id)

            if (
                session is not None
                and event_id is not None
                and session.last_event_id == event_id
            ):
                logger.info(f"Ignoring duplicate event {event_id} for chat {chat_id}")
                return Outcome(snapshot=session.snapshot(), duplicate=True)

            if session is None:
                session = Session(chat_id=chat_id, created_at=now, updated_at=now)

            extraction = None
            if self.machine.needs_extraction(session, text, now):
                extraction = await self._extract(text, now)

            step = self.machine.advance(session, text, extraction, now)
            final, outcome, wrote_ledger = await self._run_effects(step)
            final.last_event_id = event_id or final.last_event_id
            try:
                self._persist(final)
            except SessionStoreFailure as e:
                if not wrote_ledger:
                    raise
                # The ledger already holds the transaction; report and carry on
                logger.error(
                    f"Could not save session for chat {chat_id} after commit: {e.detail}",
                    exc_info=True,
                )
                outcome.alerts.append(
                    f"Session store failed after a ledger commit: {e.detail}"
                )

            outcome.snapshot = final.snapshot()
            return outcome

    async def _extract(self, text: str, now: datetime) -> ExtractionResult:
        context = ExtractionContext(
            reference_time=now,
            timezone=self.timezone,
            default_currency=self.default_currency,
        )
        try:
            return await self.extractor.extract(text, context)
        except ExtractionUnavailable as e:
            logger.warning(
                f"Intent extraction via {self.extractor.name} unavailable: {e.detail}"
            )
            return ExtractionResult.empty(text, available=False)

    async def _run_effects(self, step: Step) -> tuple[Session, Outcome, bool]:
        """
        Execute effects until the machine has nothing left to ask for.

        Returns:
            Tuple of (final session, outcome, whether the ledger stored a transaction)
        """
        outcome = Outcome(replies=list(step.replies))
        if step.alert:
            outcome.alerts.append(step.alert)
        wrote_ledger = False

        while step.effect is not None:
            effect = step.effect
            if isinstance(effect, ResolveAccount):
                step = await self._resolve(step.session, effect)
            elif isinstance(effect, CommitTransaction):
                step = await self._commit(step.session, effect)
                if step.session.state == ConversationState.DONE:
                    wrote_ledger = True
                    self._archive(step.session, effect)
            else:
                raise TypeError(f"Unknown effect: {effect!r}")

            outcome.replies.extend(step.replies)
            if step.alert:
                outcome.alerts.append(step.alert)

        return step.session, outcome, wrote_ledger

    async def _resolve(self, session: Session, effect: ResolveAccount) -> Step:
        try:
            account = await self.ledger.resolve_account(effect.name)
        except LedgerUnreachable as e:
            logger.warning(f"Account lookup for '{effect.name}' failed: {e.detail}")
            return self.machine.account_resolved(session, effect, None, reachable=False)
        except LedgerRejected as e:
            logger.error(f"Ledger refused account lookup for '{effect.name}': {e.message}")
            return self.machine.account_resolved(session, effect, None, reachable=False)
        return self.machine.account_resolved(session, effect, account)

    async def _commit(self, session: Session, effect: CommitTransaction) -> Step:
        try:
            transaction_id = await self.ledger.create_transaction(effect.draft)
        except LedgerUnreachable as e:
            logger.warning(f"Commit for chat {session.chat_id} failed: {e.detail}")
            return self.machine.commit_unreachable(session, e)
        except LedgerRejected as e:
            logger.warning(f"Commit for chat {session.chat_id} rejected: {e.message}")
            return self.machine.commit_rejected(session, e)

        logger.info(f"Chat {session.chat_id} committed transaction {transaction_id}")
        return self.machine.commit_succeeded(session, transaction_id, effect.draft)

    def _archive(self, session: Session, effect: CommitTransaction):
        transaction_type = effect.draft.transaction_type
        try:
            self.store.archive(
                session.chat_id,
                session.transaction_id,
                transaction_type.value if transaction_type else None,
            )
        except SessionStoreFailure as e:
            logger.error(
                f"Could not archive transaction {session.transaction_id}: {e.detail}",
                exc_info=True,
            )

    def _persist(self, session: Session):
        if session.state == ConversationState.CANCELLED or (
            session.state == ConversationState.IDLE and session.draft is None
        ):
            self.store.delete(session.chat_id)
        else:
            self.store.save(session)

    async def describe(self, chat_id: str, now: Optional[datetime] = None) -> str:
        """Human-readable state of the chat's conversation."""
        chat_id = str(chat_id)
        now = now or utcnow()
        async with self.locks.hold(chat_id):
            session = self.store.load(chat_id)

        if (
            session is None
            or session.draft is None
            or session.state.is_terminal
            or session.is_expired(now, self.machine.idle_timeout)
        ):
            return "No transaction in progress. Send one like `spent 20 on lunch`."

        state = session.state.value.replace("_", " ")
        return f"{messages.format_draft(session.draft)}\nState: **{state}**"

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete stored sessions idle for longer than the retention period."""
        now = now or utcnow()
        retention = max(
            timedelta(seconds=SESSION_RETENTION), self.machine.idle_timeout
        )
        return self.store.purge_expired(now - retention)

