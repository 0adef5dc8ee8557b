"""
Conversation state machine.

The machine is a pure function of (session, inbound text, extraction result).
It never talks to the ledger itself: when it needs an account looked up or a
transaction written it returns an effect, and the caller feeds the outcome
back through ``account_resolved`` or one of the ``commit_*`` methods.

Only a transition into COMMITTING produces a CommitTransaction effect, and it
always carries a complete draft.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from fireflybot.config import (
    CONFIDENCE_THRESHOLD,
    DEFAULT_CURRENCY,
    DEFAULT_MAX_COMMIT_ATTEMPTS,
    DEFAULT_MAX_FIELD_RETRIES,
    DEFAULT_SESSION_IDLE_TIMEOUT,
    MAX_ACCOUNT_NAME_LENGTH,
    MAX_AMOUNT,
    MAX_DESCRIPTION_LENGTH,
    MIN_AMOUNT,
)
from fireflybot.errors import LedgerRejected, LedgerUnreachable, ParseFailure
from fireflybot.models import (
    FIELD_STATES,
    STATE_FIELDS,
    AccountRef,
    ConversationState,
    DraftField,
    DraftTransaction,
    ExtractionResult,
    Session,
    TransactionType,
)
from fireflybot.models.session import utcnow
from fireflybot.services.amount_parser import AmountParser
from fireflybot.services.field_parser import (
    FieldEdit,
    QuickEntry,
    find_date,
    find_transaction_type,
    has_cent_precision,
    is_bare_confirmation,
    is_cancel,
    is_explicit_edit,
    is_retry,
    parse_confirmation,
    parse_edit,
    parse_field_value,
    parse_quick_entry,
    strip_dates,
)

from . import messages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolveAccount:
    """Look up ``name`` among the ledger's asset accounts for ``field``."""

    field: DraftField
    name: str
    # Lookups still to run after this one, as (field, name) pairs
    pending: tuple = ()


@dataclass(frozen=True)
class CommitTransaction:
    """Create ``draft`` in the ledger."""

    draft: DraftTransaction


Effect = Union[ResolveAccount, CommitTransaction]


@dataclass
class Step:
    """Result of one transition."""

    session: Session
    replies: list[str] = field(default_factory=list)
    effect: Optional[Effect] = None
    # Reason to notify the administrator, if any
    alert: Optional[str] = None


class ConversationMachine:
    """Turns a sequence of chat messages into a complete, confirmed draft."""

    def __init__(
        self,
        idle_timeout: timedelta = timedelta(seconds=DEFAULT_SESSION_IDLE_TIMEOUT),
        max_field_retries: int = DEFAULT_MAX_FIELD_RETRIES,
        max_commit_attempts: int = DEFAULT_MAX_COMMIT_ATTEMPTS,
        default_currency: str = DEFAULT_CURRENCY,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
    ):
        """
        Initialize the machine.

        Args:
            idle_timeout: Inactivity after which a session is discarded
            max_field_retries: Re-prompts allowed before a conversation is cancelled
            max_commit_attempts: Ledger attempts per draft while it is unreachable
            default_currency: Currency for drafts that name none
            confidence_threshold: Minimum confidence for extraction candidates
        """
        self.idle_timeout = idle_timeout
        self.max_field_retries = max_field_retries
        self.max_commit_attempts = max_commit_attempts
        self.default_currency = default_currency
        self.confidence_threshold = confidence_threshold

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def resume(
        self, session: Session, text: str, now: datetime
    ) -> tuple[Session, list[str]]:
        """
        Pick the session that ``text`` applies to.

        Expired sessions and finished conversations give way to a fresh IDLE
        session. A finished conversation continues only for a duplicate
        confirmation of a DONE session, or a retry, explicit correction or
        cancel of a FAILED one.

        Returns:
            Tuple of (session, notices to show before any other reply)
        """
        if session.state != ConversationState.IDLE and session.is_expired(
            now, self.idle_timeout
        ):
            logger.info(
                f"Session for chat {session.chat_id} expired in state {session.state.value}"
            )
            notices = []
            if not session.state.is_terminal:
                minutes = int(self.idle_timeout.total_seconds() // 60)
                notices.append(messages.expired(minutes))
            return self._fresh(session, now), notices

        if session.state.is_terminal and not self._continues(session, text, now.date()):
            return self._fresh(session, now), []

        return session, []

    def needs_extraction(self, session: Session, text: str, now: datetime) -> bool:
        """Whether ``advance`` will use an extraction result for this message."""
        if is_cancel(text):
            return False
        resumed, _ = self.resume(session, text, now)
        return (
            resumed.state == ConversationState.IDLE
            and parse_quick_entry(text) is None
        )

    def advance(
        self,
        session: Session,
        text: str,
        extraction: Optional[ExtractionResult] = None,
        now: Optional[datetime] = None,
    ) -> Step:
        """
        Apply one inbound message.

        Args:
            session: Current session (not modified)
            text: Raw message text
            extraction: Extractor output; only used when the session is IDLE.
                None or an unavailable result falls back to direct parsing.
            now: Time of the message

        Returns:
            Step with the next session, replies and at most one effect
        """
        now = now or utcnow()
        today = now.date()
        session, notices = self.resume(copy.deepcopy(session), text, now)
        session.updated_at = now

        state = session.state
        if session.draft is None and state not in (
            ConversationState.IDLE,
            ConversationState.DONE,
        ):
            # Nothing to continue from; start over
            logger.warning(
                f"Session for chat {session.chat_id} in {state.value} has no draft"
            )
            session = self._fresh(session, now)
            state = session.state

        if is_cancel(text):
            step = self._cancel(session)
        elif state == ConversationState.IDLE:
            step = self._seed(session, text, extraction, today)
        elif state.is_awaiting_field:
            step = self._on_field(session, text, today)
        elif state == ConversationState.AWAITING_CONFIRMATION:
            step = self._on_confirmation(session, text, today)
        elif state == ConversationState.COMMITTING:
            step = self._on_committing(session, text)
        elif state == ConversationState.DONE:
            step = Step(session, [messages.already_committed(session.transaction_id)])
        else:
            step = self._on_failed(session, text, today)

        step.replies[:0] = notices
        return step

    # ------------------------------------------------------------------
    # Effect feedback
    # ------------------------------------------------------------------

    def account_resolved(
        self,
        session: Session,
        effect: ResolveAccount,
        account: Optional[AccountRef],
        reachable: bool = True,
    ) -> Step:
        """
        Apply the outcome of a ResolveAccount effect.

        Args:
            session: Session from the step that requested the lookup
            effect: The lookup that ran
            account: Matching ledger account, or None
            reachable: False when the ledger could not be asked; the name is
                then kept as typed
        """
        session = copy.deepcopy(session)
        draft = session.draft
        replies = []

        if account is not None:
            self._set_account(draft, effect.field, account.name, account.id)
        elif not reachable:
            self._set_account(draft, effect.field, effect.name, None)
            replies.append(messages.account_unverified(effect.name))
        else:
            self._set_account(draft, effect.field, None, None)
            replies.append(messages.account_not_found(effect.name))
            if session.state == FIELD_STATES.get(effect.field):
                return self._reprompt(session, replies)

        if effect.pending:
            next_field, next_name = effect.pending[0]
            return Step(
                session,
                replies,
                ResolveAccount(next_field, next_name, tuple(effect.pending[1:])),
            )
        return self._proceed(session, replies)

    def commit_succeeded(
        self, session: Session, transaction_id: str, draft: DraftTransaction
    ) -> Step:
        """The ledger stored ``draft``; keep only its id."""
        session = copy.deepcopy(session)
        session.state = ConversationState.DONE
        session.transaction_id = transaction_id
        session.draft = None
        session.prompted_field = None
        session.retries = 0
        session.commit_attempts = 0
        return Step(session, [messages.committed(draft, transaction_id)])

    def commit_unreachable(self, session: Session, error: LedgerUnreachable) -> Step:
        """The ledger could not be reached; keep the draft for a retry."""
        session = copy.deepcopy(session)
        session.commit_attempts += 1

        if session.commit_attempts >= self.max_commit_attempts:
            session.state = ConversationState.CANCELLED
            return Step(
                session,
                [messages.ledger_gave_up(self.max_commit_attempts)],
                alert=(
                    f"Ledger unreachable after {session.commit_attempts} commit "
                    f"attempts; conversation cancelled ({error.detail})"
                ),
            )

        session.state = ConversationState.COMMITTING
        return Step(
            session,
            [messages.ledger_unreachable(session.commit_attempts, self.max_commit_attempts)],
        )

    def commit_rejected(self, session: Session, error: LedgerRejected) -> Step:
        """The ledger refused the draft; keep it so it can be corrected."""
        session = copy.deepcopy(session)
        session.state = ConversationState.FAILED
        session.prompted_field = None
        return Step(
            session,
            [messages.ledger_rejected(error.message)],
            alert=f"Ledger rejected transaction: {error.message}",
        )

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _seed(
        self,
        session: Session,
        text: str,
        extraction: Optional[ExtractionResult],
        today: date,
    ) -> Step:
        """Start a draft from the first message of a conversation."""
        draft = DraftTransaction(currency=self.default_currency, occurred_on=today)
        quick_entry = parse_quick_entry(text)
        if quick_entry is not None:
            self._apply_quick_entry(draft, quick_entry)
        elif extraction is not None and extraction.available:
            self._apply_candidates(draft, extraction)
        else:
            self._apply_direct(draft, text, today)

        pending = []
        if draft.account:
            pending.append((DraftField.ACCOUNT, draft.account))
            draft.account = None
        if draft.counterparty and draft.transaction_type == TransactionType.TRANSFER:
            pending.append((DraftField.COUNTERPARTY, draft.counterparty))
            draft.counterparty = None

        session.draft = draft
        session.transaction_id = None
        session.commit_attempts = 0
        session.retries = 0

        if pending:
            first_field, first_name = pending[0]
            return Step(session, [], ResolveAccount(first_field, first_name, tuple(pending[1:])))
        return self._proceed(session, [])

    def _on_field(self, session: Session, text: str, today: date) -> Step:
        """Read the field the session is waiting for."""
        draft_field = STATE_FIELDS[session.state]
        try:
            value = parse_field_value(draft_field, text, today)
            if value is None:
                raise ParseFailure(draft_field.value, text)
        except ParseFailure as e:
            return self._reprompt(session, [messages.parse_failure(e)])
        return self._edit(session, FieldEdit(draft_field, value))

    def _on_confirmation(self, session: Session, text: str, today: date) -> Step:
        answer = parse_confirmation(text)
        if answer is True:
            return self._commit(session, reset_attempts=True)

        if session.prompted_field is not None and answer is None:
            # Answering a question about an optional field
            draft_field = session.prompted_field
            try:
                value = parse_field_value(draft_field, text, today)
                if value is None:
                    raise ParseFailure(draft_field.value, text)
            except ParseFailure as e:
                return self._reprompt(session, [messages.parse_failure(e)])
            return self._edit(session, FieldEdit(draft_field, value))

        try:
            edit = parse_edit(text, session.draft.transaction_type, today)
        except ParseFailure as e:
            return self._reprompt(
                session, [messages.parse_failure(e)], messages.CHANGE_QUESTION
            )

        if edit is not None:
            if edit.value is None:
                return self._ask_for(session, edit.field)
            return self._edit(session, edit)

        if answer is False:
            return self._reprompt(session, [], messages.CHANGE_QUESTION)
        return self._reprompt(session, [])

    def _on_committing(self, session: Session, text: str) -> Step:
        if is_retry(text):
            return self._commit(session, reset_attempts=False)
        return self._reprompt(session, [])

    def _on_failed(self, session: Session, text: str, today: date) -> Step:
        session.state = ConversationState.AWAITING_CONFIRMATION
        session.retries = 0
        if is_retry(text):
            return self._commit(session, reset_attempts=True)
        return self._on_confirmation(session, text, today)

    def _cancel(self, session: Session) -> Step:
        if session.state in (ConversationState.IDLE, ConversationState.DONE):
            return Step(self._fresh(session, session.updated_at), [messages.NOTHING_TO_CANCEL])
        logger.info(f"Chat {session.chat_id} cancelled in state {session.state.value}")
        session.state = ConversationState.CANCELLED
        return Step(session, [messages.CANCELLED])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _continues(self, session: Session, text: str, today: date) -> bool:
        """Whether ``text`` continues a finished conversation."""
        if session.state == ConversationState.DONE:
            return is_bare_confirmation(text)
        if session.state != ConversationState.FAILED or session.draft is None:
            return False
        if is_cancel(text) or is_retry(text):
            return True
        if not is_explicit_edit(text):
            # "got 500 salary" is a new transaction, not a correction
            return False
        try:
            edit = parse_edit(text, session.draft.transaction_type, today)
        except ParseFailure:
            # Names a field, so it is meant as a correction
            return True
        return edit is not None or parse_confirmation(text) is False

    def _fresh(self, session: Session, now: datetime) -> Session:
        return Session(
            chat_id=session.chat_id,
            last_event_id=session.last_event_id,
            created_at=now,
            updated_at=now,
        )

    def _proceed(self, session: Session, replies: list[str]) -> Step:
        """Ask for the next missing field, or for confirmation when complete."""
        session.prompted_field = None
        session.retries = 0
        missing = session.draft.missing_fields()
        if missing:
            draft_field = missing[0]
            session.state = FIELD_STATES[draft_field]
            session.prompted_field = draft_field
            return Step(
                session, replies + [messages.field_prompt(draft_field, session.draft)]
            )

        session.state = ConversationState.AWAITING_CONFIRMATION
        return Step(session, replies + [messages.confirmation(session.draft)])

    def _ask_for(self, session: Session, draft_field: DraftField) -> Step:
        """Ask for a new value of a field the user wants to change."""
        session.retries = 0
        session.prompted_field = draft_field
        if draft_field in session.draft.required_fields():
            session.state = FIELD_STATES[draft_field]
        else:
            session.state = ConversationState.AWAITING_CONFIRMATION
        return Step(session, [messages.field_prompt(draft_field, session.draft)])

    def _edit(self, session: Session, edit: FieldEdit) -> Step:
        """Apply a field value, looking up account names first."""
        session.prompted_field = None
        effect = self._apply(session.draft, edit)
        if effect is not None:
            return Step(session, [], effect)
        return self._proceed(session, [])

    def _commit(self, session: Session, reset_attempts: bool) -> Step:
        if not session.draft.is_complete():
            return self._proceed(session, [])
        session.state = ConversationState.COMMITTING
        session.prompted_field = None
        session.retries = 0
        if reset_attempts:
            session.commit_attempts = 0
        return Step(session, [], CommitTransaction(copy.deepcopy(session.draft)))

    def _reprompt(
        self, session: Session, replies: list[str], question: Optional[str] = None
    ) -> Step:
        """Ask again, cancelling once the retry budget is spent."""
        session.retries += 1
        if session.retries > self.max_field_retries:
            draft_field = STATE_FIELDS.get(session.state) or session.prompted_field
            logger.info(
                f"Chat {session.chat_id} ran out of retries in {session.state.value}"
            )
            session.state = ConversationState.CANCELLED
            return Step(session, replies + [messages.too_many_retries(draft_field)])
        return Step(session, replies + [question or self._question(session)])

    def _question(self, session: Session) -> str:
        if session.state.is_awaiting_field:
            return messages.field_prompt(STATE_FIELDS[session.state], session.draft)
        if session.state == ConversationState.COMMITTING:
            return messages.still_committing()
        if session.prompted_field is not None:
            return messages.field_prompt(session.prompted_field, session.draft)
        return messages.confirmation(session.draft)

    def _apply(
        self, draft: DraftTransaction, edit: FieldEdit
    ) -> Optional[ResolveAccount]:
        """Write ``edit`` into ``draft``; returns a lookup for account names."""
        if edit.field == DraftField.TYPE:
            if draft.transaction_type != edit.value:
                draft.transaction_type = edit.value
                draft.counterparty_id = None
                if edit.value == TransactionType.TRANSFER and draft.counterparty:
                    name, draft.counterparty = draft.counterparty, None
                    return ResolveAccount(DraftField.COUNTERPARTY, name)
        elif edit.field == DraftField.AMOUNT:
            amount, currency = edit.value
            draft.amount = amount
            if currency:
                draft.currency = currency
        elif edit.field == DraftField.ACCOUNT:
            draft.account, draft.account_id = None, None
            return ResolveAccount(DraftField.ACCOUNT, edit.value)
        elif edit.field == DraftField.COUNTERPARTY:
            draft.counterparty, draft.counterparty_id = None, None
            if draft.transaction_type == TransactionType.TRANSFER:
                return ResolveAccount(DraftField.COUNTERPARTY, edit.value)
            draft.counterparty = edit.value
        elif edit.field == DraftField.DESCRIPTION:
            draft.description = edit.value
        elif edit.field == DraftField.DATE:
            draft.occurred_on = edit.value
        elif edit.field == DraftField.CURRENCY:
            draft.currency = edit.value
        return None

    @staticmethod
    def _set_account(
        draft: DraftTransaction,
        draft_field: DraftField,
        name: Optional[str],
        account_id: Optional[str],
    ):
        if draft_field == DraftField.COUNTERPARTY:
            draft.counterparty, draft.counterparty_id = name, account_id
        else:
            draft.account, draft.account_id = name, account_id

    def _apply_candidates(self, draft: DraftTransaction, extraction: ExtractionResult):
        """Seed ``draft`` from candidates at or above the confidence threshold."""
        threshold = self.confidence_threshold

        def best(draft_field: DraftField) -> Any:
            candidate = extraction.best(draft_field, threshold)
            return candidate.value if candidate is not None else None

        draft.transaction_type = _as_type(best(DraftField.TYPE))
        draft.amount = _as_amount(best(DraftField.AMOUNT))

        currency = best(DraftField.CURRENCY)
        if isinstance(currency, str) and len(currency.strip()) == 3:
            draft.currency = currency.strip().upper()

        draft.account = _as_name(best(DraftField.ACCOUNT), MAX_ACCOUNT_NAME_LENGTH)
        draft.counterparty = _as_name(best(DraftField.COUNTERPARTY), MAX_ACCOUNT_NAME_LENGTH)
        draft.description = _as_name(best(DraftField.DESCRIPTION), MAX_DESCRIPTION_LENGTH)

        occurred_on = best(DraftField.DATE)
        if isinstance(occurred_on, datetime):
            occurred_on = occurred_on.date()
        if isinstance(occurred_on, date):
            draft.occurred_on = occurred_on

    @staticmethod
    def _apply_quick_entry(draft: DraftTransaction, entry: QuickEntry):
        draft.transaction_type = TransactionType.WITHDRAWAL
        draft.amount = entry.amount
        if entry.currency:
            draft.currency = entry.currency
        draft.description = entry.description
        draft.account = entry.source
        draft.counterparty = entry.destination

    @staticmethod
    def _apply_direct(draft: DraftTransaction, text: str, today: date):
        """Seed ``draft`` with the direct-parse grammar when extraction is unavailable."""
        draft.transaction_type = find_transaction_type(text)

        found = AmountParser.find_amount_in_text(strip_dates(text))
        if found is not None:
            draft.amount = _as_amount(found[0])
            if draft.amount is not None and found[1]:
                draft.currency = found[1]

        occurred_on = find_date(text, today)
        if occurred_on is not None:
            draft.occurred_on = occurred_on


def _as_type(value: Any) -> Optional[TransactionType]:
    if value is None or isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).strip().lower())
    except ValueError:
        return None


def _as_amount(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < MIN_AMOUNT or amount > MAX_AMOUNT:
        return None
    if not has_cent_precision(amount):
        # Ask for the amount instead of rounding it
        return None
    return amount


def _as_name(value: Any, max_length: int) -> Optional[str]:
    if value is None:
        return None
    name = str(value).strip()
    if not name:
        return None
    return name[:max_length]
