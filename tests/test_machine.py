from datetime import date, timedelta
from decimal import Decimal

from fireflybot.conversation import CommitTransaction, ResolveAccount
from fireflybot.errors import LedgerRejected, LedgerUnreachable
from fireflybot.models import (
    AccountRef,
    ConversationState,
    DraftField,
    DraftTransaction,
    ExtractionResult,
    Session,
    TransactionType,
)

from conftest import NOW


def _extraction(text, *candidates):
    result = ExtractionResult(text=text)
    for draft_field, value, confidence in candidates:
        result.add(draft_field, value, confidence)
    return result


def _session(state, **draft_fields):
    draft = DraftTransaction(currency="USD", occurred_on=NOW.date(), **draft_fields)
    return Session(chat_id="c", state=state, draft=draft, created_at=NOW, updated_at=NOW)


def _complete(state=ConversationState.AWAITING_CONFIRMATION, **overrides):
    fields = {
        "transaction_type": TransactionType.WITHDRAWAL,
        "amount": Decimal("20"),
        "account": "Checking",
        "account_id": "1",
    }
    fields.update(overrides)
    return _session(state, **fields)


def test_seed_uses_only_confident_candidates(machine):
    extraction = _extraction(
        "spent 20 on lunch",
        (DraftField.TYPE, TransactionType.WITHDRAWAL, 0.9),
        (DraftField.AMOUNT, Decimal("20"), 0.95),
        (DraftField.DESCRIPTION, "lunch", 0.5),
    )

    step = machine.advance(Session(chat_id="c"), "spent 20 on lunch", extraction, NOW)

    draft = step.session.draft
    assert step.session.state == ConversationState.AWAITING_ACCOUNT
    assert step.session.prompted_field == DraftField.ACCOUNT
    assert draft.transaction_type == TransactionType.WITHDRAWAL
    assert draft.amount == Decimal("20")
    assert draft.description is None
    assert draft.currency == "USD"
    assert draft.occurred_on == NOW.date()
    assert step.effect is None


def test_seed_ignores_non_positive_amounts(machine):
    extraction = _extraction(
        "spent -5",
        (DraftField.TYPE, TransactionType.WITHDRAWAL, 0.9),
        (DraftField.AMOUNT, Decimal("-5"), 0.95),
    )

    step = machine.advance(Session(chat_id="c"), "spent -5", extraction, NOW)

    assert step.session.draft.amount is None
    assert step.session.state == ConversationState.AWAITING_AMOUNT


def test_seed_asks_for_amounts_finer_than_cents(machine):
    extraction = _extraction(
        "spent 20.005",
        (DraftField.TYPE, TransactionType.WITHDRAWAL, 0.9),
        (DraftField.AMOUNT, Decimal("20.005"), 0.95),
    )

    step = machine.advance(Session(chat_id="c"), "spent 20.005", extraction, NOW)

    assert step.session.draft.amount is None
    assert step.session.state == ConversationState.AWAITING_AMOUNT


def test_seed_without_anything_asks_for_type(machine):
    step = machine.advance(Session(chat_id="c"), "hello", ExtractionResult(text="hello"), NOW)

    assert step.session.state == ConversationState.AWAITING_TYPE
    assert "withdrawal" in step.replies[-1]


def test_seed_resolves_account_then_transfer_destination(machine):
    extraction = _extraction(
        "transfer 200 from checking to savings",
        (DraftField.TYPE, TransactionType.TRANSFER, 0.9),
        (DraftField.AMOUNT, Decimal("200"), 0.95),
        (DraftField.ACCOUNT, "checking", 0.8),
        (DraftField.COUNTERPARTY, "savings", 0.8),
    )

    step = machine.advance(Session(chat_id="c"), extraction.text, extraction, NOW)
    assert step.effect == ResolveAccount(
        DraftField.ACCOUNT, "checking", ((DraftField.COUNTERPARTY, "savings"),)
    )

    step = machine.account_resolved(step.session, step.effect, AccountRef("1", "Checking"))
    assert step.effect == ResolveAccount(DraftField.COUNTERPARTY, "savings")

    step = machine.account_resolved(step.session, step.effect, AccountRef("2", "Savings"))
    draft = step.session.draft
    assert step.effect is None
    assert step.session.state == ConversationState.AWAITING_CONFIRMATION
    assert (draft.account, draft.account_id) == ("Checking", "1")
    assert (draft.counterparty, draft.counterparty_id) == ("Savings", "2")


def test_transfer_without_destination_asks_for_it(machine):
    session = _session(
        ConversationState.AWAITING_ACCOUNT,
        transaction_type=TransactionType.TRANSFER,
        amount=Decimal("50"),
    )

    step = machine.advance(session, "checking", None, NOW)
    step = machine.account_resolved(step.session, step.effect, AccountRef("1", "Checking"))

    assert step.session.state == ConversationState.AWAITING_COUNTERPARTY
    assert "go to" in step.replies[-1]


def test_withdrawal_never_asks_for_counterparty(machine):
    session = _session(
        ConversationState.AWAITING_ACCOUNT,
        transaction_type=TransactionType.WITHDRAWAL,
        amount=Decimal("50"),
    )

    step = machine.advance(session, "checking", None, NOW)
    step = machine.account_resolved(step.session, step.effect, AccountRef("1", "Checking"))

    assert step.session.state == ConversationState.AWAITING_CONFIRMATION


def test_advance_does_not_modify_its_input(machine):
    session = _complete()
    before = session.to_dict()

    machine.advance(session, "amount 99", None, NOW)

    assert session.to_dict() == before


def test_affirmative_commits_complete_draft(machine):
    step = machine.advance(_complete(), "yes", None, NOW)

    assert step.session.state == ConversationState.COMMITTING
    assert isinstance(step.effect, CommitTransaction)
    assert step.effect.draft.amount == Decimal("20")


def test_incomplete_draft_is_never_committed(machine):
    session = _complete(account=None, account_id=None)

    step = machine.advance(session, "yes", None, NOW)

    assert step.effect is None
    assert step.session.state == ConversationState.AWAITING_ACCOUNT


def test_only_committing_transition_emits_commit(machine):
    states = [
        (ConversationState.AWAITING_AMOUNT, "25"),
        (ConversationState.AWAITING_TYPE, "deposit"),
        (ConversationState.AWAITING_CONFIRMATION, "amount 30"),
        (ConversationState.AWAITING_CONFIRMATION, "no"),
        (ConversationState.AWAITING_CONFIRMATION, "what?"),
    ]
    for state, text in states:
        step = machine.advance(_complete(state), text, None, NOW)
        assert not isinstance(step.effect, CommitTransaction), (state, text)


def test_amount_reply_must_be_positive(machine):
    session = _session(
        ConversationState.AWAITING_AMOUNT, transaction_type=TransactionType.WITHDRAWAL
    )

    step = machine.advance(session, "-5", None, NOW)

    assert step.session.state == ConversationState.AWAITING_AMOUNT
    assert step.session.retries == 1
    assert step.session.draft.amount is None
    assert "positive" in step.replies[0]


def test_amount_reply_with_currency(machine):
    session = _session(
        ConversationState.AWAITING_AMOUNT, transaction_type=TransactionType.WITHDRAWAL
    )

    step = machine.advance(session, "12.50 eur", None, NOW)

    assert step.session.draft.amount == Decimal("12.50")
    assert step.session.draft.currency == "EUR"
    assert step.session.state == ConversationState.AWAITING_ACCOUNT


def test_type_reply_accepts_option_number(machine):
    session = _session(ConversationState.AWAITING_TYPE, amount=Decimal("10"))

    step = machine.advance(session, "2", None, NOW)

    assert step.session.draft.transaction_type == TransactionType.DEPOSIT
    assert step.session.state == ConversationState.AWAITING_ACCOUNT
    assert "go into" in step.replies[-1]


def test_retries_are_bounded(machine):
    session = _session(
        ConversationState.AWAITING_AMOUNT, transaction_type=TransactionType.WITHDRAWAL
    )

    for attempt in range(1, 4):
        step = machine.advance(session, "lots", None, NOW)
        session = step.session
        assert session.state == ConversationState.AWAITING_AMOUNT
        assert session.retries == attempt

    step = machine.advance(session, "lots", None, NOW)

    assert step.session.state == ConversationState.CANCELLED
    assert "cancelled" in step.replies[-1]


def test_successful_fill_resets_retries(machine):
    session = _session(
        ConversationState.AWAITING_AMOUNT, transaction_type=TransactionType.WITHDRAWAL
    )
    session = machine.advance(session, "lots", None, NOW).session

    step = machine.advance(session, "15", None, NOW)

    assert step.session.retries == 0


def test_bare_no_asks_what_to_change(machine):
    step = machine.advance(_complete(), "no", None, NOW)

    assert step.session.state == ConversationState.AWAITING_CONFIRMATION
    assert "What should I change" in step.replies[-1]


def test_naming_required_field_moves_to_its_state(machine):
    step = machine.advance(_complete(), "change the amount", None, NOW)

    assert step.session.state == ConversationState.AWAITING_AMOUNT

    step = machine.advance(step.session, "30", None, NOW)

    assert step.session.state == ConversationState.AWAITING_CONFIRMATION
    assert step.session.draft.amount == Decimal("30")
    assert step.session.draft.account == "Checking"


def test_naming_optional_field_asks_within_confirmation(machine):
    step = machine.advance(_complete(), "change the description", None, NOW)

    assert step.session.state == ConversationState.AWAITING_CONFIRMATION
    assert step.session.prompted_field == DraftField.DESCRIPTION

    step = machine.advance(step.session, "Team lunch", None, NOW)

    assert step.session.draft.description == "Team lunch"
    assert step.session.prompted_field is None


def test_date_edit(machine):
    step = machine.advance(_complete(), "date yesterday", None, NOW)

    assert step.session.draft.occurred_on == NOW.date() - timedelta(days=1)


def test_changing_type_to_transfer_needs_destination(machine):
    step = machine.advance(_complete(), "it's a transfer", None, NOW)

    assert step.session.draft.transaction_type == TransactionType.TRANSFER
    assert step.session.state == ConversationState.AWAITING_COUNTERPARTY


def test_account_not_found_during_confirmation_asks_for_account(machine):
    step = machine.advance(_complete(), "account piggy", None, NOW)
    assert step.effect == ResolveAccount(DraftField.ACCOUNT, "piggy")

    step = machine.account_resolved(step.session, step.effect, None)

    assert step.session.state == ConversationState.AWAITING_ACCOUNT
    assert step.session.draft.account is None


def test_commit_unreachable_stays_committing(machine):
    session = machine.advance(_complete(), "yes", None, NOW).session

    step = machine.commit_unreachable(session, LedgerUnreachable("timeout"))

    assert step.session.state == ConversationState.COMMITTING
    assert step.session.commit_attempts == 1
    assert step.alert is None

    retry = machine.advance(step.session, "retry", None, NOW)
    assert isinstance(retry.effect, CommitTransaction)
    assert retry.effect.draft == session.draft
    assert retry.session.commit_attempts == 1


def test_committing_ignores_other_chatter(machine):
    session = machine.advance(_complete(), "yes", None, NOW).session
    session = machine.commit_unreachable(session, LedgerUnreachable("timeout")).session

    step = machine.advance(session, "how are you", None, NOW)

    assert step.effect is None
    assert step.session.state == ConversationState.COMMITTING


def test_commit_rejected_keeps_draft(machine):
    session = machine.advance(_complete(), "yes", None, NOW).session

    step = machine.commit_rejected(session, LedgerRejected("Invalid account"))

    assert step.session.state == ConversationState.FAILED
    assert step.session.draft.amount == Decimal("20")
    assert "Invalid account" in step.replies[0]
    assert step.alert


def test_commit_succeeded_discards_draft(machine):
    session = machine.advance(_complete(), "yes", None, NOW).session
    draft = session.draft

    step = machine.commit_succeeded(session, "77", draft)

    assert step.session.state == ConversationState.DONE
    assert step.session.draft is None
    assert step.session.transaction_id == "77"
    assert "77" in step.replies[0]


def test_done_with_bare_yes_acknowledges(machine):
    session = Session(
        chat_id="c",
        state=ConversationState.DONE,
        transaction_id="77",
        created_at=NOW,
        updated_at=NOW,
    )

    assert not machine.needs_extraction(session, "yes", NOW)
    step = machine.advance(session, "yes", None, NOW)

    assert step.effect is None
    assert step.session.state == ConversationState.DONE
    assert "77" in step.replies[0]


def test_expired_session_starts_over(machine):
    session = _complete()
    later = NOW + timedelta(minutes=20)

    assert machine.needs_extraction(session, "yes", later)
    step = machine.advance(session, "yes", ExtractionResult(text="yes"), later)

    assert step.effect is None
    assert step.session.state == ConversationState.AWAITING_TYPE
    assert "discarded" in step.replies[0]


def test_cancel_from_any_open_state(machine):
    for state in (
        ConversationState.AWAITING_TYPE,
        ConversationState.AWAITING_AMOUNT,
        ConversationState.AWAITING_ACCOUNT,
        ConversationState.AWAITING_CONFIRMATION,
        ConversationState.COMMITTING,
        ConversationState.FAILED,
    ):
        step = machine.advance(_complete(state), "cancel", None, NOW)
        assert step.session.state == ConversationState.CANCELLED, state
        assert step.effect is None


def test_cancel_when_idle(machine):
    step = machine.advance(Session(chat_id="c"), "cancel", None, NOW)

    assert step.session.state == ConversationState.IDLE
    assert step.replies == ["There's nothing to cancel."]


def test_direct_parse_when_extraction_unavailable(machine):
    extraction = ExtractionResult.empty("got 1500 salary yesterday", available=False)

    step = machine.advance(Session(chat_id="c"), extraction.text, extraction, NOW)

    draft = step.session.draft
    assert draft.transaction_type == TransactionType.DEPOSIT
    assert draft.amount == Decimal("1500")
    assert draft.occurred_on == date(2024, 5, 5)


def test_quick_entry_fills_whole_withdrawal(machine):
    text = "20, lunch, checking, cafe"
    session = Session(chat_id="c")
    # Candidates from the extractor are not needed for a quick entry
    assert not machine.needs_extraction(session, text, NOW)

    step = machine.advance(session, text, _extraction(text), NOW)

    draft = step.session.draft
    assert draft.transaction_type == TransactionType.WITHDRAWAL
    assert draft.amount == Decimal("20")
    assert draft.description == "lunch"
    assert draft.counterparty == "cafe"
    assert step.effect == ResolveAccount(DraftField.ACCOUNT, "checking")

    step = machine.account_resolved(
        step.session, step.effect, AccountRef(id="1", name="Checking")
    )
    assert step.session.state == ConversationState.AWAITING_CONFIRMATION
    assert step.session.draft.account_id == "1"


def test_quick_entry_without_source_asks_for_account(machine):
    step = machine.advance(Session(chat_id="c"), "12.50 eur, coffee", None, NOW)

    assert step.session.draft.amount == Decimal("12.50")
    assert step.session.draft.currency == "EUR"
    assert step.session.draft.description == "coffee"
    assert step.session.state == ConversationState.AWAITING_ACCOUNT


def test_failed_session_continues_only_for_explicit_replies(machine):
    session = machine.advance(_complete(), "yes", None, NOW).session
    failed = machine.commit_rejected(session, LedgerRejected("Invalid account")).session

    for text in ("retry", "yes", "amount 15", "no, make it 15", "no"):
        assert not machine.needs_extraction(failed, text, NOW), text
        step = machine.advance(failed, text, None, NOW)
        assert step.session.draft.account == "Checking", text

    for text in ("got 500 salary into savings", "500", "yesterday", "deposit"):
        assert machine.needs_extraction(failed, text, NOW), text
        resumed, notices = machine.resume(failed, text, NOW)
        assert resumed.state == ConversationState.IDLE
        assert resumed.draft is None
        assert notices == []
