from datetime import date, timedelta
from decimal import Decimal

import pytest

from fireflybot.errors import SessionStoreFailure
from fireflybot.models import (
    ConversationState,
    DraftField,
    DraftTransaction,
    Session,
    TransactionType,
)

from conftest import NOW


def _session(chat_id="chat-1", state=ConversationState.AWAITING_CONFIRMATION, at=NOW):
    return Session(
        chat_id=chat_id,
        state=state,
        draft=DraftTransaction(
            transaction_type=TransactionType.WITHDRAWAL,
            amount=Decimal("12.50"),
            currency="EUR",
            account="Checking",
            account_id="1",
            description="lunch",
            occurred_on=date(2024, 5, 6),
        ),
        prompted_field=DraftField.DESCRIPTION,
        retries=1,
        last_event_id="evt-9",
        created_at=at,
        updated_at=at,
    )


def test_load_missing_chat_returns_none(store):
    assert store.load("nobody") is None


def test_saved_session_loads_back_unchanged(store):
    session = _session()
    store.save(session)

    loaded = store.load("chat-1")

    assert loaded == session
    assert loaded.draft.amount == Decimal("12.50")
    assert loaded.prompted_field == DraftField.DESCRIPTION


def test_save_replaces_previous_session(store):
    store.save(_session())
    store.save(_session(state=ConversationState.COMMITTING))

    assert store.count() == 1
    assert store.load("chat-1").state == ConversationState.COMMITTING


def test_delete(store):
    store.save(_session())

    assert store.delete("chat-1") is True
    assert store.delete("chat-1") is False
    assert store.load("chat-1") is None


def test_archive_keeps_only_committed_ids(store):
    store.archive("chat-1", "101", "withdrawal")
    store.archive("chat-1", "102", "deposit")
    store.archive("chat-2", "103")

    assert store.committed_ids("chat-1") == ["102", "101"]
    assert store.committed_ids("chat-1", limit=1) == ["102"]
    assert store.committed_ids("chat-3") == []


def test_archive_requires_transaction_id(store):
    with pytest.raises(ValueError):
        store.archive("chat-1", None)


def test_purge_expired(store):
    store.save(_session("old", at=NOW - timedelta(days=2)))
    store.save(_session("new", at=NOW))

    removed = store.purge_expired(NOW - timedelta(days=1))

    assert removed == 1
    assert store.load("old") is None
    assert store.load("new") is not None


def test_count_by_state(store):
    store.save(_session("a"))
    store.save(_session("b", state=ConversationState.COMMITTING))
    store.save(_session("c", state=ConversationState.COMMITTING))

    assert store.count() == 3
    assert store.count(ConversationState.COMMITTING) == 2
    assert store.count(ConversationState.DONE) == 0


def test_corrupt_row_raises_store_failure(store):
    with store._get_connection() as conn:
        conn.execute(
            "INSERT INTO sessions (chat_id, state, payload, updated_at) VALUES (?, ?, ?, ?)",
            ("broken", "idle", "{not json", NOW.isoformat()),
        )

    with pytest.raises(SessionStoreFailure) as exc_info:
        store.load("broken")
    assert "corrupt row" in exc_info.value.detail


def test_unusable_database_raises_store_failure(store, tmp_path):
    store.db_path = tmp_path

    with pytest.raises(SessionStoreFailure):
        store.save(_session())
