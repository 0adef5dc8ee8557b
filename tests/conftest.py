import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fireflybot.clients.base import IntentExtractor, LedgerClient
from fireflybot.conversation import ConversationMachine, ConversationService
from fireflybot.db import SessionRepository
from fireflybot.models import AccountRef, ExtractionResult

NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)


class FakeExtractor(IntentExtractor):
    """Returns canned candidates per message text."""

    name = "fake"

    def __init__(self, results=None, error=None, delay=0.0):
        self.results = dict(results or {})
        self.error = error
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def extract(self, text, context=None):
        self.calls.append(text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            result = ExtractionResult(text=text)
            for draft_field, value, confidence in self.results.get(text, []):
                result.add(draft_field, value, confidence)
            return result
        finally:
            self.active -= 1


class FakeLedger(LedgerClient):
    """In-memory ledger that records every call."""

    def __init__(self, accounts=("Checking", "Savings"), commit_errors=(), lookup_error=None):
        self.accounts = {
            name.lower(): AccountRef(id=str(index), name=name, account_type="asset")
            for index, name in enumerate(accounts, start=1)
        }
        self.commit_errors = list(commit_errors)
        self.lookup_error = lookup_error
        self.created = []
        self.commit_calls = 0
        self.lookups = []

    async def create_transaction(self, draft):
        self.commit_calls += 1
        if self.commit_errors:
            raise self.commit_errors.pop(0)
        self.created.append(draft)
        return str(100 + len(self.created))

    async def resolve_account(self, name):
        self.lookups.append(name)
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.accounts.get(name.strip().lower())


@pytest.fixture
def machine():
    return ConversationMachine(
        idle_timeout=timedelta(minutes=15),
        max_field_retries=3,
        max_commit_attempts=3,
        default_currency="USD",
    )


@pytest.fixture
def store(tmp_path):
    return SessionRepository(tmp_path / "sessions.db")


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def service(machine, store, extractor, ledger):
    return ConversationService(
        machine=machine,
        store=store,
        extractor=extractor,
        ledger=ledger,
        default_currency="USD",
    )


@pytest.fixture
def say(service):
    """Send one message through the service and return its Outcome."""

    def _say(text, chat_id="chat-1", at=NOW, event_id=None):
        return asyncio.run(service.handle(chat_id, text, event_id=event_id, now=at))

    return _say
