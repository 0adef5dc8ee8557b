import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from fireflybot.clients.wit import WitIntentExtractor
from fireflybot.errors import ExtractionUnavailable
from fireflybot.models import DraftField, ExtractionContext, TransactionType

from conftest import NOW

DEPOSIT_RESPONSE = {
    "text": "got 1500 from acme into savings yesterday",
    "intents": [{"name": "deposit_money", "confidence": 0.93}],
    "entities": {
        "wit$amount_of_money:amount_of_money": [
            {"value": 1500, "unit": "eur", "confidence": 0.9}
        ],
        "account:origin": [{"value": "acme", "confidence": 0.8}],
        "account:destination": [{"value": "savings", "confidence": 0.85}],
        "wit$datetime:datetime": [
            {"value": "2024-05-05T00:00:00-07:00", "confidence": 0.88}
        ],
    },
}


def _extractor(handler):
    http_client = httpx.AsyncClient(
        base_url="https://wit.test", transport=httpx.MockTransport(handler)
    )
    return WitIntentExtractor("wit-token", http_client=http_client)


def _values(result):
    return {c.field: c.value for c in result.candidates}


def test_map_response_for_deposit_puts_destination_in_account():
    extractor = WitIntentExtractor("wit-token")

    result = extractor.map_response("ignored", DEPOSIT_RESPONSE)

    values = _values(result)
    assert result.intent == "deposit_money"
    assert values[DraftField.TYPE] == TransactionType.DEPOSIT
    assert values[DraftField.AMOUNT] == Decimal("1500")
    assert values[DraftField.CURRENCY] == "EUR"
    assert values[DraftField.ACCOUNT] == "savings"
    assert values[DraftField.COUNTERPARTY] == "acme"
    assert values[DraftField.DATE] == date(2024, 5, 5)
    assert result.best(DraftField.TYPE).confidence == 0.93


def test_map_response_for_withdrawal_keeps_origin_as_account():
    payload = {
        "text": "paid 20 from checking",
        "intents": [],
        "entities": {
            "action:withdraw": [{"value": "paid", "confidence": 0.97}],
            "account:origin": [
                {"value": "wallet", "confidence": 0.4},
                {"value": "checking", "confidence": 0.9},
            ],
            "deed:deed": [{"value": "lunch", "confidence": 0.75}],
        },
    }

    values = _values(WitIntentExtractor("wit-token").map_response("", payload))

    assert values[DraftField.TYPE] == TransactionType.WITHDRAWAL
    assert values[DraftField.ACCOUNT] == "checking"
    assert values[DraftField.DESCRIPTION] == "lunch"
    assert DraftField.COUNTERPARTY not in values


def test_map_response_without_entities_is_empty():
    result = WitIntentExtractor("wit-token").map_response("hi", {"text": "hi"})

    assert result.candidates == []
    assert result.available


def test_extract_sends_query_and_context():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=DEPOSIT_RESPONSE)

    extractor = _extractor(handler)
    context = ExtractionContext(reference_time=NOW, timezone="Europe/Berlin")

    result = asyncio.run(extractor.extract("got 1500 from acme", context))

    assert result.best(DraftField.AMOUNT).value == Decimal("1500")
    params = seen[0].url.params
    assert params["q"] == "got 1500 from acme"
    assert params["v"] == extractor.api_version
    assert json.loads(params["context"])["timezone"] == "Europe/Berlin"
    assert seen[0].headers["Authorization"] == "Bearer wit-token"


def test_http_error_is_extraction_unavailable():
    def handler(request):
        return httpx.Response(500, text="oops")

    extractor = _extractor(handler)

    with pytest.raises(ExtractionUnavailable) as exc_info:
        asyncio.run(extractor.extract("spent 20"))
    assert exc_info.value.context == {"status_code": 500}


def test_network_error_is_extraction_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    extractor = _extractor(handler)

    with pytest.raises(ExtractionUnavailable):
        asyncio.run(extractor.extract("spent 20"))


@pytest.mark.parametrize("body", [[], ["spent", 20], "ok", 42])
def test_non_object_body_is_extraction_unavailable(body):
    def handler(request):
        return httpx.Response(200, json=body)

    extractor = _extractor(handler)

    with pytest.raises(ExtractionUnavailable) as exc_info:
        asyncio.run(extractor.extract("spent 20"))
    assert "Unexpected Wit response" in exc_info.value.detail


def test_malformed_entities_are_extraction_unavailable():
    def handler(request):
        return httpx.Response(200, json={"text": "spent 20", "entities": ["oops"]})

    extractor = _extractor(handler)

    with pytest.raises(ExtractionUnavailable):
        asyncio.run(extractor.extract("spent 20"))


def test_token_is_required():
    with pytest.raises(ValueError):
        WitIntentExtractor("")
