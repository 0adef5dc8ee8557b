"""
Wit.ai intent extraction client.

Sends the raw message to the Wit ``/message`` endpoint and maps the returned
intents and entities onto draft fields. The app is expected to define these
entities:

- ``action:withdraw``, ``action:deposit``, ``action:transfer``
- ``wit$amount_of_money:amount_of_money``
- ``account:origin``, ``account:destination``
- ``deed:deed`` (what the money was for)
- ``wit$datetime:datetime``
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from fireflybot.config import HTTP_TIMEOUT, WIT_API_URL, WIT_API_VERSION
from fireflybot.errors import ExtractionUnavailable
from fireflybot.models import (
    DraftField,
    ExtractionContext,
    ExtractionResult,
    TransactionType,
)

from .base import IntentExtractor

logger = logging.getLogger(__name__)

ACTION_ENTITIES = {
    "action:withdraw": TransactionType.WITHDRAWAL,
    "action:deposit": TransactionType.DEPOSIT,
    "action:transfer": TransactionType.TRANSFER,
}

AMOUNT_ENTITY = "wit$amount_of_money:amount_of_money"
ORIGIN_ENTITY = "account:origin"
DESTINATION_ENTITY = "account:destination"
DEED_ENTITY = "deed:deed"
DATETIME_ENTITY = "wit$datetime:datetime"


def _intent_type(name: str) -> Optional[TransactionType]:
    """Map a Wit intent name onto a transaction type."""
    name = name.lower()
    if "transfer" in name:
        return TransactionType.TRANSFER
    if any(word in name for word in ("deposit", "income", "receive")):
        return TransactionType.DEPOSIT
    if any(word in name for word in ("withdraw", "expense", "spend", "payment")):
        return TransactionType.WITHDRAWAL
    return None


def _first(entities: dict[str, Any], key: str) -> Optional[dict[str, Any]]:
    """Highest-confidence entity value for ``key``."""
    values = entities.get(key) or []
    if not values:
        return None
    return max(values, key=lambda v: v.get("confidence", 0.0))


class WitIntentExtractor(IntentExtractor):
    """Client for the Wit.ai message understanding API."""

    name = "wit"

    def __init__(
        self,
        token: str,
        base_url: str = WIT_API_URL,
        api_version: str = WIT_API_VERSION,
        timeout: float = HTTP_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Wit client.

        Args:
            token: Wit server access token
            base_url: API base URL
            api_version: Value for the ``v`` query parameter
            timeout: Request timeout in seconds
            http_client: Preconfigured client (mainly for tests)
        """
        if not token:
            raise ValueError("Wit access token not provided. Set WIT_TOKEN env var.")

        self.api_version = api_version
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout
        )
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def extract(
        self, text: str, context: Optional[ExtractionContext] = None
    ) -> ExtractionResult:
        params = {"v": self.api_version, "q": text}
        wit_context = self._context(context)
        if wit_context:
            params["context"] = json.dumps(wit_context)

        try:
            response = await self._client.get(
                "/message", params=params, headers=self._headers
            )
        except httpx.HTTPError as e:
            logger.warning(f"Wit request failed: {e}")
            raise ExtractionUnavailable(str(e)) from e

        if response.status_code >= 400:
            logger.warning(f"Wit returned HTTP {response.status_code}: {response.text}")
            raise ExtractionUnavailable(
                f"HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExtractionUnavailable(f"Invalid JSON from Wit: {e}") from e

        logger.debug(f"Wit response: {payload}")
        try:
            return self.map_response(text, payload)
        except (AttributeError, TypeError, ValueError) as e:
            # Entities or intents of the wrong shape
            logger.warning(f"Unexpected Wit response {payload!r}: {e}")
            raise ExtractionUnavailable(f"Unexpected Wit response: {e}") from e

    def _context(self, context: Optional[ExtractionContext]) -> dict[str, Any]:
        if context is None:
            return {}
        wit_context: dict[str, Any] = {"locale": "en_US"}
        if context.reference_time:
            wit_context["reference_time"] = context.reference_time.isoformat()
        if context.timezone:
            wit_context["timezone"] = context.timezone
        return wit_context

    def map_response(self, text: str, payload: dict[str, Any]) -> ExtractionResult:
        """
        Translate a Wit ``/message`` response into extraction candidates.

        Raises:
            ExtractionUnavailable: If the body is not a JSON object
        """
        if not isinstance(payload, dict):
            raise ExtractionUnavailable(
                f"Unexpected Wit response: {type(payload).__name__} body"
            )
        result = ExtractionResult(text=payload.get("text", text))
        entities = payload.get("entities") or {}

        intents = sorted(
            payload.get("intents") or [],
            key=lambda i: i.get("confidence", 0.0),
            reverse=True,
        )
        if intents:
            result.intent = intents[0].get("name")
            intent_type = _intent_type(result.intent or "")
            if intent_type is not None:
                result.add(
                    DraftField.TYPE, intent_type, intents[0].get("confidence", 0.0)
                )

        for key, transaction_type in ACTION_ENTITIES.items():
            action = _first(entities, key)
            if action is not None:
                result.add(DraftField.TYPE, transaction_type, action.get("confidence", 0.0))

        transaction_type = None
        best_type = result.best(DraftField.TYPE)
        if best_type is not None:
            transaction_type = best_type.value

        money = _first(entities, AMOUNT_ENTITY)
        if money is not None:
            amount = self._decimal(money.get("value"))
            confidence = money.get("confidence", 0.0)
            if amount is not None:
                result.add(DraftField.AMOUNT, amount, confidence)
            if money.get("unit"):
                result.add(DraftField.CURRENCY, str(money["unit"]).upper(), confidence)

        origin = _first(entities, ORIGIN_ENTITY)
        destination = _first(entities, DESTINATION_ENTITY)
        # Deposits land in the user's account; everything else leaves from it
        own, other = (
            (destination, origin)
            if transaction_type == TransactionType.DEPOSIT
            else (origin, destination)
        )
        if own is not None:
            result.add(DraftField.ACCOUNT, own.get("value"), own.get("confidence", 0.0))
        if other is not None:
            result.add(
                DraftField.COUNTERPARTY, other.get("value"), other.get("confidence", 0.0)
            )

        deed = _first(entities, DEED_ENTITY)
        if deed is not None:
            result.add(DraftField.DESCRIPTION, deed.get("value"), deed.get("confidence", 0.0))

        when = _first(entities, DATETIME_ENTITY)
        if when is not None:
            occurred_on = self._date(when.get("value"))
            if occurred_on is not None:
                result.add(DraftField.DATE, occurred_on, when.get("confidence", 0.0))

        return result

    @staticmethod
    def _decimal(value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None

    @staticmethod
    def _date(value: Any) -> Optional[date]:
        if not isinstance(value, str):
            return None
        try:
            return datetime.fromisoformat(value).date()
        except ValueError:
            return None
