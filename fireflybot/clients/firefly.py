"""
Firefly III ledger client.

Firefly III API: https://api-docs.firefly-iii.org/

Endpoints used:
- POST /api/v1/transactions: create a transaction group with one split
- GET  /api/v1/search/accounts: find an asset account by name
- GET  /api/v1/about: server version, used as a health check

Requests authenticate with a personal access token. Transient failures
(network errors, timeouts, 5xx, throttling) are retried with exponential
backoff and then surface as LedgerUnreachable; every other error response is
a LedgerRejected carrying the server's message.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import httpx

from fireflybot.config import (
    HTTP_TIMEOUT,
    LEDGER_RETRY_ATTEMPTS,
    LEDGER_RETRY_BASE_DELAY,
    LEDGER_RETRY_MAX_DELAY,
)
from fireflybot.errors import LedgerRejected, LedgerUnreachable
from fireflybot.models import AccountRef, DraftTransaction, TransactionType

from .base import LedgerClient, retry_with_backoff

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}
CENTS = Decimal("0.01")


def build_transaction_payload(draft: DraftTransaction) -> dict[str, Any]:
    """Map a complete draft onto a Firefly ``POST /transactions`` body."""
    source_name, destination_name = draft.source_and_destination()
    if draft.transaction_type == TransactionType.DEPOSIT:
        source_id, destination_id = draft.counterparty_id, draft.account_id
    else:
        source_id, destination_id = draft.account_id, draft.counterparty_id

    split: dict[str, Any] = {
        "type": draft.transaction_type.value if draft.transaction_type else None,
        "date": (draft.occurred_on or date.today()).isoformat(),
        "amount": str(draft.amount.quantize(CENTS)) if draft.amount is not None else None,
        "description": draft.description or default_description(draft),
    }
    if draft.currency:
        split["currency_code"] = draft.currency
    if source_id:
        split["source_id"] = source_id
    elif source_name:
        split["source_name"] = source_name
    if destination_id:
        split["destination_id"] = destination_id
    elif destination_name:
        split["destination_name"] = destination_name

    return {
        "error_if_duplicate_hash": True,
        "apply_rules": True,
        "transactions": [split],
    }


def default_description(draft: DraftTransaction) -> str:
    kind = draft.transaction_type.value if draft.transaction_type else "transaction"
    if draft.counterparty:
        return f"{kind.capitalize()}: {draft.counterparty}"
    return f"{kind.capitalize()} via chat"


class FireflyClient(LedgerClient):
    """Client for the Firefly III REST API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = HTTP_TIMEOUT,
        retry_attempts: int = LEDGER_RETRY_ATTEMPTS,
        retry_base_delay: float = LEDGER_RETRY_BASE_DELAY,
        retry_max_delay: float = LEDGER_RETRY_MAX_DELAY,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Firefly client.

        Args:
            base_url: Firefly III server URL (e.g. https://my-firefly-iii.com)
            token: Personal access token
            timeout: Request timeout in seconds
            retry_attempts: Attempts per request for transient failures
            retry_base_delay: First backoff delay in seconds
            retry_max_delay: Backoff ceiling in seconds
            http_client: Preconfigured client (mainly for tests)
        """
        if not base_url:
            raise ValueError("Firefly URL not provided. Set FIREFLY_URL env var.")
        if not token:
            raise ValueError("Firefly token not provided. Set FIREFLY_TOKEN env var.")

        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout
        )
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.api+json",
            "Content-Type": "application/json",
        }
        self._request = retry_with_backoff(
            max_attempts=retry_attempts,
            base_delay=retry_base_delay,
            max_delay=retry_max_delay,
            exceptions=(LedgerUnreachable,),
        )(self._request_once)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_once(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send one request and map the response or failure."""
        logger.debug(f"REQ {method} {path} params={params} body={json}")
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise LedgerUnreachable(f"{type(e).__name__}: {e}") from e

        logger.debug(f"RES {response.status_code} {path}")

        if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
            raise LedgerUnreachable(
                f"HTTP {response.status_code} from {path}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            raise self._rejection(response)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise LedgerRejected(
                f"Ledger returned an unreadable response: {e}",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _rejection(response: httpx.Response) -> LedgerRejected:
        """Build a LedgerRejected from an error response, keeping the server's words."""
        message = f"Ledger refused the request (HTTP {response.status_code})"
        errors: dict[str, Any] = {}
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            errors = body.get("errors") or {}
            details = [
                str(item)
                for messages in errors.values()
                for item in (messages if isinstance(messages, list) else [messages])
            ]
            if details:
                message = "; ".join(details)
            elif body.get("message"):
                message = str(body["message"])

        return LedgerRejected(message, status_code=response.status_code, errors=errors)

    async def create_transaction(self, draft: DraftTransaction) -> str:
        payload = build_transaction_payload(draft)
        body = await self._request("POST", "/api/v1/transactions", json=payload)

        data = body.get("data") or {}
        transaction_id = data.get("id")
        if not transaction_id:
            raise LedgerRejected("Ledger did not return a transaction id")

        logger.info(
            f"Created {payload['transactions'][0]['type']} transaction {transaction_id}"
        )
        return str(transaction_id)

    async def resolve_account(self, name: str) -> Optional[AccountRef]:
        name = (name or "").strip()
        if not name:
            return None

        body = await self._request(
            "GET",
            "/api/v1/search/accounts",
            params={"query": name, "field": "name", "type": "asset"},
        )

        accounts = [self._account(item) for item in body.get("data") or []]
        accounts = [account for account in accounts if account is not None]

        exact = [a for a in accounts if a.name.lower() == name.lower()]
        if exact:
            return exact[0]
        if len(accounts) == 1:
            return accounts[0]
        if accounts:
            logger.info(f"Account name '{name}' is ambiguous: {[a.name for a in accounts]}")
        return None

    @staticmethod
    def _account(item: dict[str, Any]) -> Optional[AccountRef]:
        attributes = item.get("attributes") or {}
        if not item.get("id") or not attributes.get("name"):
            return None
        return AccountRef(
            id=str(item["id"]),
            name=attributes["name"],
            account_type=attributes.get("type"),
            currency=attributes.get("currency_code"),
        )

    async def about(self) -> dict[str, Any]:
        """Return server version info; raises like any other request."""
        body = await self._request("GET", "/api/v1/about")
        return body.get("data") or {}
