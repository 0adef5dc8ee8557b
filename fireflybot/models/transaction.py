from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional


class TransactionType(str, Enum):
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


class DraftField(str, Enum):
    """Fields of a draft that the conversation can ask for or edit."""

    TYPE = "type"
    AMOUNT = "amount"
    ACCOUNT = "account"
    COUNTERPARTY = "counterparty"
    DESCRIPTION = "description"
    DATE = "date"
    CURRENCY = "currency"


# Order in which missing required fields are asked for
REQUIRED_ORDER = (
    DraftField.TYPE,
    DraftField.AMOUNT,
    DraftField.ACCOUNT,
    DraftField.COUNTERPARTY,
)


@dataclass
class DraftTransaction:
    """A transaction under construction across one or more messages."""

    transaction_type: Optional[TransactionType] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    account: Optional[str] = None  # the user's own asset account
    account_id: Optional[str] = None
    counterparty: Optional[str] = None  # transfer destination, payee or payer
    counterparty_id: Optional[str] = None
    description: Optional[str] = None
    occurred_on: Optional[date] = None

    def has_valid_amount(self) -> bool:
        return self.amount is not None and self.amount > 0

    def required_fields(self) -> tuple[DraftField, ...]:
        """Fields required by the current transaction type."""
        if self.transaction_type == TransactionType.TRANSFER:
            return REQUIRED_ORDER
        return REQUIRED_ORDER[:3]

    def missing_fields(self) -> list[DraftField]:
        """Required fields that are still missing, in prompting order."""
        missing = []
        for draft_field in self.required_fields():
            if draft_field == DraftField.TYPE and self.transaction_type is None:
                missing.append(draft_field)
            elif draft_field == DraftField.AMOUNT and not self.has_valid_amount():
                missing.append(draft_field)
            elif draft_field == DraftField.ACCOUNT and not self.account:
                missing.append(draft_field)
            elif draft_field == DraftField.COUNTERPARTY and not self.counterparty:
                missing.append(draft_field)
        return missing

    def is_complete(self) -> bool:
        """A draft is complete iff every required field is present and the amount is valid."""
        return not self.missing_fields()

    def source_and_destination(self) -> tuple[Optional[str], Optional[str]]:
        """Map account/counterparty onto ledger source and destination names."""
        if self.transaction_type == TransactionType.DEPOSIT:
            return self.counterparty, self.account
        return self.account, self.counterparty

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "transaction_type": (
                self.transaction_type.value if self.transaction_type else None
            ),
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "account": self.account,
            "account_id": self.account_id,
            "counterparty": self.counterparty,
            "counterparty_id": self.counterparty_id,
            "description": self.description,
            "occurred_on": self.occurred_on.isoformat() if self.occurred_on else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DraftTransaction":
        """Create a draft from its dictionary representation."""
        amount = None
        if data.get("amount") is not None:
            try:
                amount = Decimal(str(data["amount"]))
            except InvalidOperation:
                amount = None

        return cls(
            transaction_type=(
                TransactionType(data["transaction_type"])
                if data.get("transaction_type")
                else None
            ),
            amount=amount,
            currency=data.get("currency"),
            account=data.get("account"),
            account_id=data.get("account_id"),
            counterparty=data.get("counterparty"),
            counterparty_id=data.get("counterparty_id"),
            description=data.get("description"),
            occurred_on=(
                date.fromisoformat(data["occurred_on"])
                if data.get("occurred_on")
                else None
            ),
        )
