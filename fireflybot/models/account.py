"""
Account references returned by the ledger service.

The ledger owns accounts; the bot only keeps enough to name them in a draft
and to address them by id when committing.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AccountRef:
    """
    A ledger account found by name.

    Attributes:
        id: Ledger account id (string, as returned by the API)
        name: Canonical display name in the ledger
        account_type: Ledger account type (e.g. "Asset account")
        currency: Currency code of the account, when the ledger reports one
    """

    id: str
    name: str
    account_type: Optional[str] = None
    currency: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "account_type": self.account_type,
            "currency": self.currency,
        }
