from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .transaction import DraftField


@dataclass(frozen=True)
class ExtractionContext:
    """Hints passed to an extractor to bias interpretation."""

    reference_time: Optional[datetime] = None
    timezone: Optional[str] = None
    expected_field: Optional[DraftField] = None
    default_currency: Optional[str] = None


@dataclass(frozen=True)
class ExtractionCandidate:
    """One guessed (field, value, confidence) triple."""

    field: DraftField
    value: Any
    confidence: float


@dataclass
class ExtractionResult:
    """Structured output of an intent extractor. Hints only, never authoritative."""

    text: str = ""
    intent: Optional[str] = None
    candidates: list[ExtractionCandidate] = field(default_factory=list)
    available: bool = True  # False when the extractor could not be reached

    @classmethod
    def empty(cls, text: str = "", available: bool = True) -> "ExtractionResult":
        return cls(text=text, available=available)

    def add(self, draft_field: DraftField, value: Any, confidence: float):
        if value is None or value == "":
            return
        self.candidates.append(
            ExtractionCandidate(
                field=draft_field,
                value=value,
                confidence=max(0.0, min(float(confidence), 1.0)),
            )
        )

    def best(
        self, draft_field: DraftField, min_confidence: float = 0.0
    ) -> Optional[ExtractionCandidate]:
        """Highest-confidence candidate for a field at or above ``min_confidence``."""
        matches = [
            c
            for c in self.candidates
            if c.field == draft_field and c.confidence >= min_confidence
        ]
        if not matches:
            return None
        return max(matches, key=lambda c: c.confidence)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "text": self.text,
            "intent": self.intent,
            "available": self.available,
            "candidates": [
                {
                    "field": c.field.value,
                    "value": str(c.value),
                    "confidence": c.confidence,
                }
                for c in self.candidates
            ],
        }
