import logging
from datetime import date, datetime, timezone
from typing import Optional

import spacy
from spacy.matcher import Matcher

from fireflybot.clients.base import IntentExtractor
from fireflybot.config import DEFAULT_SPACY_MODEL, MAX_MESSAGE_LENGTH
from fireflybot.models import (
    DraftField,
    ExtractionContext,
    ExtractionResult,
    TransactionType,
)

from .amount_parser import AmountParser
from .field_parser import (
    QuickEntry,
    find_date,
    find_transaction_type,
    parse_quick_entry,
    strip_dates,
)

logger = logging.getLogger(__name__)

# Words that end a "from X" / "to X" / "for X" phrase
PHRASE_BREAKS = [
    "from", "to", "into", "for", "on", "via", "using",
    "today", "yesterday", "ago", "last",
]

STOPWORDS = {"the", "a", "an", "my"}


class LocalIntentExtractor(IntentExtractor):
    """
    Offline intent extractor built on spaCy tokenization.

    Used when no NLP service token is configured. Extracts:
    - Type: withdrawal, deposit, or transfer (keywords, then from/to shape)
    - Amount and currency
    - Account / counterparty from "from X" and "to X" phrases
    - Description from "for X" / "on X"
    - Date expressions

    Every field comes with its own confidence; the conversation decides what
    to trust.
    """

    name = "local"

    def __init__(self, model_name: str = DEFAULT_SPACY_MODEL, nlp=None):
        """
        Initialize the extractor.

        Args:
            model_name: Name of the spaCy model to load
            nlp: An already loaded spaCy pipeline; skips loading when given
        """
        if nlp is not None:
            self.nlp = nlp
        else:
            try:
                self.nlp = spacy.load(model_name)
                logger.info(f"Loaded spaCy model: {model_name}")
            except OSError as e:
                # Only the tokenizer is needed, a blank pipeline will do
                logger.warning(
                    f"spaCy model '{model_name}' not found ({e}); "
                    f"using a blank English tokenizer. Install it with: "
                    f"python -m spacy download {model_name}"
                )
                self.nlp = spacy.blank("en")

        self.matcher = Matcher(self.nlp.vocab)
        self._setup_patterns()

    def _setup_patterns(self):
        """Setup spaCy matcher patterns for keyword phrases."""
        phrase_token = {
            "LOWER": {"NOT_IN": PHRASE_BREAKS},
            "IS_PUNCT": False,
            "OP": "+",
        }
        for label, keywords in (
            ("FROM_PHRASE", ["from"]),
            ("TO_PHRASE", ["to", "into"]),
            ("FOR_PHRASE", ["for", "on"]),
        ):
            self.matcher.add(
                label, [[{"LOWER": {"IN": keywords}}, phrase_token]], greedy="LONGEST"
            )

    async def extract(
        self, text: str, context: Optional[ExtractionContext] = None
    ) -> ExtractionResult:
        if not text or not text.strip():
            return ExtractionResult(text=text or "")
        return self.parse(text[:MAX_MESSAGE_LENGTH], context)

    def parse(
        self, text: str, context: Optional[ExtractionContext] = None
    ) -> ExtractionResult:
        """
        Parse a transaction description into extraction candidates.

        Raises:
            ValueError: If text is empty or too long
        """
        if not text or not isinstance(text, str) or not text.strip():
            raise ValueError(f"Invalid text input: {text!r}")

        text = text.strip()
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValueError(
                f"Text too long (max {MAX_MESSAGE_LENGTH} characters): {len(text)}"
            )

        today = self._today(context)
        result = ExtractionResult(text=text)

        quick_entry = parse_quick_entry(text)
        if quick_entry is not None:
            return self._from_quick_entry(result, quick_entry)

        doc = self.nlp(text)
        phrases = self._phrases(doc)

        transaction_type, type_confidence = self._detect_type(text, phrases)
        if transaction_type is not None:
            result.intent = transaction_type.value
            result.add(DraftField.TYPE, transaction_type, type_confidence)

        without_dates = strip_dates(text)
        found = AmountParser.find_amount_in_text(without_dates)
        if found is not None:
            amount, currency, _ = found
            several = len(AmountParser.AMOUNT_PATTERN.findall(without_dates)) > 1
            result.add(DraftField.AMOUNT, amount, 0.75 if several else 0.95)
            if currency:
                result.add(DraftField.CURRENCY, currency, 0.9)

        source = self._clean(phrases.get("FROM_PHRASE"))
        destination = self._clean(phrases.get("TO_PHRASE"))
        if transaction_type == TransactionType.DEPOSIT:
            result.add(DraftField.ACCOUNT, destination, 0.8)
            result.add(DraftField.COUNTERPARTY, source, 0.7)
        else:
            result.add(DraftField.ACCOUNT, source, 0.8)
            result.add(DraftField.COUNTERPARTY, destination, 0.75)

        purpose = phrases.get("FOR_PHRASE")
        if purpose and find_date(purpose, today) is None:
            result.add(DraftField.DESCRIPTION, self._clean(purpose), 0.8)

        occurred_on = find_date(text, today)
        if occurred_on is not None:
            result.add(DraftField.DATE, occurred_on, 0.9)

        logger.debug(
            f"Local extraction: intent={result.intent}, "
            f"fields={[c.field.value for c in result.candidates]}"
        )
        return result

    def _from_quick_entry(
        self, result: ExtractionResult, entry: QuickEntry
    ) -> ExtractionResult:
        """Candidates for ``Amount, Description, Source, Destination``."""
        result.intent = TransactionType.WITHDRAWAL.value
        result.add(DraftField.TYPE, TransactionType.WITHDRAWAL, 0.95)
        result.add(DraftField.AMOUNT, entry.amount, 0.99)
        if entry.currency:
            result.add(DraftField.CURRENCY, entry.currency, 0.95)
        result.add(DraftField.DESCRIPTION, entry.description, 0.95)
        result.add(DraftField.ACCOUNT, entry.source, 0.95)
        result.add(DraftField.COUNTERPARTY, entry.destination, 0.95)
        logger.debug(f"Quick entry: {entry}")
        return result

    def _today(self, context: Optional[ExtractionContext]) -> date:
        if context and context.reference_time:
            return context.reference_time.date()
        return datetime.now(timezone.utc).date()

    def _phrases(self, doc) -> dict[str, str]:
        """First phrase captured for each keyword pattern."""
        phrases: dict[str, str] = {}
        for match_id, start, end in sorted(self.matcher(doc), key=lambda m: m[1]):
            label = self.nlp.vocab.strings[match_id]
            if label not in phrases:
                # Drop the keyword itself
                phrases[label] = doc[start + 1 : end].text
        return phrases

    def _detect_type(
        self, text: str, phrases: dict[str, str]
    ) -> tuple[Optional[TransactionType], float]:
        """Detect the transaction type and how sure we are about it."""
        keyword_type = find_transaction_type(text)
        if keyword_type is not None:
            return keyword_type, 0.9

        has_from = "FROM_PHRASE" in phrases
        has_to = "TO_PHRASE" in phrases

        if has_from and has_to:
            return TransactionType.TRANSFER, 0.6
        if has_to:
            return TransactionType.DEPOSIT, 0.5
        if has_from or "FOR_PHRASE" in phrases:
            return TransactionType.WITHDRAWAL, 0.6
        return None, 0.0

    def _clean(self, phrase: Optional[str]) -> Optional[str]:
        """Remove amounts and stopwords from a captured phrase."""
        if not phrase:
            return None
        words = [
            word
            for word in AmountParser.strip_amounts(phrase).split()
            if word.lower() not in STOPWORDS
        ]
        cleaned = " ".join(words).strip(" ,.!?")
        return cleaned or None
