"""
Direct-parse grammar for conversational replies.

When the bot is waiting for one specific field it does not consult the intent
extractor; it reads the reply with the small grammar below.

- Type: a keyword (spent, paid, income, salary, transfer, ...) or the option
  number shown in the prompt (1 withdrawal, 2 deposit, 3 transfer).
- Amount: anything AmountParser understands ("20", "$20", "1.5k", "25 eur").
  Must be positive.
- Account: free text with filler words removed ("my checking account" ->
  "checking"); existence is checked against the ledger by the caller.
- Date: "today", "yesterday", "N days ago", weekday names ("last friday"),
  ISO dates (2024-05-01), "5 may" / "may 5" with optional year, and
  day/month/year with slashes (d/m/Y).
- Confirmation: yes / no style words.
- Edits: "no, make it 25", "change account to savings", "amount 30",
  "to bob", "for dinner", "date yesterday", "it's a deposit".
- Quick entry: "20, lunch, checking, cafe" (Amount, Description, Source,
  Destination; the last two optional) fills a whole withdrawal at once.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

from fireflybot.config import (
    AMOUNT_STEP,
    MAX_ACCOUNT_NAME_LENGTH,
    MAX_AMOUNT,
    MAX_DESCRIPTION_LENGTH,
    MIN_AMOUNT,
)
from fireflybot.errors import ParseFailure
from fireflybot.models import DraftField, TransactionType

from .amount_parser import AmountParser

TYPE_KEYWORDS = {
    TransactionType.WITHDRAWAL: {
        "withdrawal", "withdraw", "withdrew", "expense", "spent", "spend",
        "paid", "pay", "bought", "buy", "purchase", "purchased", "outgoing",
        "debit",
    },
    TransactionType.DEPOSIT: {
        "deposit", "deposited", "income", "received", "receive", "got",
        "earned", "earn", "salary", "incoming", "credit", "refund", "refunded",
    },
    TransactionType.TRANSFER: {
        "transfer", "transferred", "move", "moved", "send", "sent",
    },
}

# Bare replies to the type prompt
TYPE_SHORT_REPLIES = {
    "1": TransactionType.WITHDRAWAL,
    "out": TransactionType.WITHDRAWAL,
    "2": TransactionType.DEPOSIT,
    "in": TransactionType.DEPOSIT,
    "3": TransactionType.TRANSFER,
}

AFFIRMATIVE = {
    "yes", "y", "yep", "yeah", "yup", "ok", "okay", "sure", "confirm",
    "confirmed", "correct", "right", "save", "go", "👍", "✅",
}
NEGATIVE = {
    "no", "n", "nope", "nah", "wrong", "incorrect", "change", "edit", "fix",
    "👎", "❌",
}
CANCEL_PHRASES = {
    "cancel", "/cancel", "stop", "abort", "nevermind", "never mind",
    "forget it", "quit",
}
RETRY_PHRASES = {"retry", "try again", "again", "resend"}

ACCOUNT_FILLER = {
    "from", "to", "into", "in", "my", "the", "a", "an", "account", "acct",
    "use", "using", "it's", "its", "it", "is", "was", "with", "please",
}

FIELD_NAMES = {
    "amount": DraftField.AMOUNT,
    "sum": DraftField.AMOUNT,
    "price": DraftField.AMOUNT,
    "account": DraftField.ACCOUNT,
    "type": DraftField.TYPE,
    "kind": DraftField.TYPE,
    "description": DraftField.DESCRIPTION,
    "note": DraftField.DESCRIPTION,
    "memo": DraftField.DESCRIPTION,
    "date": DraftField.DATE,
    "day": DraftField.DATE,
    "currency": DraftField.CURRENCY,
    "counterparty": DraftField.COUNTERPARTY,
    "payee": DraftField.COUNTERPARTY,
    "recipient": DraftField.COUNTERPARTY,
}

# Keywords that name the side of the transaction rather than the field
SOURCE_WORDS = {"from", "source"}
DESTINATION_WORDS = {"to", "destination", "into"}

# First words that make a reply a correction
EDIT_HEADS = set(FIELD_NAMES) | SOURCE_WORDS | DESTINATION_WORDS | {"for", "on"}

EDIT_PREFIXES = re.compile(
    r"^(?:(?:no|nope|nah|wait|actually|sorry|oops|edit|fix)\b[\s,.!:-]*)*"
    r"(?:(?:please\s+)?(?:make\s+it|change\s+it\s+to|change\s+to|set\s+it\s+to|"
    r"it\s+should\s+be|should\s+be|it\s+was|it's|its|it\s+is|change|set|update)\b\s*)?",
    re.IGNORECASE,
)

MONTHS = {
    name: index
    for index, names in enumerate(
        [
            ("jan", "january"), ("feb", "february"), ("mar", "march"),
            ("apr", "april"), ("may",), ("jun", "june"), ("jul", "july"),
            ("aug", "august"), ("sep", "sept", "september"), ("oct", "october"),
            ("nov", "november"), ("dec", "december"),
        ],
        start=1,
    )
    for name in names
}
WEEKDAYS = {
    name: index
    for index, names in enumerate(
        [
            ("monday",), ("tuesday", "tues"), ("wednesday",),
            ("thursday", "thurs"), ("friday",), ("saturday",), ("sunday",),
        ]
    )
    for name in names
}
MONTH_RE = "|".join(sorted(MONTHS, key=len, reverse=True))
WEEKDAY_RE = "|".join(sorted(WEEKDAYS, key=len, reverse=True))

ISO_DATE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
SLASH_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
DAY_MONTH = re.compile(rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+({MONTH_RE})\b\.?(?:,?\s+(\d{{4}}))?", re.IGNORECASE)
MONTH_DAY = re.compile(rf"\b({MONTH_RE})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\b(?:,?\s+(\d{{4}}))?", re.IGNORECASE)
DAYS_AGO = re.compile(r"\b(\d{1,2})\s+days?\s+ago\b", re.IGNORECASE)
WEEKDAY = re.compile(rf"\b(?:last\s+|on\s+)?({WEEKDAY_RE})\b", re.IGNORECASE)

# Commas split a quick entry, except inside numbers like 1,500 or 12,50
QUICK_ENTRY_SPLIT = re.compile(r",(?!\d)")


@dataclass(frozen=True)
class FieldEdit:
    """A correction read from a reply; ``value`` is None when only the field is named."""

    field: DraftField
    value: Any = None


@dataclass(frozen=True)
class QuickEntry:
    """A whole withdrawal typed as ``Amount, Description, Source, Destination``."""

    amount: Decimal
    currency: Optional[str]
    description: str
    source: Optional[str] = None
    destination: Optional[str] = None


def normalize(text: str) -> str:
    """Lowercase and trim surrounding whitespace and punctuation."""
    return (text or "").strip().lower().strip(" \t\n.!?,;:")


def _tokens(text: str) -> list[str]:
    return re.findall(r"[\w']+|[👍👎✅❌]", normalize(text))


def is_cancel(text: str) -> bool:
    return normalize(text) in CANCEL_PHRASES


def is_retry(text: str) -> bool:
    return normalize(text) in RETRY_PHRASES or parse_confirmation(text) is True


def parse_confirmation(text: str) -> Optional[bool]:
    """
    Read a yes/no reply.

    Returns True for affirmative, False for negative, None when neither.
    Only the first word counts, so "no, make it 25" is negative.
    """
    tokens = _tokens(text)
    if not tokens:
        return None
    if tokens[0] in AFFIRMATIVE:
        return True
    if tokens[0] in NEGATIVE:
        return False
    return None


def is_bare_confirmation(text: str) -> bool:
    """A reply that is only an affirmative word, e.g. "yes" or "ok!"."""
    tokens = _tokens(text)
    return len(tokens) == 1 and tokens[0] in AFFIRMATIVE


def is_explicit_edit(text: str) -> bool:
    """
    A reply that reads as a correction on its own.

    It starts with an edit prefix ("no", "make it", "change ...") or with a
    field name ("amount 25", "account savings", "to bob"). A bare amount or
    "got 500 salary" does not count.
    """
    stripped = (text or "").strip()
    match = EDIT_PREFIXES.match(stripped)
    if match and match.group(0).strip():
        return True
    words = stripped.lower().split(None, 2)
    if len(words) > 1 and words[0] in {"the", "my"}:
        words = words[1:]
    return bool(words) and words[0].strip(",.:") in EDIT_HEADS


def find_transaction_type(text: str) -> Optional[TransactionType]:
    """Type named by keyword anywhere in ``text``; None if absent or ambiguous."""
    tokens = set(_tokens(text))
    found = {
        transaction_type
        for transaction_type, keywords in TYPE_KEYWORDS.items()
        if tokens & keywords
    }
    if len(found) == 1:
        return found.pop()
    if TransactionType.TRANSFER in found:
        # "sent" and "moved" outrank the generic "paid" and "got"
        return TransactionType.TRANSFER
    return None


def parse_transaction_type(text: str) -> TransactionType:
    """
    Parse a reply to the type prompt.

    Raises:
        ParseFailure: If no single type can be read
    """
    normalized = normalize(text)
    if normalized in TYPE_SHORT_REPLIES:
        return TYPE_SHORT_REPLIES[normalized]
    for transaction_type in TransactionType:
        if normalized == transaction_type.value:
            return transaction_type
    transaction_type = find_transaction_type(text)
    if transaction_type is None:
        raise ParseFailure(DraftField.TYPE.value, text)
    return transaction_type


def parse_amount(text: str) -> tuple[Decimal, Optional[str]]:
    """
    Parse a reply to the amount prompt.

    Returns:
        Tuple of (amount, currency code or None)

    Raises:
        ParseFailure: If no positive amount can be read
    """
    if re.search(r"(?<![\w])-\s*[$€£¥₱₹]?\s*\d", text or ""):
        raise ParseFailure(DraftField.AMOUNT.value, text, "amount must be positive")

    parsed = AmountParser.parse_with_currency(text)
    if parsed is None:
        raise ParseFailure(DraftField.AMOUNT.value, text)

    amount, currency = parsed
    if amount < MIN_AMOUNT:
        raise ParseFailure(DraftField.AMOUNT.value, text, "amount must be positive")
    if amount > MAX_AMOUNT:
        raise ParseFailure(DraftField.AMOUNT.value, text, "amount is too large")
    if not has_cent_precision(amount):
        raise ParseFailure(
            DraftField.AMOUNT.value, text, "use at most two decimal places"
        )
    return amount, currency


def has_cent_precision(amount: Decimal) -> bool:
    """Whether ``amount`` is a whole number of cents."""
    return amount.quantize(AMOUNT_STEP) == amount


def parse_account_name(text: str) -> str:
    """
    Read an account name from a reply, dropping filler words.

    Raises:
        ParseFailure: If nothing usable remains
    """
    words = [
        word
        for word in re.split(r"\s+", normalize(text))
        if word and word not in ACCOUNT_FILLER
    ]
    name = " ".join(words).strip(" '\"")
    if not name or len(name) > MAX_ACCOUNT_NAME_LENGTH:
        raise ParseFailure(DraftField.ACCOUNT.value, text)
    if AmountParser.parse(name) is not None and AmountParser.strip_amounts(name) == "":
        raise ParseFailure(DraftField.ACCOUNT.value, text, "looks like an amount")
    return name


def parse_description(text: str) -> str:
    description = (text or "").strip().strip("\"'")
    if not description:
        raise ParseFailure(DraftField.DESCRIPTION.value, text)
    return description[:MAX_DESCRIPTION_LENGTH]


def parse_quick_entry(text: str) -> Optional[QuickEntry]:
    """
    Read the comma-separated quick-entry form
    ``Amount, Description[, Source[, Destination]]``.

    The first part must be nothing but an amount. The entry is a withdrawal
    from Source, paid to Destination.

    Returns:
        QuickEntry, or None when ``text`` is not in that form
    """
    parts = [part.strip() for part in QUICK_ENTRY_SPLIT.split(text or "")]
    if not 2 <= len(parts) <= 4 or not parts[0] or not parts[1]:
        return None
    if AmountParser.strip_amounts(parts[0]):
        return None
    try:
        amount, currency = parse_amount(parts[0])
    except ParseFailure:
        return None

    names = [part[:MAX_ACCOUNT_NAME_LENGTH] or None for part in parts[2:]]
    names += [None] * (2 - len(names))
    return QuickEntry(
        amount=amount,
        currency=currency,
        description=parse_description(parts[1]),
        source=names[0],
        destination=names[1],
    )


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _full_year(year: int) -> int:
    return year + 2000 if year < 100 else year


def find_date(text: str, today: date) -> Optional[date]:
    """Find a date expression anywhere in ``text``."""
    lowered = (text or "").lower()

    if re.search(r"\btoday\b", lowered):
        return today
    if re.search(r"\byesterday\b", lowered):
        return today - timedelta(days=1)

    match = DAYS_AGO.search(lowered)
    if match:
        return today - timedelta(days=int(match.group(1)))

    match = ISO_DATE.search(lowered)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = SLASH_DATE.search(lowered)
    if match:
        year = _full_year(int(match.group(3))) if match.group(3) else today.year
        return _safe_date(year, int(match.group(2)), int(match.group(1)))

    match = DAY_MONTH.search(lowered)
    if match:
        year = int(match.group(3)) if match.group(3) else today.year
        return _safe_date(year, MONTHS[match.group(2).lower()], int(match.group(1)))

    match = MONTH_DAY.search(lowered)
    if match:
        year = int(match.group(3)) if match.group(3) else today.year
        return _safe_date(year, MONTHS[match.group(1).lower()], int(match.group(2)))

    match = WEEKDAY.search(lowered)
    if match:
        weekday = WEEKDAYS[match.group(1).lower()]
        # Most recent such day, today included
        return today - timedelta(days=(today.weekday() - weekday) % 7)

    return None


def strip_dates(text: str) -> str:
    """Remove date expressions so their digits are not read as amounts."""
    for pattern in (ISO_DATE, SLASH_DATE, DAY_MONTH, MONTH_DAY, DAYS_AGO):
        text = pattern.sub(" ", text)
    return re.sub(r"\s{2,}", " ", text).strip()


def parse_date(text: str, today: date) -> date:
    """
    Parse a reply that should be a date.

    Raises:
        ParseFailure: If no date can be read
    """
    found = find_date(text, today)
    if found is None:
        raise ParseFailure(DraftField.DATE.value, text)
    return found


def _side_field(
    word: str, transaction_type: Optional[TransactionType]
) -> DraftField:
    """Map "from"/"to" onto the draft field for the current transaction type."""
    is_source = word in SOURCE_WORDS
    if transaction_type == TransactionType.DEPOSIT:
        return DraftField.COUNTERPARTY if is_source else DraftField.ACCOUNT
    return DraftField.ACCOUNT if is_source else DraftField.COUNTERPARTY


def parse_field_value(
    draft_field: DraftField, rest: str, today: date
) -> Any:
    """
    Parse a value for ``draft_field`` from a reply, or from the words that
    follow a field name in an edit.

    Amounts come back as (amount, currency) tuples. Returns None when the
    text is empty.

    Raises:
        ParseFailure: If the text does not read as that field
    """
    rest = re.sub(r"^(?:to|is|=|:|as|should\s+be)\s+", "", rest.strip(), flags=re.IGNORECASE)
    rest = rest.strip(" ,.:")
    if not rest:
        return None
    if draft_field == DraftField.AMOUNT:
        return parse_amount(rest)
    if draft_field == DraftField.TYPE:
        return parse_transaction_type(rest)
    if draft_field == DraftField.DATE:
        return parse_date(rest, today)
    if draft_field == DraftField.DESCRIPTION:
        return parse_description(rest)
    if draft_field == DraftField.CURRENCY:
        code = normalize(rest)
        currency = AmountParser.currency_code(code)
        if currency is None:
            raise ParseFailure(DraftField.CURRENCY.value, rest)
        return currency
    return parse_account_name(rest)


def parse_edit(
    text: str,
    transaction_type: Optional[TransactionType],
    today: date,
) -> Optional[FieldEdit]:
    """
    Read a correction from a reply at the confirmation step.

    Returns:
        FieldEdit naming the field (and the new value when one is given),
        or None when the reply names no field

    Raises:
        ParseFailure: If a field is named but its value cannot be read
    """
    body = EDIT_PREFIXES.sub("", (text or "").strip(), count=1).strip(" ,.!")
    if not body:
        return None

    words = body.split(None, 1)
    head = words[0].lower().strip(",.:")
    rest = words[1] if len(words) > 1 else ""

    # "the amount", "my account"
    if head in {"the", "my"} and rest:
        words = rest.split(None, 1)
        head = words[0].lower().strip(",.:")
        rest = words[1] if len(words) > 1 else ""

    if head in FIELD_NAMES:
        draft_field = FIELD_NAMES[head]
        return FieldEdit(draft_field, parse_field_value(draft_field, rest, today))

    if head in SOURCE_WORDS or head in DESTINATION_WORDS:
        draft_field = _side_field(head, transaction_type)
        return FieldEdit(draft_field, parse_field_value(draft_field, rest, today))

    if head in {"for", "description"}:
        return FieldEdit(DraftField.DESCRIPTION, parse_field_value(DraftField.DESCRIPTION, rest, today))

    if head in {"on", "date"}:
        return FieldEdit(DraftField.DATE, parse_field_value(DraftField.DATE, rest, today))

    date_value = find_date(body, today)
    if date_value is not None and AmountParser.find_amount_in_text(strip_dates(body)) is None:
        return FieldEdit(DraftField.DATE, date_value)

    if AmountParser.find_amount_in_text(body) is not None:
        return FieldEdit(DraftField.AMOUNT, parse_amount(body))

    transaction_type_value = find_transaction_type(body)
    if transaction_type_value is None and normalize(body) in {t.value for t in TransactionType}:
        transaction_type_value = TransactionType(normalize(body))
    if transaction_type_value is not None:
        return FieldEdit(DraftField.TYPE, transaction_type_value)

    return None
