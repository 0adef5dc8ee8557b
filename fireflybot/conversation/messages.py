"""
User-facing text for the conversation.

Formatting is Discord markdown; other transports show it as plain text.
"""

from decimal import Decimal
from typing import Optional

from fireflybot.errors import ParseFailure
from fireflybot.models import DraftField, DraftTransaction, TransactionType

TYPE_EMOJI = {
    TransactionType.WITHDRAWAL: "📤",
    TransactionType.DEPOSIT: "📥",
    TransactionType.TRANSFER: "🔄",
}

PROMPTS = {
    DraftField.TYPE: (
        "What kind of transaction is this?\n"
        "`1` withdrawal (money out), `2` deposit (money in), "
        "`3` transfer between your accounts"
    ),
    DraftField.AMOUNT: "How much was it? (e.g. `20`, `12.50`, `1.5k`, `25 eur`)",
    DraftField.DESCRIPTION: "What should the description be?",
    DraftField.DATE: "When was it? (e.g. `today`, `yesterday`, `2024-05-01`, `3 may`)",
    DraftField.CURRENCY: "Which currency? (e.g. `USD`, `EUR`, `IDR`)",
}

CONFIRM_HINT = "Save it? Reply `yes`, tell me what to change (e.g. `amount 25`), or `cancel`."
CHANGE_QUESTION = (
    "What should I change? e.g. `amount 25`, `account savings`, "
    "`for dinner`, `date yesterday`."
)
CANCELLED = "Cancelled. Nothing was recorded."
NOTHING_TO_CANCEL = "There's nothing to cancel."
RETRY_HINT = "Reply `retry` to try again or `cancel` to discard it."


def format_amount(amount: Optional[Decimal], currency: Optional[str]) -> str:
    if amount is None:
        return "-"
    text = f"{amount:,.2f}"
    return f"{text} {currency}" if currency else text


def side_labels(transaction_type: Optional[TransactionType]) -> tuple[str, str]:
    """Labels for (account, counterparty) under a transaction type."""
    if transaction_type == TransactionType.DEPOSIT:
        return "Into", "From"
    if transaction_type == TransactionType.TRANSFER:
        return "From", "To"
    return "From", "Paid to"


def format_draft(draft: DraftTransaction) -> str:
    """Format a draft for display."""
    emoji = TYPE_EMOJI.get(draft.transaction_type, "💰")
    kind = draft.transaction_type.value.upper() if draft.transaction_type else "TRANSACTION"
    account_label, counterparty_label = side_labels(draft.transaction_type)

    account = draft.account or "-"
    if draft.account and not draft.account_id:
        account += " (unverified)"

    lines = [
        f"{emoji} **{kind}**",
        "```",
        f"Amount:      {format_amount(draft.amount, draft.currency)}",
        f"{account_label + ':':<13}{account}",
        f"{counterparty_label + ':':<13}{draft.counterparty or '-'}",
        f"Description: {draft.description or '-'}",
        f"Date:        {draft.occurred_on.isoformat() if draft.occurred_on else '-'}",
        "```",
    ]
    return "\n".join(lines)


def field_prompt(draft_field: DraftField, draft: DraftTransaction) -> str:
    """Question asking for one field."""
    if draft_field == DraftField.ACCOUNT:
        if draft.transaction_type == TransactionType.DEPOSIT:
            return "Which of your accounts did the money go into?"
        return "Which of your accounts did the money come from?"
    if draft_field == DraftField.COUNTERPARTY:
        if draft.transaction_type == TransactionType.TRANSFER:
            return "Which of your accounts did the money go to?"
        if draft.transaction_type == TransactionType.DEPOSIT:
            return "Who paid you?"
        return "Who did you pay?"
    return PROMPTS[draft_field]


def confirmation(draft: DraftTransaction) -> str:
    return f"{format_draft(draft)}\n{CONFIRM_HINT}"


def parse_failure(error: ParseFailure) -> str:
    """Explain why a reply could not be used."""
    if error.detail:
        return f"Sorry, that doesn't work as the {error.field}: {error.detail}."
    return f"Sorry, I couldn't read the {error.field} from that."


def too_many_retries(draft_field: Optional[DraftField]) -> str:
    what = f"the {draft_field.value}" if draft_field else "an answer"
    return (
        f"I still couldn't get {what}, so I've cancelled this transaction. "
        "Nothing was recorded; send a new message to start over."
    )


def account_not_found(name: str) -> str:
    return f"I couldn't find an asset account called **{name}** in Firefly."


def account_unverified(name: str) -> str:
    return (
        f"I couldn't reach Firefly to check **{name}**, so I'll use the name as typed."
    )


def expired(minutes: int) -> str:
    return (
        f"Your previous draft was inactive for more than {minutes} minutes "
        "and has been discarded."
    )


def committed(draft: DraftTransaction, transaction_id: str) -> str:
    kind = draft.transaction_type.value if draft.transaction_type else "transaction"
    return (
        f"✅ Recorded {kind} of {format_amount(draft.amount, draft.currency)} "
        f"(Firefly id `{transaction_id}`)."
    )


def already_committed(transaction_id: Optional[str]) -> str:
    return f"That's already recorded (Firefly id `{transaction_id}`)."


def ledger_unreachable(attempt: int, max_attempts: int) -> str:
    return (
        f"⚠️ I couldn't reach Firefly (attempt {attempt} of {max_attempts}). "
        f"Your draft is kept. {RETRY_HINT}"
    )


def ledger_gave_up(max_attempts: int) -> str:
    return (
        f"❌ Firefly was unreachable after {max_attempts} attempts, so I've cancelled "
        "this transaction. Nothing was recorded and the admin has been notified."
    )


def ledger_rejected(message: str) -> str:
    return (
        f"❌ Firefly rejected the transaction: {message}\n"
        "Your draft is kept. Reply `retry` to try again, correct a field "
        "(e.g. `amount 25`), or send a new message to start over."
    )


def still_committing() -> str:
    return f"This transaction hasn't been saved yet. {RETRY_HINT}"
