from datetime import date
from decimal import Decimal

import pytest

from fireflybot.errors import ParseFailure
from fireflybot.models import DraftField, TransactionType
from fireflybot.services.field_parser import (
    FieldEdit,
    QuickEntry,
    find_date,
    find_transaction_type,
    is_bare_confirmation,
    is_cancel,
    is_explicit_edit,
    is_retry,
    parse_account_name,
    parse_amount,
    parse_confirmation,
    parse_date,
    parse_edit,
    parse_field_value,
    parse_quick_entry,
    parse_transaction_type,
    strip_dates,
)

# A Monday
TODAY = date(2024, 5, 6)


def test_confirmation_reads_first_word_only():
    assert parse_confirmation("yes") is True
    assert parse_confirmation("Yes!") is True
    assert parse_confirmation("👍") is True
    assert parse_confirmation("no, make it 25") is False
    assert parse_confirmation("maybe later") is None
    assert parse_confirmation("") is None


def test_bare_confirmation_is_a_single_affirmative_word():
    assert is_bare_confirmation("ok!")
    assert not is_bare_confirmation("yes but change the amount")
    assert not is_bare_confirmation("no")


def test_cancel_and_retry_phrases():
    assert is_cancel("Cancel")
    assert is_cancel("never mind")
    assert not is_cancel("cancel the amount")
    assert is_retry("try again")
    assert is_retry("yes")
    assert not is_retry("amount 20")


def test_transaction_type_from_option_number_and_name():
    assert parse_transaction_type("1") == TransactionType.WITHDRAWAL
    assert parse_transaction_type("2") == TransactionType.DEPOSIT
    assert parse_transaction_type("3") == TransactionType.TRANSFER
    assert parse_transaction_type("Deposit") == TransactionType.DEPOSIT
    assert parse_transaction_type("I sent it to savings") == TransactionType.TRANSFER


def test_ambiguous_type_keywords_fail():
    with pytest.raises(ParseFailure) as exc_info:
        parse_transaction_type("I got paid")
    assert exc_info.value.field == "type"


def test_transfer_keywords_outrank_generic_ones():
    assert find_transaction_type("paid and sent 50") == TransactionType.TRANSFER
    assert find_transaction_type("lunch with bob") is None


def test_amount_with_symbol_and_separators():
    assert parse_amount("$1,250.50") == (Decimal("1250.50"), "USD")
    assert parse_amount("25 eur") == (Decimal("25"), "EUR")
    assert parse_amount("1.5k")[0] == Decimal("1500")


def test_amount_must_be_positive():
    with pytest.raises(ParseFailure) as exc_info:
        parse_amount("-5")
    assert exc_info.value.detail == "amount must be positive"

    with pytest.raises(ParseFailure):
        parse_amount("0")


def test_amount_without_number_fails():
    with pytest.raises(ParseFailure) as exc_info:
        parse_amount("lots")
    assert exc_info.value.detail is None


def test_account_name_drops_filler_words():
    assert parse_account_name("my checking account") == "checking"
    assert parse_account_name("from the Savings") == "savings"


def test_account_name_rejects_bare_amount():
    with pytest.raises(ParseFailure) as exc_info:
        parse_account_name("25")
    assert exc_info.value.detail == "looks like an amount"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("today", date(2024, 5, 6)),
        ("yesterday", date(2024, 5, 5)),
        ("3 days ago", date(2024, 5, 3)),
        ("2024-05-01", date(2024, 5, 1)),
        ("5 may", date(2024, 5, 5)),
        ("may 5, 2023", date(2023, 5, 5)),
        ("1/4", date(2024, 4, 1)),
        ("last friday", date(2024, 5, 3)),
        ("on monday", date(2024, 5, 6)),
    ],
)
def test_find_date(text, expected):
    assert find_date(text, TODAY) == expected


def test_impossible_date_is_not_a_date():
    assert find_date("2024-02-30", TODAY) is None
    with pytest.raises(ParseFailure):
        parse_date("whenever", TODAY)


def test_strip_dates_leaves_the_amount():
    assert strip_dates("paid 20 on 2024-05-01") == "paid 20 on"


def test_edit_with_prefix_reads_amount():
    assert parse_edit("no, make it 25", TransactionType.WITHDRAWAL, TODAY) == FieldEdit(
        DraftField.AMOUNT, (Decimal("25"), None)
    )


def test_edit_naming_field_and_value():
    edit = parse_edit("change account to savings", TransactionType.WITHDRAWAL, TODAY)
    assert edit == FieldEdit(DraftField.ACCOUNT, "savings")

    edit = parse_edit("currency eur", TransactionType.WITHDRAWAL, TODAY)
    assert edit == FieldEdit(DraftField.CURRENCY, "EUR")


def test_edit_sides_follow_transaction_type():
    assert parse_edit("to bob", TransactionType.WITHDRAWAL, TODAY) == FieldEdit(
        DraftField.COUNTERPARTY, "bob"
    )
    assert parse_edit("from bob", TransactionType.DEPOSIT, TODAY) == FieldEdit(
        DraftField.COUNTERPARTY, "bob"
    )
    assert parse_edit("into savings", TransactionType.DEPOSIT, TODAY) == FieldEdit(
        DraftField.ACCOUNT, "savings"
    )


def test_edit_description_date_and_type():
    assert parse_edit("for dinner", None, TODAY) == FieldEdit(
        DraftField.DESCRIPTION, "dinner"
    )
    assert parse_edit("date yesterday", None, TODAY) == FieldEdit(
        DraftField.DATE, date(2024, 5, 5)
    )
    assert parse_edit("yesterday", None, TODAY) == FieldEdit(
        DraftField.DATE, date(2024, 5, 5)
    )
    assert parse_edit("it's a deposit", None, TODAY) == FieldEdit(
        DraftField.TYPE, TransactionType.DEPOSIT
    )


def test_edit_naming_only_the_field():
    assert parse_edit("the amount", None, TODAY) == FieldEdit(DraftField.AMOUNT, None)


def test_edit_without_field_is_none():
    assert parse_edit("hello there", None, TODAY) is None


def test_edit_with_unreadable_value_fails():
    with pytest.raises(ParseFailure):
        parse_edit("amount lots", None, TODAY)


def test_field_value_for_empty_text_is_none():
    assert parse_field_value(DraftField.DESCRIPTION, "   ", TODAY) is None
    assert parse_field_value(DraftField.DESCRIPTION, "is Team lunch", TODAY) == "Team lunch"


def test_amount_with_more_than_two_decimals_is_rejected():
    with pytest.raises(ParseFailure) as exc_info:
        parse_amount("20.0055")
    assert exc_info.value.detail == "use at most two decimal places"

    assert parse_amount("20.05") == (Decimal("20.05"), None)
    assert parse_amount("1.2345k") == (Decimal("1234.5"), None)


def test_explicit_edit_needs_prefix_or_field_name():
    assert is_explicit_edit("no, make it 25")
    assert is_explicit_edit("no")
    assert is_explicit_edit("amount 25")
    assert is_explicit_edit("the account is savings")
    assert is_explicit_edit("to bob")
    assert is_explicit_edit("it's a deposit")

    assert not is_explicit_edit("got 500 salary into savings")
    assert not is_explicit_edit("500")
    assert not is_explicit_edit("yesterday")
    assert not is_explicit_edit("deposit")
    assert not is_explicit_edit("nothing to add")


def test_quick_entry_with_all_parts():
    entry = parse_quick_entry("20, lunch, checking, cafe")

    assert entry == QuickEntry(
        amount=Decimal("20"),
        currency=None,
        description="lunch",
        source="checking",
        destination="cafe",
    )


def test_quick_entry_source_and_destination_are_optional():
    entry = parse_quick_entry("$1,500, rent")

    assert entry.amount == Decimal("1500")
    assert entry.currency == "USD"
    assert entry.description == "rent"
    assert entry.source is None
    assert entry.destination is None

    assert parse_quick_entry("12,50, coffee, , bakery").destination == "bakery"
    assert parse_quick_entry("12,50, coffee, , bakery").source is None


@pytest.mark.parametrize(
    "text",
    [
        "spent 20, lunch",
        "20",
        "20, ",
        "lunch, 20",
        "-5, refund",
        "20, a, b, c, d",
        "no, make it 25",
    ],
)
def test_not_a_quick_entry(text):
    assert parse_quick_entry(text) is None
