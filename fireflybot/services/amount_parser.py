import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from fireflybot.config import MAX_AMOUNT


class AmountParser:
    """
    Parser for the money amounts users type into chat.

    Supports:
    - Suffixes: k (thousand), m/mil (million), b/bn (billion)
    - Currency symbols and codes before or after the number: $20, 20 usd, EUR 5
    - Thousand separators: 1,000.50 and 1.000,50; 1,500 and 1.500 both mean 1500
    - Plain numbers: 1000, 500.50

    Values are returned as ``Decimal`` so that ledger amounts keep their
    exact cents.
    """

    MULTIPLIERS = {
        "k": 1_000,
        "thousand": 1_000,
        "m": 1_000_000,
        "mil": 1_000_000,
        "million": 1_000_000,
        "b": 1_000_000_000,
        "bn": 1_000_000_000,
        "billion": 1_000_000_000,
    }

    CURRENCY_SYMBOLS = {
        "$": "USD",
        "€": "EUR",
        "£": "GBP",
        "¥": "JPY",
        "₱": "PHP",
        "₹": "INR",
        "rp": "IDR",
    }

    CURRENCY_CODES = {
        "usd", "eur", "gbp", "jpy", "php", "inr", "idr", "aud", "cad",
        "chf", "cny", "sgd", "nzd", "sek", "nok", "dkk", "hkd", "krw",
    }

    CURRENCY_WORDS = {
        "dollar": "USD",
        "dollars": "USD",
        "euro": "EUR",
        "euros": "EUR",
        "pound": "GBP",
        "pounds": "GBP",
        "yen": "JPY",
        "peso": "PHP",
        "pesos": "PHP",
        "rupee": "INR",
        "rupees": "INR",
    }

    # Uses negative lookbehind to avoid matching numbers within words like "account1"
    AMOUNT_PATTERN = re.compile(
        r"""
        (?P<prefix>[$€£¥₱₹]|\b(?:rp|usd|eur|gbp|jpy|php|inr|idr|aud|cad|chf|cny|sgd|nzd|sek|nok|dkk|hkd|krw)\b)?
        \s*
        (?<![a-zA-Z\d])                         # Not preceded by a letter or digit
        (?P<number>
            \d{1,3}(?:[.,]\d{3})+(?:[.,]\d+)?  # Numbers with thousand separators
            |
            \d+(?:[.,]\d+)?                     # Simple numbers with optional decimal
        )
        \s*
        (?P<suffix>k|thousand|mil|million|m|bn|billion|b)?
        (?![a-zA-Z\d])                          # Not followed by a letter or digit
        (?:\s*(?P<unit>usd|eur|gbp|jpy|php|inr|idr|aud|cad|chf|cny|sgd|nzd|sek|nok|dkk|hkd|krw|dollars?|euros?|pounds?|yen|pesos?|rupees?)\b)?
        """,
        re.VERBOSE | re.IGNORECASE,
    )

    @classmethod
    def parse(cls, text: str) -> Optional[Decimal]:
        """
        Parse an amount string and return the numeric value.

        Args:
            text: String containing an amount (e.g., "16k", "$20", "1,250.50")

        Returns:
            Decimal value of the amount, or None if parsing fails
        """
        result = cls.parse_with_currency(text)
        return result[0] if result else None

    @classmethod
    def parse_with_currency(
        cls, text: str
    ) -> Optional[tuple[Decimal, Optional[str]]]:
        """
        Parse the first amount in ``text`` together with its currency, if any.

        Returns:
            Tuple of (amount, ISO currency code or None), or None if no amount
        """
        if not text:
            return None

        match = cls.AMOUNT_PATTERN.search(text.strip())
        if not match:
            return None
        return cls._from_match(match)

    @classmethod
    def _from_match(cls, match: re.Match) -> Optional[tuple[Decimal, Optional[str]]]:
        number = cls._parse_number(match.group("number"))
        if number is None:
            return None

        suffix = match.group("suffix")
        if suffix:
            number *= cls.MULTIPLIERS.get(suffix.lower(), 1)

        if number > MAX_AMOUNT:
            return None

        currency = cls.currency_code(match.group("prefix")) or cls.currency_code(
            match.group("unit")
        )
        return number, currency

    @classmethod
    def currency_code(cls, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        token = token.strip().lower()
        if token in cls.CURRENCY_SYMBOLS:
            return cls.CURRENCY_SYMBOLS[token]
        if token in cls.CURRENCY_CODES:
            return token.upper()
        return cls.CURRENCY_WORDS.get(token)

    @classmethod
    def _parse_number(cls, number_str: str) -> Optional[Decimal]:
        """
        Parse a number string handling various separator conventions.

        Handles:
        - Western format: 52,500.00 (comma as thousand, dot as decimal)
        - European format: 52.500,00 (dot as thousand, comma as decimal)
        - A single separator followed by exactly three digits is a thousand
          separator either way: 1,500 and 1.500 are both 1500
        - Simple: 52500, 52.5, 52,5
        """
        if not number_str:
            return None

        dots = number_str.count(".")
        commas = number_str.count(",")

        if dots > 0 and commas > 0:
            # Whichever separator comes last is the decimal mark
            if number_str.rfind(",") > number_str.rfind("."):
                normalized = number_str.replace(".", "").replace(",", ".")
            else:
                normalized = number_str.replace(",", "")
        elif dots > 1:
            normalized = number_str.replace(".", "")
        elif commas > 1:
            normalized = number_str.replace(",", "")
        elif dots == 1 or commas == 1:
            whole, fraction = re.split(r"[.,]", number_str)
            if len(fraction) == 3 and len(whole) <= 3:
                normalized = whole + fraction
            else:
                normalized = f"{whole}.{fraction}"
        else:
            normalized = number_str

        try:
            return Decimal(normalized)
        except InvalidOperation:
            return None

    @classmethod
    def find_amount_in_text(
        cls, text: str
    ) -> Optional[tuple[Decimal, Optional[str], str]]:
        """
        Find and parse the first amount in a text string.

        Returns:
            Tuple of (amount, currency, matched_string) or None if no amount found
        """
        for match in cls.AMOUNT_PATTERN.finditer(text or ""):
            parsed = cls._from_match(match)
            if parsed is not None:
                return parsed[0], parsed[1], match.group(0).strip()
        return None

    @classmethod
    def strip_amounts(cls, text: str) -> str:
        """Remove every amount expression from ``text``."""
        return re.sub(r"\s{2,}", " ", cls.AMOUNT_PATTERN.sub(" ", text or "")).strip()
