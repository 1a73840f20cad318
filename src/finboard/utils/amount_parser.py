"""Amount parsing and formatting utilities."""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
import re

CENT = Decimal("0.01")

_CURRENCY_SYMBOLS = {"BRL": "R$", "USD": "$", "EUR": "€", "GBP": "£"}


def to_money(value) -> Decimal:
    """Convert a number to a Decimal rounded to cents.

    Floats go through ``str`` so that 0.1 stays 0.10.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Could not convert {value!r} to an amount: {e}")


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles various formats:
    - "123.45"
    - "R$ 123,45"
    - "-123.45"
    - "-$123.45"
    - "1,234.56"
    - "1.234,56" (comma as decimal separator)
    - "(123.45)" (negative in parentheses)

    When both separators appear, the last one is the decimal separator. A
    lone comma followed by exactly three digits is a thousands separator.

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    # Remove whitespace
    amount_str = amount_str.strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    # Remove currency symbols and whitespace
    amount_str = re.sub(r"R\$|[$€£¥\s]", "", amount_str)

    if "," in amount_str and "." in amount_str:
        if amount_str.rfind(",") > amount_str.rfind("."):
            amount_str = amount_str.replace(".", "").replace(",", ".")
        else:
            amount_str = amount_str.replace(",", "")
    elif "," in amount_str:
        decimals = amount_str.rsplit(",", 1)[1]
        if amount_str.count(",") == 1 and len(decimals) != 3:
            amount_str = amount_str.replace(",", ".")
        else:
            amount_str = amount_str.replace(",", "")

    try:
        amount = Decimal(amount_str)
        if is_negative:
            amount = -amount
        return amount
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}': {e}")


def format_currency(amount: Decimal, currency: str = "BRL") -> str:
    """Format an amount for display, e.g. ``R$ 1.234,56`` or ``-$1,234.56``."""
    amount = to_money(amount)
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(amount):,.2f}"
    if currency == "BRL":
        grouped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
        return f"{sign}R$ {grouped}"
    symbol = _CURRENCY_SYMBOLS.get(currency)
    if symbol is None:
        return f"{sign}{grouped} {currency}"
    return f"{sign}{symbol}{grouped}"
