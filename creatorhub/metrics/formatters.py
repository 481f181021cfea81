"""Display formatting helpers (stateless)."""

from decimal import Decimal, ROUND_HALF_UP

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "CA$",
    "AUD": "A$",
    "JPY": "¥",
}

# Currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = {"JPY"}


def cents_to_amount(cents: int, currency: str = "USD") -> Decimal:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(int(cents or 0))
    return (Decimal(int(cents or 0)) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_money(cents: int, currency: str = "USD") -> str:
    """Format integer minor units as a display string, e.g. 1999 -> '$19.99'."""
    currency = (currency or "USD").upper()
    amount = cents_to_amount(cents, currency)
    symbol = CURRENCY_SYMBOLS.get(currency, "")
    if currency in ZERO_DECIMAL_CURRENCIES:
        text = f"{amount:,.0f}"
    else:
        text = f"{amount:,.2f}"
    if symbol:
        return f"{symbol}{text}"
    return f"{text} {currency}"


def format_percentage(value: float, digits: int = 2) -> str:
    return f"{round(float(value or 0), digits)}%"
