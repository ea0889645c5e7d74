"""Display-currency conversion for amounts stored in the base currency."""
import math
import re
from typing import Dict, Optional, Tuple

SUPPORTED_CURRENCIES = {
    "IDR": "Indonesian Rupiah",
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "British Pound",
    "SGD": "Singapore Dollar",
    "JPY": "Japanese Yen",
    "AUD": "Australian Dollar",
    "CAD": "Canadian Dollar",
    "CHF": "Swiss Franc",
    "CNY": "Chinese Yuan",
    "HKD": "Hong Kong Dollar",
    "KRW": "South Korean Won",
    "INR": "Indian Rupee",
    "NZD": "New Zealand Dollar",
    "SEK": "Swedish Krona",
    "NOK": "Norwegian Krone",
    "DKK": "Danish Krone",
    "THB": "Thai Baht",
    "MYR": "Malaysian Ringgit",
    "PHP": "Philippine Peso",
}

ZERO_DECIMAL_CURRENCIES = {"IDR", "JPY", "KRW"}


def fraction_digits(currency: str) -> int:
    return 0 if currency in ZERO_DECIMAL_CURRENCIES else 2


def _usable(rate) -> bool:
    return isinstance(rate, (int, float)) and math.isfinite(rate) and rate > 0


class CurrencyConverter:
    """Converts between the base currency and display currencies.

    Rates are expressed as 1 base = X currency. A missing or unusable rate
    leaves amounts in the base currency rather than guessing.
    """

    def __init__(self, base: str, rates: Dict[str, float]):
        self.base = base
        self.rates = rates or {}

    def rate_for(self, currency: Optional[str]) -> Tuple[float, str]:
        if not currency or currency == self.base:
            return 1.0, self.base
        rate = self.rates.get(currency)
        if not _usable(rate):
            return 1.0, self.base
        return float(rate), currency

    def to_base(self, amount: float, currency: Optional[str] = None) -> float:
        rate, _ = self.rate_for(currency)
        return amount / rate


def parse_number_input(text: str) -> float:
    """Parse "1.234.567", "1,234,567", "1,234.56" or "1.234,56".

    Returns NaN when nothing numeric is left.
    """
    s = re.sub(r"[^0-9,.\-]", "", (text or "").strip())
    if not s:
        return math.nan

    last_dot = s.rfind(".")
    last_comma = s.rfind(",")
    decimal_sep = ""
    if last_dot != -1 and last_comma != -1:
        decimal_sep = "." if last_dot > last_comma else ","
    elif last_comma != -1:
        digits_after = len(s) - last_comma - 1
        decimal_sep = "," if 0 < digits_after <= 2 else ""
    elif last_dot != -1:
        digits_after = len(s) - last_dot - 1
        decimal_sep = "." if 0 < digits_after <= 2 else ""

    if decimal_sep:
        head, _, tail = s.rpartition(decimal_sep)
        normalized = re.sub(r"[.,]", "", head) + "." + re.sub(r"[.,]", "", tail)
    else:
        normalized = re.sub(r"[.,]", "", s)

    try:
        value = float(normalized)
    except ValueError:
        return math.nan
    return value if math.isfinite(value) else math.nan
