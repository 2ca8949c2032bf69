"""Currency code to display symbol lookup."""

from __future__ import annotations

from typing import Optional

CURRENCY_SYMBOLS = {
    "GBP": "£",
    "EUR": "€",
    "USD": "$",
    "JPY": "¥",
    "CHF": "₣",
    "CAD": "C$",
    "AUD": "A$",
    "NZD": "NZ$",
    "CNY": "¥",
    "INR": "₹",
    "KRW": "₩",
    "SEK": "kr",
    "NOK": "kr",
    "DKK": "kr",
    "PLN": "zł",
    "CZK": "Kč",
    "HUF": "Ft",
    "RUB": "₽",
    "TRY": "₺",
    "BRL": "R$",
    "MXN": "$",
    "ZAR": "R",
    "SGD": "S$",
    "HKD": "HK$",
    "THB": "฿",
    "PHP": "₱",
    "MYR": "RM",
    "IDR": "Rp",
    "VND": "₫",
}


def currency_symbol(code: Optional[str]) -> str:
    """Return the symbol for an ISO currency code, ``$`` when unknown."""
    return CURRENCY_SYMBOLS.get((code or "").strip().upper(), "$")
