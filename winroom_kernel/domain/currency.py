"""
Currency -- alias normalization and USD conversion.

Upstream rows record currency however the checkout form produced it
("TL", "₺", "us", ...).  ``normalize_currency`` resolves a raw value to one
of three explicit outcomes so callers must handle each:

    SupportedCurrency(code)     -- USD, TRY or SAR
    UnsupportedCurrency(raw)    -- present but not convertible
    MISSING_CURRENCY            -- None / blank

Unsupported and missing currencies never raise; the metrics layer turns
them into ``revenue_usd = None``.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar, Union


@dataclass(frozen=True)
class CurrencyInfo:
    """A currency this system can convert to USD."""

    code: str
    name: str
    aliases: tuple[str, ...]
    # Fixed divisor to USD; None means the rate is looked up at runtime
    usd_peg: Decimal | None = None


@dataclass(frozen=True)
class SupportedCurrency:
    code: str


@dataclass(frozen=True)
class UnsupportedCurrency:
    raw: str


@dataclass(frozen=True)
class MissingCurrency:
    pass


MISSING_CURRENCY = MissingCurrency()

CurrencyResolution = Union[SupportedCurrency, UnsupportedCurrency, MissingCurrency]


class CurrencyRegistry:
    """Currencies accepted for revenue conversion, keyed by canonical code."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "USD": CurrencyInfo("USD", "US Dollar", ("USD", "US", "$")),
        "TRY": CurrencyInfo("TRY", "Turkish Lira", ("TRY", "TR", "TL", "₺")),
        "SAR": CurrencyInfo("SAR", "Saudi Riyal", ("SAR",), usd_peg=Decimal("3.75")),
    }

    _ALIASES: ClassVar[dict[str, str]] = {
        alias: info.code
        for info in _CURRENCIES.values()
        for alias in info.aliases
    }

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        return cls._CURRENCIES.get(code)

    @classmethod
    def resolve(cls, raw: str | None) -> CurrencyResolution:
        """Map a raw upstream currency string to a resolution outcome."""
        if raw is None:
            return MISSING_CURRENCY
        text = str(raw).strip()
        if not text:
            return MISSING_CURRENCY
        code = cls._ALIASES.get(text.upper())
        if code is None:
            return UnsupportedCurrency(raw=text)
        return SupportedCurrency(code=code)


def normalize_currency(raw: str | None) -> CurrencyResolution:
    return CurrencyRegistry.resolve(raw)


def convert_to_usd(
    amount: Decimal,
    currency: CurrencyResolution,
    usd_try_rate: Decimal,
) -> Decimal | None:
    """
    Convert *amount* in the resolved currency to USD.

    Returns None for unsupported or missing currencies and when the TRY
    rate is unusable.
    """
    if isinstance(currency, MissingCurrency):
        return None
    if isinstance(currency, UnsupportedCurrency):
        return None
    if isinstance(currency, SupportedCurrency):
        if currency.code == "USD":
            return amount
        if currency.code == "TRY":
            if usd_try_rate <= 0:
                return None
            return amount / usd_try_rate
        info = CurrencyRegistry.get_info(currency.code)
        if info is not None and info.usd_peg is not None:
            return amount / info.usd_peg
        return None
    raise TypeError(f"Unhandled currency resolution: {currency!r}")
