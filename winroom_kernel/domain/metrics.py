"""
Metrics -- pure revenue/cost/margin/jackpot computation.

Responsibility:
    Turns one upstream subscription (plus, when its own price is unusable,
    the latest recorded payment fact) into the numbers the leaderboards and
    finance views read: revenue in USD, delivery cost, margin and the
    jackpot flag.

Architecture position:
    Kernel > Domain.  Pure: no I/O, no clock, no session.  The FX rate and
    the payment fallback are passed in by ``MetricsService``.

Invariants enforced:
    - Decimal arithmetic only.
    - Cost depends only on plan attributes, never on price, so it is
      computed even when revenue cannot be.
    - margin_amount_usd >= 0 and margin_percent == 0 when revenue is not
      positive.

Failure modes:
    - None.  Unsupported or missing currency yields revenue_usd = None.
"""

from dataclasses import dataclass
from decimal import Decimal

from winroom_kernel.domain.currency import (
    MissingCurrency,
    SupportedCurrency,
    UnsupportedCurrency,
    convert_to_usd,
    normalize_currency,
)

LESSON_PRICE_USD: dict[int, Decimal] = {
    20: Decimal("4"),
    25: Decimal("5"),
    40: Decimal("8"),
    50: Decimal("10"),
}
DEFAULT_LESSON_PRICE_USD = Decimal("5")

MARGIN_MULTIPLIERS: dict[int, Decimal] = {
    1: Decimal("1"),
    3: Decimal("0.9"),
    6: Decimal("0.8"),
    12: Decimal("0.7"),
}
DEFAULT_MARGIN_MULTIPLIER = Decimal("0.7")

LESSONS_PER_WEEK_FACTOR = 4

JACKPOT_STATUSES = frozenset({"paid", "active"})
GIFT_PAYMENT_CHANNEL = "Hediye"

# Currency assumed for payment facts recorded without one
PAYMENT_FACT_DEFAULT_CURRENCY = "TRY"

UNKNOWN_CURRENCY_SOURCE = "UNKNOWN"


@dataclass(frozen=True)
class MetricsInput:
    """Financial and plan attributes of one upstream subscription."""

    subscription_id: int
    subs_amount: Decimal | None
    currency: str | None
    campaign_length: int | None
    per_week: int | None
    campaign_minute: int | None
    is_free: int | None
    payment_channel: str | None
    status: str | None


@dataclass(frozen=True)
class PaymentFact:
    """Most recent recorded payment for a subscription."""

    paid_price: Decimal | None
    currency: str | None


@dataclass(frozen=True)
class MetricsResult:
    revenue_usd: Decimal | None
    cost_usd: Decimal
    margin_amount_usd: Decimal
    margin_percent: Decimal
    is_jackpot: bool
    currency_source: str


def lesson_price_usd(campaign_minute: int | None) -> Decimal:
    return LESSON_PRICE_USD.get(campaign_minute or 0, DEFAULT_LESSON_PRICE_USD)


def margin_multiplier(campaign_length: int | None) -> Decimal:
    return MARGIN_MULTIPLIERS.get(campaign_length or 0, DEFAULT_MARGIN_MULTIPLIER)


def compute_cost_usd(
    campaign_length: int | None,
    per_week: int | None,
    campaign_minute: int | None,
) -> Decimal:
    """months * sessions/week * 4 lessons, priced by length, discounted by plan."""
    total_lessons = (campaign_length or 0) * (per_week or 0) * LESSONS_PER_WEEK_FACTOR
    return (
        Decimal(total_lessons)
        * lesson_price_usd(campaign_minute)
        * margin_multiplier(campaign_length)
    )


def jackpot_threshold_usd(threshold_try: Decimal, usd_try_rate: Decimal) -> Decimal:
    return threshold_try / usd_try_rate


def needs_payment_fallback(data: MetricsInput) -> bool:
    """True when the subscription's own amount or currency is unusable."""
    if data.subs_amount is None or data.subs_amount <= 0:
        return True
    return isinstance(normalize_currency(data.currency), MissingCurrency)


def _currency_source(resolution) -> str:
    if isinstance(resolution, SupportedCurrency):
        return resolution.code
    if isinstance(resolution, UnsupportedCurrency):
        return resolution.raw.upper()
    return UNKNOWN_CURRENCY_SOURCE


def calculate_metrics(
    data: MetricsInput,
    usd_try_rate: Decimal,
    jackpot_threshold_try: Decimal,
    payment_fact: PaymentFact | None = None,
) -> MetricsResult:
    """
    Compute metrics for one subscription.

    Args:
        data: The subscription's attributes.
        usd_try_rate: TRY per USD, already resolved.
        jackpot_threshold_try: Jackpot floor expressed in TRY.
        payment_fact: Latest payment fact; consulted only when
            ``needs_payment_fallback(data)`` holds.
    """
    cost_usd = compute_cost_usd(data.campaign_length, data.per_week, data.campaign_minute)

    amount = data.subs_amount
    resolution = normalize_currency(data.currency)

    if needs_payment_fallback(data):
        amount = None
        if (
            payment_fact is not None
            and payment_fact.paid_price is not None
            and payment_fact.paid_price > 0
        ):
            amount = payment_fact.paid_price
            resolution = normalize_currency(
                payment_fact.currency or PAYMENT_FACT_DEFAULT_CURRENCY
            )

    revenue_usd: Decimal | None = None
    if amount is not None:
        revenue_usd = convert_to_usd(amount, resolution, usd_try_rate)

    revenue_or_zero = revenue_usd if revenue_usd is not None else Decimal(0)
    margin_amount = max(revenue_or_zero - cost_usd, Decimal(0))
    margin_percent = margin_amount / revenue_or_zero if revenue_or_zero > 0 else Decimal(0)

    is_jackpot = (
        usd_try_rate > 0
        and revenue_or_zero >= jackpot_threshold_usd(jackpot_threshold_try, usd_try_rate)
        and data.is_free == 0
        and data.payment_channel != GIFT_PAYMENT_CHANNEL
        and data.status in JACKPOT_STATUSES
    )

    return MetricsResult(
        revenue_usd=revenue_usd,
        cost_usd=cost_usd,
        margin_amount_usd=margin_amount,
        margin_percent=margin_percent,
        is_jackpot=is_jackpot,
        currency_source=_currency_source(resolution),
    )
