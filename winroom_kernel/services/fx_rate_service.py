"""
FxRateService -- USD/TRY rate resolution with a time-bounded cache.

Resolution order:
    1. ``settings`` row named ``setting_name`` (operators edit it as
       "dolar"), when it parses to a positive decimal.
    2. The configured fallback rate.

The resolved rate is held on an ``FxRateCache`` owned by the caller (the
poller keeps one for its lifetime) and reused until ``ttl_seconds`` have
passed on the injected clock.  A failed lookup is logged and served from
the fallback; it never raises.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from winroom_kernel.db.types import to_decimal
from winroom_kernel.domain.clock import Clock
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.sales import Setting

logger = get_logger("services.fx_rate")

DEFAULT_SETTING_NAME = "dolar"
DEFAULT_CACHE_TTL_SECONDS = 3600


@dataclass
class FxRateCache:
    """Last resolved rate and when it was fetched."""

    rate: Decimal | None = None
    fetched_at: datetime | None = None
    source: str | None = None

    def is_fresh(self, now: datetime, ttl_seconds: int) -> bool:
        return (
            self.rate is not None
            and self.fetched_at is not None
            and now - self.fetched_at < timedelta(seconds=ttl_seconds)
        )

    def clear(self) -> None:
        self.rate = None
        self.fetched_at = None
        self.source = None


class FxRateService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        fallback_rate: Decimal,
        cache: FxRateCache | None = None,
        setting_name: str = DEFAULT_SETTING_NAME,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ):
        self._session = session
        self._clock = clock
        self._fallback_rate = fallback_rate
        self._cache = cache if cache is not None else FxRateCache()
        self._setting_name = setting_name
        self._ttl_seconds = ttl_seconds

    @property
    def cache(self) -> FxRateCache:
        return self._cache

    def get_usd_try_rate(self) -> Decimal:
        now = self._clock.now_utc()
        if self._cache.is_fresh(now, self._ttl_seconds):
            return self._cache.rate

        rate = self._read_setting()
        source = "setting"
        if rate is None:
            rate = self._fallback_rate
            source = "fallback"

        self._cache.rate = rate
        self._cache.fetched_at = now
        self._cache.source = source
        logger.debug("fx_rate_refreshed", extra={"rate": rate, "source": source})
        return rate

    def _read_setting(self) -> Decimal | None:
        try:
            # Savepoint so a failed read does not poison the caller's transaction
            with self._session.begin_nested():
                raw = self._session.execute(
                    select(Setting.value).where(Setting.name == self._setting_name)
                ).scalar_one_or_none()
        except SQLAlchemyError:
            logger.warning(
                "fx_rate_lookup_failed",
                extra={"setting": self._setting_name},
                exc_info=True,
            )
            return None

        rate = to_decimal(raw)
        if rate is None or rate <= 0:
            if raw is not None:
                logger.warning(
                    "fx_rate_setting_invalid",
                    extra={"setting": self._setting_name, "value": raw},
                )
            return None
        return rate
