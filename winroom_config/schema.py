"""
Runtime configuration schema.

Frozen dataclasses parsed from ``defaults.yaml`` (plus an optional overlay
file and environment overrides) by ``winroom_config.loader``.  Components
receive the section they need; none of them read files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class PollerConfig:
    """Main loop and sub-job cadences."""

    interval_ms: int = 2000
    batch_size: int = 500
    # Trial campaign subscriptions never enter the ledger
    trial_campaign_id: int = 65
    overdue_sweep_interval_hours: int = 24
    lead_sync_interval_hours: int = 24
    progress_cache_interval_minutes: int = 15
    revenue_check_interval_minutes: int = 15
    cache_cleanup_interval_hours: int = 24


@dataclass(frozen=True)
class MetricsConfig:
    jackpot_threshold_try: Decimal = Decimal("40000")
    usd_try_rate_fallback: Decimal = Decimal("42")
    fx_setting_name: str = "dolar"
    fx_cache_ttl_seconds: int = 3600


@dataclass(frozen=True)
class MilestoneConfig:
    """Which achievement families the poller evaluates."""

    team_revenue_enabled: bool = True
    personal_revenue_enabled: bool = True
    daily_revenue_enabled: bool = True
    goal_achievements_enabled: bool = True


@dataclass(frozen=True)
class WinRoomConfig:
    database: DatabaseConfig
    poller: PollerConfig = field(default_factory=PollerConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    milestones: MilestoneConfig = field(default_factory=MilestoneConfig)
    checksum: str = ""
