"""
Configuration Loader (``winroom_config.loader``).

Responsibility
--------------
Reads the shipped ``defaults.yaml``, overlays an optional operator file,
applies the fixed set of environment overrides, and parses the result
into the frozen dataclasses in ``winroom_config.schema``.  Callers use
``winroom_config.get_active_config()``; nothing else imports this module.

Invariants enforced
-------------------
* Only the environment variables in ``ENV_OVERRIDES`` are read.
* ``compute_checksum`` is deterministic for the merged document, so two
  processes started with the same inputs log the same checksum.

Failure modes
-------------
* Missing overlay file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Non-numeric override or value  -> ``ValueError``.
"""

from __future__ import annotations

import copy
import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from winroom_config.schema import (
    DatabaseConfig,
    MetricsConfig,
    MilestoneConfig,
    PollerConfig,
    WinRoomConfig,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "POLLER_INTERVAL_MS": ("poller", "interval_ms"),
    "POLLER_BATCH_SIZE": ("poller", "batch_size"),
    "REVENUE_CHECK_INTERVAL_MINUTES": ("poller", "revenue_check_interval_minutes"),
    "USD_TRY_RATE": ("metrics", "usd_try_rate_fallback"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_documents(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay *overlay* onto a copy of *base*, one level of sections deep."""
    merged = copy.deepcopy(base)
    for section, values in overlay.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def apply_env_overrides(
    document: dict[str, Any],
    env: Mapping[str, str],
) -> dict[str, Any]:
    result = copy.deepcopy(document)
    for var, (section, key) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        result.setdefault(section, {})[key] = raw
    return result


def compute_checksum(document: dict[str, Any]) -> str:
    """SHA-256 of the document in sorted-key JSON form.

    The database URL is masked so credentials never reach the log.
    """
    masked = copy.deepcopy(document)
    if isinstance(masked.get("database"), dict) and "url" in masked["database"]:
        masked["database"]["url"] = _mask_url(str(masked["database"]["url"]))
    canonical = json.dumps(masked, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _mask_url(url: str) -> str:
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


def _int(value: Any, name: str, minimum: int | None = None) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if minimum is not None and parsed < minimum:
        parsed = minimum
    return parsed


def _decimal(value: Any, name: str) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {value!r}") from None
    if not parsed.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return parsed


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=str(data["url"]),
        echo=_bool(data.get("echo", False)),
        pool_size=_int(data.get("pool_size", 10), "database.pool_size", 1),
        max_overflow=_int(data.get("max_overflow", 5), "database.max_overflow", 0),
    )


def parse_poller(data: dict[str, Any]) -> PollerConfig:
    defaults = PollerConfig()
    return PollerConfig(
        interval_ms=_int(data.get("interval_ms", defaults.interval_ms), "poller.interval_ms", 1),
        batch_size=_int(data.get("batch_size", defaults.batch_size), "poller.batch_size", 1),
        trial_campaign_id=_int(
            data.get("trial_campaign_id", defaults.trial_campaign_id), "poller.trial_campaign_id",
        ),
        overdue_sweep_interval_hours=_int(
            data.get("overdue_sweep_interval_hours", defaults.overdue_sweep_interval_hours),
            "poller.overdue_sweep_interval_hours", 1,
        ),
        lead_sync_interval_hours=_int(
            data.get("lead_sync_interval_hours", defaults.lead_sync_interval_hours),
            "poller.lead_sync_interval_hours", 1,
        ),
        progress_cache_interval_minutes=_int(
            data.get("progress_cache_interval_minutes", defaults.progress_cache_interval_minutes),
            "poller.progress_cache_interval_minutes", 1,
        ),
        revenue_check_interval_minutes=_int(
            data.get("revenue_check_interval_minutes", defaults.revenue_check_interval_minutes),
            "poller.revenue_check_interval_minutes", 1,
        ),
        cache_cleanup_interval_hours=_int(
            data.get("cache_cleanup_interval_hours", defaults.cache_cleanup_interval_hours),
            "poller.cache_cleanup_interval_hours", 1,
        ),
    )


def parse_metrics(data: dict[str, Any]) -> MetricsConfig:
    defaults = MetricsConfig()
    fallback = _decimal(
        data.get("usd_try_rate_fallback", defaults.usd_try_rate_fallback),
        "metrics.usd_try_rate_fallback",
    )
    if fallback <= 0:
        raise ValueError(f"metrics.usd_try_rate_fallback must be positive, got {fallback}")
    return MetricsConfig(
        jackpot_threshold_try=_decimal(
            data.get("jackpot_threshold_try", defaults.jackpot_threshold_try),
            "metrics.jackpot_threshold_try",
        ),
        usd_try_rate_fallback=fallback,
        fx_setting_name=str(data.get("fx_setting_name", defaults.fx_setting_name)),
        fx_cache_ttl_seconds=_int(
            data.get("fx_cache_ttl_seconds", defaults.fx_cache_ttl_seconds),
            "metrics.fx_cache_ttl_seconds", 0,
        ),
    )


def parse_milestones(data: dict[str, Any]) -> MilestoneConfig:
    defaults = MilestoneConfig()
    return MilestoneConfig(
        team_revenue_enabled=_bool(data.get("team_revenue_enabled", defaults.team_revenue_enabled)),
        personal_revenue_enabled=_bool(
            data.get("personal_revenue_enabled", defaults.personal_revenue_enabled)
        ),
        daily_revenue_enabled=_bool(data.get("daily_revenue_enabled", defaults.daily_revenue_enabled)),
        goal_achievements_enabled=_bool(
            data.get("goal_achievements_enabled", defaults.goal_achievements_enabled)
        ),
    )


def parse_config(document: dict[str, Any]) -> WinRoomConfig:
    return WinRoomConfig(
        database=parse_database(document.get("database") or {}),
        poller=parse_poller(document.get("poller") or {}),
        metrics=parse_metrics(document.get("metrics") or {}),
        milestones=parse_milestones(document.get("milestones") or {}),
        checksum=compute_checksum(document),
    )


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> WinRoomConfig:
    document = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        document = merge_documents(document, load_yaml_file(path))
    if env is not None:
        document = apply_env_overrides(document, env)
    return parse_config(document)
