"""
winroom_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.  The kernel never imports
    from this package; the CLI and the poller wiring pass the relevant
    sections down.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Precedence: shipped defaults, then the overlay file, then the
      environment.
    - Deterministic checksum: the same merged document always yields the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- overlay path does not exist.
    - ``ValueError`` -- a value fails to parse.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``WINROOM_CONFIG_TRACE`` log entry with the checksum and the effective
    poller settings, so a log stream shows which configuration a poller
    ran with.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from winroom_config.loader import load_config
from winroom_config.schema import (
    DatabaseConfig,
    MetricsConfig,
    MilestoneConfig,
    PollerConfig,
    WinRoomConfig,
)

__all__ = [
    "DatabaseConfig",
    "MetricsConfig",
    "MilestoneConfig",
    "PollerConfig",
    "WinRoomConfig",
    "get_active_config",
]

_logger = logging.getLogger("winroom.config")


def get_active_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> WinRoomConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional YAML overlay applied on top of the shipped defaults.
        env: Environment mapping for overrides.  Defaults to ``os.environ``;
            tests pass an explicit dict.

    Returns:
        A frozen ``WinRoomConfig``.
    """
    config = load_config(path=path, env=os.environ if env is None else env)

    _logger.info(
        "WINROOM_CONFIG_TRACE",
        extra={
            "trace_type": "WINROOM_CONFIG_TRACE",
            "checksum": config.checksum,
            "overlay": str(path) if path is not None else None,
            "poll_interval_ms": config.poller.interval_ms,
            "batch_size": config.poller.batch_size,
            "revenue_check_interval_minutes": config.poller.revenue_check_interval_minutes,
        },
    )
    return config
