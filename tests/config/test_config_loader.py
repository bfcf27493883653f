"""
Tests for winroom_config -- defaults, overlay, environment overrides and
the configuration checksum.
"""

from decimal import Decimal

import pytest
import yaml

from winroom_config import get_active_config
from winroom_config.loader import compute_checksum, load_config, merge_documents


def _write_overlay(tmp_path, document):
    path = tmp_path / "overlay.yaml"
    path.write_text(yaml.safe_dump(document))
    return path


class TestDefaults:
    def test_shipped_defaults(self):
        config = load_config(env={})

        assert config.database.url == "sqlite:///winroom.db"
        assert config.poller.interval_ms == 2000
        assert config.poller.batch_size == 500
        assert config.poller.trial_campaign_id == 65
        assert config.poller.revenue_check_interval_minutes == 15
        assert config.metrics.jackpot_threshold_try == Decimal("40000")
        assert config.metrics.usd_try_rate_fallback == Decimal("42")
        assert config.metrics.fx_setting_name == "dolar"
        assert config.milestones.team_revenue_enabled is True

    def test_config_is_frozen(self):
        config = load_config(env={})

        with pytest.raises(AttributeError):
            config.poller.interval_ms = 10


class TestOverlay:
    def test_overlay_replaces_individual_keys(self, tmp_path):
        path = _write_overlay(tmp_path, {"poller": {"batch_size": 50}})

        config = load_config(path=path, env={})

        assert config.poller.batch_size == 50
        assert config.poller.interval_ms == 2000

    def test_overlay_disables_milestone_family(self, tmp_path):
        path = _write_overlay(tmp_path, {"milestones": {"daily_revenue_enabled": "false"}})

        config = load_config(path=path, env={})

        assert config.milestones.daily_revenue_enabled is False
        assert config.milestones.team_revenue_enabled is True

    def test_missing_overlay_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(path=tmp_path / "absent.yaml", env={})

    def test_merge_is_one_section_deep(self):
        base = {"poller": {"interval_ms": 2000, "batch_size": 500}}
        merged = merge_documents(base, {"poller": {"batch_size": 10}, "extra": 1})

        assert merged == {"poller": {"interval_ms": 2000, "batch_size": 10}, "extra": 1}
        assert base["poller"]["batch_size"] == 500


class TestEnvironment:
    def test_env_wins_over_overlay(self, tmp_path):
        path = _write_overlay(tmp_path, {"poller": {"interval_ms": 5000}})

        config = load_config(
            path=path,
            env={
                "POLLER_INTERVAL_MS": "750",
                "DATABASE_URL": "postgresql://app:secret@db/winroom",
                "USD_TRY_RATE": "38.5",
            },
        )

        assert config.poller.interval_ms == 750
        assert config.database.url == "postgresql://app:secret@db/winroom"
        assert config.metrics.usd_try_rate_fallback == Decimal("38.5")

    def test_empty_env_value_is_ignored(self):
        assert load_config(env={"POLLER_BATCH_SIZE": ""}).poller.batch_size == 500

    def test_non_numeric_override_raises(self):
        with pytest.raises(ValueError, match="poller.interval_ms"):
            load_config(env={"POLLER_INTERVAL_MS": "fast"})

    def test_interval_is_clamped_to_minimum(self):
        assert load_config(env={"POLLER_INTERVAL_MS": "0"}).poller.interval_ms == 1

    @pytest.mark.parametrize("rate", ["0", "-3", "NaN"])
    def test_fallback_rate_must_be_positive_and_finite(self, rate):
        with pytest.raises(ValueError):
            load_config(env={"USD_TRY_RATE": rate})


class TestChecksum:
    def test_same_inputs_same_checksum(self):
        assert load_config(env={}).checksum == load_config(env={}).checksum

    def test_change_alters_checksum(self):
        assert (
            load_config(env={}).checksum
            != load_config(env={"POLLER_BATCH_SIZE": "10"}).checksum
        )

    def test_credentials_do_not_affect_checksum(self):
        first = compute_checksum({"database": {"url": "postgresql://a:one@db/w"}})
        second = compute_checksum({"database": {"url": "postgresql://b:two@db/w"}})

        assert first == second


class TestActiveConfig:
    def test_emits_config_trace(self, captured_logs):
        config = get_active_config(env={})

        traces = [r for r in captured_logs() if r["message"] == "WINROOM_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["batch_size"] == 500
