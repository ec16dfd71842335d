"""Settings loading: packaged defaults, YAML overrides, environment, bridges."""

from decimal import Decimal

import pytest
import yaml

from bookkeeping_config import DATABASE_URL_ENV, load_settings
from bookkeeping_config.bridges import build_ledger, matching_thresholds
from bookkeeping_engines.reconciliation.matching import DEFAULT_THRESHOLDS
from bookkeeping_kernel.domain.clock import DeterministicClock, SystemClock


def write_settings(tmp_path, data) -> str:
    path = tmp_path / "books.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


class TestDefaults:

    def test_packaged_defaults(self):
        settings = load_settings(environ={})

        assert settings.database_url == "sqlite:///bookkeeping.db"
        assert settings.balance_tolerance == Decimal("0.01")
        assert settings.currency_symbol == "₹"
        assert settings.numbering_max_retries == 3
        assert settings.reconciliation.fuzzy_days == 3
        assert settings.reconciliation.pattern_min_score == Decimal("0.80")
        assert settings.reconciliation.unusual_amount_multiplier == Decimal("5")

    def test_defaults_agree_with_the_matcher(self):
        assert matching_thresholds(load_settings(environ={})) == DEFAULT_THRESHOLDS


class TestOverrides:

    def test_file_overrides_are_merged(self, tmp_path):
        path = write_settings(
            tmp_path,
            {"ledger_name": "shop", "reconciliation": {"fuzzy_days": 5}},
        )

        settings = load_settings(path, environ={})

        assert settings.ledger_name == "shop"
        assert settings.reconciliation.fuzzy_days == 5
        assert settings.reconciliation.stale_unmatched_days == 7

    def test_environment_overrides_the_database(self, tmp_path):
        path = write_settings(tmp_path, {"database_url": "sqlite:///from-file.db"})

        settings = load_settings(path, environ={DATABASE_URL_ENV: "sqlite:///from-env.db"})

        assert settings.database_url == "sqlite:///from-env.db"

    def test_log_level_is_case_insensitive(self, tmp_path):
        settings = load_settings(write_settings(tmp_path, {"log_level": "debug"}), environ={})

        assert settings.log_level == "DEBUG"
        assert settings.log_level_number == 10

    def test_load_is_logged(self, tmp_path, captured_logs):
        load_settings(write_settings(tmp_path, {"ledger_name": "shop"}), environ={})

        (record,) = [r for r in captured_logs() if r["message"] == "settings_loaded"]
        assert record["ledger_name"] == "shop"
        assert record["database_override"] is False


class TestInvalidSettings:

    def test_unknown_key(self, tmp_path):
        path = write_settings(tmp_path, {"ledger_nmae": "shop"})

        with pytest.raises(ValueError, match=r"Unknown setting\(s\): ledger_nmae"):
            load_settings(path, environ={})

    def test_unknown_nested_key(self, tmp_path):
        path = write_settings(tmp_path, {"reconciliation": {"fuzy_days": 2}})

        with pytest.raises(ValueError, match=r"reconciliation\.fuzy_days"):
            load_settings(path, environ={})

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"balance_tolerance": "lots"}, "balance_tolerance: expected a number"),
            ({"balance_tolerance": "-0.01"}, "must not be negative"),
            ({"echo_sql": "yes"}, "expected true or false"),
            ({"lock_timeout_seconds": True}, "expected a number"),
            ({"log_level": "LOUD"}, "log_level: expected one of"),
            ({"numbering_max_retries": 0}, "at least 1"),
            ({"reconciliation": 3}, "expected a mapping"),
        ],
    )
    def test_bad_values(self, tmp_path, data, message):
        with pytest.raises(ValueError, match=message):
            load_settings(write_settings(tmp_path, data), environ={})

    def test_document_must_be_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ValueError, match="must be a mapping"):
            load_settings(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})


class TestBridges:

    def test_build_ledger(self, tmp_path):
        path = write_settings(
            tmp_path,
            {
                "ledger_name": "shop",
                "balance_tolerance": "0.05",
                "currency_symbol": "$",
                "lock_timeout_seconds": 2.5,
            },
        )
        clock = DeterministicClock()

        ledger = build_ledger(load_settings(path, environ={}), clock)

        assert ledger.name == "shop"
        assert ledger.tolerance == Decimal("0.05")
        assert ledger.currency_symbol == "$"
        assert ledger.lock_timeout == 2.5
        assert ledger.clock is clock

    def test_system_clock_by_default(self):
        assert isinstance(build_ledger(load_settings(environ={})).clock, SystemClock)

    def test_matching_thresholds(self, tmp_path):
        path = write_settings(
            tmp_path,
            {"reconciliation": {"fuzzy_amount_pct": "0.02", "pattern_window_days": 10}},
        )

        thresholds = matching_thresholds(load_settings(path, environ={}))

        assert thresholds.fuzzy_amount_pct == Decimal("0.02")
        assert thresholds.pattern_window_days == 10
        assert thresholds.reference_confidence == Decimal("0.95")
