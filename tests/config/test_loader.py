"""
Tests for backoffice_config: YAML loading, parsing into the frozen schema,
checksums, the active-config cache and the engine bridges.
"""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from backoffice_config import (
    DEFAULT_CONFIG_PATH,
    get_active_config,
    reset_active_config,
)
from backoffice_config.bridges import build_scheduler, scheduling_policy
from backoffice_config.loader import (
    compute_checksum,
    load_engine_configuration,
    load_yaml_file,
    parse_configuration,
)
from backoffice_kernel.exceptions import ConfigurationError, ValidationError


def _default_document() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


def _write(tmp_path: Path, data, name: str = "engine.yaml") -> Path:
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
    return path


class TestDefaultConfiguration:
    """The shipped defaults parse into the expected tables."""

    def setup_method(self):
        self.config = load_engine_configuration(DEFAULT_CONFIG_PATH)

    def test_identity(self):
        assert self.config.config_id == "backoffice-default"
        assert self.config.version == 1
        assert self.config.effective_from == date(2024, 1, 1)
        assert len(self.config.checksum) == 64

    def test_multipliers_are_decimal(self):
        tables = self.config.valuation
        assert tables.network_factor("hmo") == Decimal("0.85")
        assert tables.benefit_type_factor("dental") == Decimal("0.25")
        assert tables.coverage_factor("family") == Decimal("2.2")

    @pytest.mark.parametrize(
        "level,employee,employer",
        [("individual", "25", "75"), ("spouse", "30", "70"), ("children", "30", "70"), ("family", "40", "60")],
    )
    def test_contribution_splits(self, level, employee, employer):
        split = self.config.valuation.split_for(level)
        assert split.employee_percent == Decimal(employee)
        assert split.employer_percent == Decimal(employer)

    def test_tiers_sorted_by_threshold(self):
        thresholds = [t.threshold for t in self.config.valuation.tenure_discounts]
        assert thresholds == sorted(thresholds)
        assert self.config.valuation.tiers_as_pairs(self.config.valuation.volume_discounts)[-1] == (
            Decimal("200"), Decimal("8"),
        )

    def test_policies(self):
        assert self.config.late_fees.percent_per_month == Decimal("5")
        assert self.config.late_fees.grace_days == 30
        assert self.config.scheduling.renewal_window_days == 30
        assert self.config.renewal.fallback_years == 1
        assert self.config.eligibility.min_service_days == 90
        assert self.config.eligibility.eligible_employment_types == ("full_time", "part_time")
        assert self.config.invoicing.payment_terms_days == 30
        assert self.config.training.max_rating == Decimal("5.0")
        assert self.config.delivery.max_attempts == 3

    def test_unknown_lookup_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            self.config.valuation.network_factor("hdhp")
        assert exc_info.value.field == "network_type"

    def test_bridge_builds_scheduler(self):
        policy = scheduling_policy(self.config)
        assert policy.urgent_days == 7
        assert policy.due_soon_days == 14
        assert policy.renewal_window_days == 30
        assert build_scheduler(self.config).policy == policy


class TestChecksum:
    def test_deterministic(self):
        data = _default_document()
        assert compute_checksum(data) == compute_checksum(dict(reversed(list(data.items()))))

    def test_changes_with_content(self):
        data = _default_document()
        changed = dict(data, version=2)
        assert compute_checksum(data) != compute_checksum(changed)


class TestInvalidDocuments:
    """Every malformed document surfaces as ConfigurationError."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_engine_configuration(tmp_path / "absent.yaml")
        assert exc_info.value.source.endswith("absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path, "valuation: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_engine_configuration(path)

    def test_top_level_not_mapping(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_engine_configuration(path)

    def test_missing_required_key(self, tmp_path):
        data = _default_document()
        del data["config_id"]
        with pytest.raises(ConfigurationError) as exc_info:
            load_engine_configuration(_write(tmp_path, data))
        assert "config_id" in str(exc_info.value)

    def test_split_not_summing_to_hundred(self, tmp_path):
        data = _default_document()
        data["valuation"]["contribution_splits"]["spouse"] = {"employee": "30", "employer": "60"}
        with pytest.raises(ConfigurationError):
            load_engine_configuration(_write(tmp_path, data))

    def test_coverage_without_split(self, tmp_path):
        data = _default_document()
        del data["valuation"]["contribution_splits"]["family"]
        with pytest.raises(ConfigurationError):
            load_engine_configuration(_write(tmp_path, data))

    def test_bad_decimal(self, tmp_path):
        data = _default_document()
        data["valuation"]["network_multipliers"]["hmo"] = "cheap"
        with pytest.raises(ConfigurationError):
            load_engine_configuration(_write(tmp_path, data))

    def test_inconsistent_scheduling_thresholds(self, tmp_path):
        data = _default_document()
        data["scheduling"]["urgent_days"] = 30
        with pytest.raises(ConfigurationError):
            load_engine_configuration(_write(tmp_path, data))

    def test_optional_sections_default(self):
        data = _default_document()
        minimal = {k: data[k] for k in ("config_id", "version", "effective_from", "valuation")}
        config = parse_configuration(minimal)
        assert config.late_fees.grace_days == 30
        assert config.delivery.max_workers == 4


class TestActiveConfig:
    """get_active_config caches per path; reset_active_config forgets."""

    def setup_method(self):
        reset_active_config()

    def teardown_method(self):
        reset_active_config()

    def test_cached(self):
        assert get_active_config() is get_active_config()

    def test_reset_reloads(self):
        first = get_active_config()
        reset_active_config()
        second = get_active_config()
        assert first is not second
        assert first == second

    def test_other_path_replaces_active(self, tmp_path):
        data = _default_document()
        data["config_id"] = "custom"
        path = _write(tmp_path, data)
        assert get_active_config(path).config_id == "custom"
        assert get_active_config().config_id == "custom"

    def test_load_is_traced(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "BACKOFFICE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "backoffice-default"
