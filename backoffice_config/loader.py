"""
Configuration Loader (``backoffice_config.loader``).

Responsibility
--------------
Loads the engine YAML document and parses it into the frozen
``backoffice_config.schema`` dataclasses.  Runtime code does not call
this directly; it goes through ``backoffice_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- sits above the kernel and below services/modules.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Decimal values are built from their string form; floats never reach
  a monetary or percentage field unconverted.
* ``compute_checksum`` is a deterministic SHA-256 over the canonical JSON
  of the source document.

Failure modes
-------------
* Missing file -> ``ConfigurationError``.
* Malformed YAML, missing required keys, bad numbers or inconsistent
  tables -> ``ConfigurationError`` naming the source file.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from backoffice_config.schema import (
    ContributionSplit,
    DiscountTier,
    EligibilityRules,
    EngineConfiguration,
    EventDelivery,
    InvoiceTerms,
    LateFeePolicy,
    RenewalDefaults,
    SchedulingThresholds,
    TrainingRules,
    ValuationTables,
)
from backoffice_kernel.exceptions import ConfigurationError, ValidationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot parse decimal from {value!r}") from None


def _decimal_table(data: dict[str, Any]) -> dict[str, Decimal]:
    return {str(k): parse_decimal(v) for k, v in data.items()}


def parse_tiers(raw: list[dict[str, Any]] | None) -> tuple[DiscountTier, ...]:
    tiers = tuple(
        DiscountTier(threshold=parse_decimal(t["threshold"]), percent=parse_decimal(t["percent"]))
        for t in raw or []
    )
    return tuple(sorted(tiers, key=lambda t: t.threshold))


def parse_valuation(data: dict[str, Any]) -> ValuationTables:
    """
    Parse the ``valuation`` section.

    Raises:
        KeyError: if one of the four required tables is missing.
        ValueError: on bad numbers or a split that does not sum to 100.
    """
    splits = {
        str(level): ContributionSplit(
            employee_percent=parse_decimal(pair["employee"]),
            employer_percent=parse_decimal(pair["employer"]),
        )
        for level, pair in data["contribution_splits"].items()
    }
    return ValuationTables(
        network_multipliers=_decimal_table(data["network_multipliers"]),
        benefit_type_multipliers=_decimal_table(data["benefit_type_multipliers"]),
        coverage_multipliers=_decimal_table(data["coverage_multipliers"]),
        contribution_splits=splits,
        tenure_discounts=parse_tiers(data.get("tenure_discounts")),
        volume_discounts=parse_tiers(data.get("volume_discounts")),
    )


def parse_late_fees(data: dict[str, Any]) -> LateFeePolicy:
    return LateFeePolicy(
        percent_per_month=parse_decimal(data.get("percent_per_month", "5")),
        grace_days=int(data.get("grace_days", 30)),
    )


def parse_scheduling(data: dict[str, Any]) -> SchedulingThresholds:
    return SchedulingThresholds(
        urgent_days=int(data.get("urgent_days", 7)),
        due_soon_days=int(data.get("due_soon_days", 14)),
        renewal_window_days=int(data.get("renewal_window_days", 30)),
    )


def parse_renewal(data: dict[str, Any]) -> RenewalDefaults:
    return RenewalDefaults(
        period=int(data.get("period", 1)),
        unit=str(data.get("unit", "years")),
        fallback_years=int(data.get("fallback_years", 1)),
    )


def parse_eligibility(data: dict[str, Any]) -> EligibilityRules:
    types = data.get("eligible_employment_types", ["full_time", "part_time"])
    return EligibilityRules(
        min_service_days=int(data.get("min_service_days", 90)),
        eligible_employment_types=tuple(str(t) for t in types),
    )


def parse_training(data: dict[str, Any]) -> TrainingRules:
    return TrainingRules(
        certification_validity=int(data.get("certification_validity", 1)),
        certification_validity_unit=str(data.get("certification_validity_unit", "years")),
        min_score=parse_decimal(data.get("min_score", "0")),
        max_score=parse_decimal(data.get("max_score", "100")),
        min_rating=parse_decimal(data.get("min_rating", "1.0")),
        max_rating=parse_decimal(data.get("max_rating", "5.0")),
    )


def parse_delivery(data: dict[str, Any]) -> EventDelivery:
    return EventDelivery(
        max_workers=int(data.get("max_workers", 4)),
        max_attempts=int(data.get("max_attempts", 3)),
        backoff_seconds=float(data.get("backoff_seconds", 0.5)),
    )


def parse_configuration(data: dict[str, Any], checksum: str = "") -> EngineConfiguration:
    """
    Parse a whole configuration document.

    Preconditions:
        - ``data`` contains ``config_id``, ``version``, ``effective_from``
          and a ``valuation`` section.
    Raises:
        KeyError / ValueError on malformed input.
    """
    return EngineConfiguration(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        effective_from=parse_date(data["effective_from"]),
        valuation=parse_valuation(data["valuation"]),
        late_fees=parse_late_fees(data.get("late_fees", {})),
        scheduling=parse_scheduling(data.get("scheduling", {})),
        renewal=parse_renewal(data.get("renewal", {})),
        eligibility=parse_eligibility(data.get("eligibility", {})),
        invoicing=InvoiceTerms(
            payment_terms_days=int(data.get("invoicing", {}).get("payment_terms_days", 30))
        ),
        training=parse_training(data.get("training", {})),
        delivery=parse_delivery(data.get("delivery", {})),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_engine_configuration(path: Path) -> EngineConfiguration:
    """
    Load and parse ``path`` into an ``EngineConfiguration``.

    Raises:
        ConfigurationError: for any missing, unreadable or invalid document.
    """
    source = str(path)
    try:
        data = load_yaml_file(path)
    except FileNotFoundError:
        raise ConfigurationError(source, "file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(source, f"invalid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(source, "top level must be a mapping")

    try:
        return parse_configuration(data, checksum=compute_checksum(data))
    except KeyError as exc:
        raise ConfigurationError(source, f"missing required key {exc}") from exc
    except (ValueError, TypeError, ValidationError) as exc:
        raise ConfigurationError(source, str(exc)) from exc
