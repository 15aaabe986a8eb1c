"""Tests for backoffice_modules.contracts."""

from datetime import date
from decimal import Decimal

import pytest

from backoffice_engines.scheduling import ExpiryStatus
from backoffice_kernel.exceptions import (
    InvalidTransitionError,
    PreconditionFailedError,
    ValidationError,
)

PROVIDER_ID = "P-500"


def _contract(contracts, **overrides):
    fields = dict(
        provider_id=PROVIDER_ID,
        contract_number="C-2024-001",
        contract_value=Decimal("100000"),
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
        commission_rate=Decimal("5"),
        bonus=Decimal("1000"),
        contract_type="service",
    )
    fields.update(overrides)
    return contracts.create_contract(**fields)


def _active(contracts, **overrides):
    contract = _contract(contracts, **overrides)
    return contracts.sign(contract.id)


class TestCreateAndSign:
    def test_draft_created(self, contracts):
        contract = _contract(contracts, region="north")
        assert contract.status == "draft"
        assert contract.attr("commission_rate") == "5"
        assert contract.attr("provider_id") == PROVIDER_ID
        assert contract.attr("region") == "north"
        assert contract.attr("auto_renewal") is False

    def test_commission_rate_bounds(self, contracts):
        with pytest.raises(ValidationError) as exc_info:
            _contract(contracts, commission_rate=Decimal("120"))
        assert exc_info.value.field == "commission_rate"

    def test_sign_splits_commission(self, contracts):
        contract = _active(contracts)
        assert contract.status == "active"
        assert contract.amount("commission_amount") == Decimal("5000.00")
        assert contract.amount("net_value") == Decimal("95000.00")
        assert contract.amount("discount_amount") == Decimal("0.00")
        assert contract.attr("signed_on") == "2024-06-03"

    def test_volume_discount_on_sign(self, contracts):
        contract = contracts.sign(_contract(contracts).id, active_contracts=50)
        # 5% tier: 95000.00 net of discount, 5% of it is commission
        assert contract.amount("discount_amount") == Decimal("5000.00")
        assert contract.amount("commission_amount") == Decimal("4750.00")
        assert contract.amount("net_value") == Decimal("90250.00")

    def test_incomplete_draft_cannot_sign(self, contracts):
        contract = _contract(contracts, contract_number=None)
        with pytest.raises(InvalidTransitionError) as exc_info:
            contracts.sign(contract.id)
        assert exc_info.value.reason == "guard_failed:required_fields_present"

    def test_cancel_draft(self, contracts):
        contract = contracts.cancel(_contract(contracts).id, reason="duplicate")
        assert contract.status == "cancelled"
        with pytest.raises(InvalidTransitionError):
            contracts.sign(contract.id)


class TestSuspension:
    def test_suspend_and_resume(self, contracts):
        contract = _active(contracts)
        suspended = contracts.suspend(contract.id, reason="audit")
        assert suspended.status == "suspended"
        assert suspended.attr("suspension_reason") == "audit"
        assert contracts.resume(contract.id).status == "active"

    def test_cannot_sign_suspended(self, contracts):
        contract = _active(contracts)
        contracts.suspend(contract.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            contracts.sign(contract.id)
        assert exc_info.value.reason == "not_in_table"
        assert contracts.get(contract.id).status == "suspended"

    def test_cannot_renew_suspended(self, contracts):
        contract = _active(contracts)
        contracts.suspend(contract.id)
        with pytest.raises(InvalidTransitionError):
            contracts.renew(contract.id)
        assert contracts.get(contract.id).end_date == date(2024, 12, 31)

    def test_resume_does_not_skip_renewal(self, contracts):
        contract = _active(contracts, end_date=date(2024, 6, 20))
        contracts.flag_renewal(contract.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            contracts.resume(contract.id)
        assert exc_info.value.reason == "not_in_table"
        stored = contracts.get(contract.id)
        assert (stored.status, stored.end_date) == ("pending_renewal", date(2024, 6, 20))

    def test_cannot_flag_suspended(self, contracts):
        contract = _active(contracts, end_date=date(2024, 6, 20))
        contracts.suspend(contract.id)
        with pytest.raises(InvalidTransitionError):
            contracts.flag_renewal(contract.id)


class TestRenewal:
    def test_flag_inside_window(self, contracts):
        contract = _active(contracts, end_date=date(2024, 6, 20))
        flagged = contracts.flag_renewal(contract.id)
        assert flagged.status == "pending_renewal"
        assert flagged.attr("renewal_flagged_on") == "2024-06-03"

    def test_flag_outside_window(self, contracts):
        contract = _active(contracts)
        with pytest.raises(PreconditionFailedError) as exc_info:
            contracts.flag_renewal(contract.id)
        assert exc_info.value.reason == "outside_renewal_window"

    def test_renew_pending(self, contracts):
        contract = _active(contracts, end_date=date(2024, 6, 20))
        contracts.flag_renewal(contract.id)
        renewed = contracts.renew(contract.id, contract_value=Decimal("120000"))
        assert renewed.status == "active"
        assert renewed.end_date == date(2025, 6, 20)
        assert renewed.attr("previous_end_date") == "2024-06-20"
        assert renewed.attr("renewal_count") == 1
        assert renewed.amount("contract_value") == Decimal("120000.00")
        assert renewed.amount("commission_amount") == Decimal("6000.00")

    def test_renew_active_in_place(self, contracts, sink):
        contract = _active(contracts)
        renewed = contracts.renew(contract.id, period=6, unit="months")
        assert renewed.status == "active"
        assert renewed.end_date == date(2025, 6, 30)
        (event,) = sink.of_type("contract.renew")
        assert event.transition == ("active", "active")

    def test_renew_rejects_bad_period(self, contracts):
        contract = _active(contracts)
        with pytest.raises(ValidationError) as exc_info:
            contracts.renew(contract.id, period=0)
        assert exc_info.value.field == "period"

    def test_renew_from_lapsed_end_uses_fallback(self, contracts):
        contract = _active(contracts, start_date=date(2022, 1, 1), end_date=date(2023, 1, 1))
        renewed = contracts.renew(contract.id)
        assert renewed.end_date == date(2025, 6, 3)


class TestEnding:
    def test_terminate(self, contracts):
        contract = _active(contracts)
        terminated = contracts.terminate(contract.id, termination_date=date(2024, 9, 30), reason="breach")
        assert terminated.status == "terminated"
        assert terminated.end_date == date(2024, 9, 30)
        assert terminated.attr("original_end_date") == "2024-12-31"
        with pytest.raises(InvalidTransitionError):
            contracts.resume(contract.id)

    def test_terminate_suspended(self, contracts):
        contract = _active(contracts)
        contracts.suspend(contract.id)
        assert contracts.terminate(contract.id).status == "terminated"

    def test_expire_after_end(self, contracts):
        contract = _active(contracts, start_date=date(2023, 6, 1), end_date=date(2024, 5, 31))
        expired = contracts.expire(contract.id)
        assert expired.status == "expired"
        assert expired.attr("expired_on") == "2024-06-03"

    def test_expire_before_end(self, contracts):
        contract = _active(contracts)
        with pytest.raises(PreconditionFailedError) as exc_info:
            contracts.expire(contract.id)
        assert exc_info.value.reason == "end_date_not_reached"

    def test_expire_on_end_date_is_too_early(self, contracts):
        contract = _active(contracts, end_date=date(2024, 6, 3))
        with pytest.raises(PreconditionFailedError):
            contracts.expire(contract.id)


class TestMetrics:
    def test_snapshot(self, contracts):
        contract = _active(contracts)
        snapshot = contracts.metrics(contract.id, as_of=date(2024, 7, 1))
        assert snapshot.contract_id == contract.id
        assert snapshot.status == "active"
        assert snapshot.expiry_status == ExpiryStatus.ON_TRACK
        metrics = snapshot.metrics
        assert metrics.contract_value == Decimal("106000.00")
        assert metrics.days_elapsed == 182
        assert metrics.completion_percentage == Decimal("49.86")

    def test_snapshot_near_end_is_urgent(self, contracts):
        contract = _active(contracts, end_date=date(2024, 6, 8))
        snapshot = contracts.metrics(contract.id)
        assert snapshot.as_of == date(2024, 6, 3)
        assert snapshot.expiry_status == ExpiryStatus.URGENT

    def test_metrics_do_not_write(self, contracts):
        contract = _active(contracts)
        contracts.metrics(contract.id)
        assert contracts.get(contract.id).version == contract.version
