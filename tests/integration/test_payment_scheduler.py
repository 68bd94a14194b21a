from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from rentalbiz.errors import (
    ContractNotFoundError,
    InvalidContractStateError,
    ScheduleValidationError,
)
from rentalbiz.models import AuditRecord, Payment
from rentalbiz.services.payment_scheduler import ACTION_GAPS_FILLED, ACTION_SCHEDULED, SKIP_REASON
from rentalbiz.services.schedule_dates import PaymentType


def _payments(contract, payment_type="rent"):
    return (
        Payment.query.filter_by(contract_id=contract.id, type=payment_type)
        .order_by(Payment.due_date)
        .all()
    )


def test_schedule_rent_from_lease_start(scheduler, contract, landlord):
    result = scheduler.schedule_rent(contract.id, 2024, actor_id=landlord.id)

    assert result.scheduled == 9
    assert result.skipped == 0
    assert result.total == 9
    rows = _payments(contract)
    assert [p.due_date for p in rows] == [date(2024, m, 5) for m in range(4, 13)]
    for p in rows:
        assert p.amount == Decimal("1000.00")
        assert p.status == "pending"
        assert p.is_automatic is True
        assert p.currency == "MXN"
        assert p.user_id == contract.tenant_id
        assert p.reference_number.startswith("REF-REN-20240115-")
        assert p.notes == "Rent payment scheduled automatically for 2024"


def test_schedule_rent_twice_creates_nothing_new(scheduler, contract):
    scheduler.schedule_rent(contract.id, 2024)
    second = scheduler.schedule_rent(contract.id, 2024)

    assert second.scheduled == 0
    assert second.skipped == 9
    assert len(second.skipped_dates) == 9
    assert len(_payments(contract)) == 9


def test_preview_after_schedule_reports_nothing_to_create(scheduler, contract):
    scheduler.schedule_rent(contract.id, 2024)
    preview = scheduler.preview(contract.id, PaymentType.RENT, 2024)

    assert preview.to_dict()["will_create"] == 0
    assert preview.to_dict()["will_skip"] == 9
    assert preview.existing == 9


def test_preview_matches_commit(scheduler, contract, add_payment):
    add_payment(contract, date(2024, 6, 20))
    preview = scheduler.preview(contract.id, "rent", 2024)
    result = scheduler.schedule_rent(contract.id, 2024)

    assert [p.due_date for p in result.payments] == preview.to_create
    assert Payment.query.count() == 9


def test_preview_writes_nothing(scheduler, contract):
    data = scheduler.preview(contract.id, "electricity", 2024, payment_day=31, amount="250").to_dict()

    assert Payment.query.count() == 0
    assert data["total_expected"] == 12
    assert data["will_create"] == 12
    assert data["payments_to_create"][1] == {"due_date": "2024-02-29", "amount": 250.0, "type": "electricity"}


def test_preview_skip_list_has_reason(scheduler, contract, add_payment):
    add_payment(contract, date(2024, 5, 1))
    data = scheduler.preview(contract.id, "rent", 2024).to_dict()

    assert data["payments_to_skip"] == [{"due_date": "2024-05-05", "reason": SKIP_REASON}]
    assert data["will_create"] == 8


def test_preview_utility_needs_day_and_amount(scheduler, contract):
    with pytest.raises(ScheduleValidationError) as exc:
        scheduler.preview(contract.id, "gas", 2024, payment_day=10)
    assert exc.value.code == "MISSING_UTILITY_PARAMS"


def test_existing_payment_on_another_day_still_covers_month(scheduler, contract, add_payment):
    add_payment(contract, date(2024, 4, 20))
    result = scheduler.schedule_rent(contract.id, 2024)

    assert result.scheduled == 8
    # Only exact-date matches are reported as skipped
    assert result.skipped == 0
    months = Counter(p.due_date.strftime("%Y-%m") for p in _payments(contract))
    assert all(count == 1 for count in months.values())


def test_skipped_dates_report_exact_matches(scheduler, contract, add_payment):
    add_payment(contract, date(2024, 7, 5))
    result = scheduler.schedule_rent(contract.id, 2024)

    assert result.skipped_dates == [date(2024, 7, 5)]
    assert result.to_dict()["skipped_dates"] == ["2024-07-05"]


def test_schedule_rent_with_explicit_day(scheduler, contract):
    result = scheduler.schedule_rent(contract.id, 2024, payment_day=31)

    assert result.payments[0].due_date == date(2024, 3, 31)
    assert result.total == 10


def test_schedule_utility_full_year(scheduler, contract, landlord):
    result = scheduler.schedule_utility(contract.id, "water", 31, "180.50", 2024, actor_id=landlord.id)

    assert result.scheduled == 12
    rows = _payments(contract, "water")
    assert rows[1].due_date == date(2024, 2, 29)
    assert rows[0].due_date == date(2024, 1, 31)
    assert all(p.amount == Decimal("180.50") for p in rows)
    assert rows[0].notes == "Water payment scheduled automatically for 2024"


def test_schedule_utility_rejects_rent(scheduler, contract):
    with pytest.raises(ScheduleValidationError):
        scheduler.schedule_utility(contract.id, "rent", 5, "100", 2024)


def test_fill_gaps_electricity(scheduler, contract, landlord):
    result = scheduler.fill_gaps(contract.id, "electricity", 2024, payment_day=15, amount=200, actor_id=landlord.id)

    assert result.filled == 12
    rows = _payments(contract, "electricity")
    assert [p.due_date for p in rows] == [date(2024, m, 15) for m in range(1, 13)]
    assert all(p.amount == Decimal("200") for p in rows)


def test_fill_gaps_rent_uses_contract_terms(scheduler, contract, add_payment):
    add_payment(contract, date(2024, 8, 5))
    result = scheduler.fill_gaps(contract.id, "rent", 2024)

    assert result.filled == 8
    assert all(p.amount == Decimal("1000.00") for p in result.payments)
    assert result.payments[0].notes == "Payment backfilled automatically for 2024"


def test_fill_gaps_utility_needs_terms(scheduler, contract):
    with pytest.raises(ScheduleValidationError):
        scheduler.fill_gaps(contract.id, "gas", 2024, payment_day=10)


def test_audit_record_written_for_schedule(scheduler, contract, landlord):
    result = scheduler.schedule_rent(contract.id, 2024, actor_id=landlord.id)

    records = AuditRecord.query.all()
    assert len(records) == 1
    record = records[0]
    assert record.action == ACTION_SCHEDULED
    assert record.user_id == landlord.id
    assert sorted(record.entity_ids) == sorted(p.id for p in result.payments)
    assert record.details["scheduled_count"] == 9
    assert record.details["total_in_year"] == 9
    assert record.details["payment_day"] == 5


def test_no_audit_record_when_nothing_scheduled(scheduler, contract):
    scheduler.schedule_rent(contract.id, 2024)
    scheduler.schedule_rent(contract.id, 2024)

    assert AuditRecord.query.count() == 1


def test_fill_gaps_always_audits(scheduler, contract):
    scheduler.fill_gaps(contract.id, "rent", 2024)
    scheduler.fill_gaps(contract.id, "rent", 2024)

    records = AuditRecord.query.filter_by(action=ACTION_GAPS_FILLED).all()
    assert [r.details["filled_count"] for r in records] == [9, 0]


def test_audit_failure_keeps_payments(scheduler, contract, monkeypatch):
    def _boom(**fields):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

    monkeypatch.setattr(scheduler.repo, "create_audit_record", _boom)
    result = scheduler.schedule_rent(contract.id, 2024)

    assert result.scheduled == 9
    assert Payment.query.count() == 9


def test_concurrent_insert_is_reconciled(scheduler, contract, add_payment, monkeypatch):
    # Another run already stored April; the first read misses it.
    add_payment(contract, date(2024, 4, 5), is_automatic=True)
    real = scheduler.existing_payments
    calls = []

    def _stale_then_real(*args):
        calls.append(args)
        return [] if len(calls) == 1 else real(*args)

    monkeypatch.setattr(scheduler, "existing_payments", _stale_then_real)
    result = scheduler.schedule_rent(contract.id, 2024)

    assert len(calls) == 2
    assert result.scheduled == 8
    assert result.skipped_dates == [date(2024, 4, 5)]
    assert Payment.query.count() == 9


def test_stale_read_cannot_add_second_payment_in_month(scheduler, contract, add_payment, monkeypatch):
    # A run with a different payment day stored April 20; this run's first read misses it.
    add_payment(contract, date(2024, 4, 20), is_automatic=True)
    real = scheduler.existing_payments
    calls = []

    def _stale_then_real(*args):
        calls.append(args)
        return [] if len(calls) == 1 else real(*args)

    monkeypatch.setattr(scheduler, "existing_payments", _stale_then_real)
    result = scheduler.schedule_rent(contract.id, 2024)

    april = [p.due_date for p in _payments(contract) if p.due_month == "2024-04"]
    assert len(calls) == 2
    assert april == [date(2024, 4, 20)]
    assert result.scheduled == 8
    assert Payment.query.count() == 9


def test_due_month_follows_due_date(add_payment, contract):
    payment = add_payment(contract, date(2024, 2, 29))
    assert payment.due_month == "2024-02"

    payment.due_date = date(2024, 3, 1)
    assert payment.due_month == "2024-03"


def test_inactive_contract_cannot_be_scheduled(scheduler, make_contract):
    pending = make_contract(status="pending")

    with pytest.raises(InvalidContractStateError):
        scheduler.schedule_rent(pending.id, 2024)
    with pytest.raises(InvalidContractStateError):
        scheduler.preview(pending.id, "rent", 2024)
    with pytest.raises(InvalidContractStateError):
        scheduler.fill_gaps(pending.id, "water", 2024, payment_day=1, amount=10)
    assert Payment.query.count() == 0


def test_unknown_contract(scheduler, app):
    with pytest.raises(ContractNotFoundError):
        scheduler.schedule_rent("missing", 2024)


def test_contract_of_another_landlord(scheduler, contract, other_landlord):
    with pytest.raises(ContractNotFoundError):
        scheduler.schedule_rent(contract.id, 2024, landlord_id=other_landlord.id)


def test_tenant_can_preview_but_not_schedule(scheduler, contract, tenant):
    assert scheduler.preview(contract.id, "rent", 2024, user_id=tenant.id).total_expected == 9
    with pytest.raises(ContractNotFoundError):
        scheduler.schedule_rent(contract.id, 2024, landlord_id=tenant.id)


def test_existing_months_uses_due_date_month(scheduler, contract, add_payment):
    add_payment(contract, date(2024, 1, 1), payment_type="gas")
    add_payment(contract, date(2024, 12, 31), payment_type="gas")
    add_payment(contract, date(2025, 1, 1), payment_type="gas")

    assert scheduler.existing_months(contract.id, "gas", 2024) == {"2024-01", "2024-12"}


def test_schedule_status(scheduler, contract, add_payment):
    scheduler.schedule_rent(contract.id, 2024)
    add_payment(contract, date(2024, 2, 10), payment_type="water", amount="90")

    status = scheduler.schedule_status(contract.id, 2024)

    assert status["contract_start_date"] == "2024-03-10"
    assert set(status["types"]) == {"rent", "electricity", "water", "gas"}
    rent = status["types"]["rent"]
    assert (rent["expected"], rent["existing"], rent["missing"]) == (9, 9, 0)
    assert rent["missing_months"] == ["2024-01", "2024-02", "2024-03"]
    water = status["types"]["water"]
    assert (water["expected"], water["existing"], water["missing"]) == (12, 1, 11)
    assert water["payments"][0]["due_date"] == "2024-02-10"
    assert status["types"]["gas"]["missing"] == 12


def test_schedule_status_allows_inactive_contract(scheduler, make_contract):
    expired = make_contract(status="expired")
    assert scheduler.schedule_status(expired.id, 2024)["types"]["rent"]["existing"] == 0
