"""
Automatic scheduling of rent and utility payments for lease contracts.

Each run reads the payments already stored for a contract/type/year, works out
which months are still uncovered and creates one pending payment per gap, so
repeated runs never duplicate a month.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ContractNotFoundError, InvalidContractStateError, ScheduleConflictError, ScheduleValidationError
from .repository import PaymentRepository
from .schedule_dates import (
    PaymentType,
    candidate_dates,
    covered_dates,
    generate_rent_dates,
    missing_dates,
    month_key,
    year_bounds,
)

log = logging.getLogger(__name__)

ACTION_SCHEDULED = "PAYMENT_SCHEDULED"
ACTION_GAPS_FILLED = "PAYMENT_GAPS_FILLED"
SKIP_REASON = "A payment already exists for this month"


@dataclass
class ScheduleResult:
    scheduled: int
    skipped: int
    total: int
    payments: list = field(default_factory=list)
    skipped_dates: list[date] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheduled": self.scheduled,
            "skipped": self.skipped,
            "total_in_year": self.total,
            "skipped_dates": [d.isoformat() for d in self.skipped_dates],
            "payments": [p.serialize() for p in self.payments],
        }


@dataclass
class FillGapsResult:
    filled: int
    payments: list = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"filled": self.filled, "payments": [p.serialize() for p in self.payments]}


@dataclass
class SchedulePreview:
    contract_id: str
    type: PaymentType
    year: int
    amount: Decimal
    existing: int
    to_create: list[date]
    to_skip: list[date]

    @property
    def total_expected(self) -> int:
        return len(self.to_create) + len(self.to_skip)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_id": self.contract_id,
            "type": self.type.value,
            "year": self.year,
            "total_expected": self.total_expected,
            "existing": self.existing,
            "will_create": len(self.to_create),
            "will_skip": len(self.to_skip),
            "payments_to_create": [
                {"due_date": d.isoformat(), "amount": float(self.amount), "type": self.type.value}
                for d in self.to_create
            ],
            "payments_to_skip": [{"due_date": d.isoformat(), "reason": SKIP_REASON} for d in self.to_skip],
        }


@dataclass
class _Run:
    candidates: list[date]
    existing_dates: set[date]
    created: list


class PaymentScheduler:
    def __init__(
        self,
        repository: Optional[PaymentRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
        currency: str = "MXN",
    ):
        self.repo = repository or PaymentRepository()
        self.clock = clock or datetime.now
        self.currency = currency

    @classmethod
    def from_app(cls, app) -> "PaymentScheduler":
        return cls(clock=app.config.get("CLOCK"), currency=app.config.get("PAYMENT_CURRENCY", "MXN"))

    def current_year(self) -> int:
        return self.clock().year

    # --- reads -------------------------------------------------------------

    def existing_payments(self, contract_id: str, payment_type, year: int):
        start, end = year_bounds(year)
        return self.repo.find_payments_by_contract_type_and_date_range(
            contract_id, PaymentType(payment_type).value, start, end
        )

    def existing_months(self, contract_id: str, payment_type, year: int) -> set[str]:
        """'YYYY-MM' tokens already covered by a payment of this type in `year`."""
        return {month_key(p.due_date) for p in self.existing_payments(contract_id, payment_type, year)}

    def _load_contract(self, contract_id, user_id=None, allow_tenant=False):
        if user_id is None:
            contract = self.repo.find_contract_by_id(contract_id)
        else:
            contract = self.repo.find_contract_for_user(contract_id, user_id, allow_tenant=allow_tenant)
        if contract is None:
            raise ContractNotFoundError()
        return contract

    def _load_schedulable_contract(self, contract_id, user_id=None, allow_tenant=False):
        contract = self._load_contract(contract_id, user_id, allow_tenant)
        if not contract.is_active:
            raise InvalidContractStateError()
        return contract

    @staticmethod
    def _resolve_terms(contract, payment_type: PaymentType, payment_day, amount):
        """Effective (day, amount) for a run; rent falls back to the contract's terms."""
        if payment_type is PaymentType.RENT:
            return payment_day or contract.payment_day, Decimal(contract.monthly_rent)
        if not payment_day or amount is None:
            raise ScheduleValidationError(
                "Utility payments need a payment day and an amount", code="MISSING_UTILITY_PARAMS"
            )
        return payment_day, Decimal(str(amount))

    # --- writes ------------------------------------------------------------

    def _reference_number(self, payment_type: PaymentType) -> str:
        stamp = self.clock().strftime("%Y%m%d")
        return f"REF-{payment_type.value[:3].upper()}-{stamp}-{uuid.uuid4().hex[:8].upper()}"

    def _reconcile(self, contract, payment_type, year, payment_day, amount, notes) -> _Run:
        """Create a payment for every uncovered month, committing them together.

        A unique-constraint hit means a concurrent run got there first; the
        transaction is rolled back and reconciled once more against its rows.
        """
        for attempt in (1, 2):
            existing = self.existing_payments(contract.id, payment_type, year)
            existing_months = {month_key(p.due_date) for p in existing}
            existing_dates = {p.due_date for p in existing}
            candidates = candidate_dates(payment_type, year, payment_day, contract.start_date)
            created = []
            try:
                for due_date in missing_dates(candidates, existing_months):
                    created.append(
                        self.repo.create_payment(
                            contract_id=contract.id,
                            user_id=contract.tenant_id,
                            type=payment_type.value,
                            amount=amount,
                            currency=self.currency,
                            due_date=due_date,
                            status="pending",
                            is_automatic=True,
                            reference_number=self._reference_number(payment_type),
                            notes=notes,
                        )
                    )
                self.repo.flush()
                self.repo.commit()
            except IntegrityError:
                self.repo.rollback()
                if attempt == 2:
                    raise ScheduleConflictError()
                log.warning(
                    "Concurrent %s scheduling detected for contract %s/%s, reconciling again",
                    payment_type.value, contract.id, year,
                )
                continue
            except SQLAlchemyError:
                self.repo.rollback()
                raise
            return _Run(candidates, existing_dates, created)
        raise ScheduleConflictError()

    def _audit(self, actor_id, action, payments, details) -> None:
        """Best effort: a failed audit write never undoes committed payments."""
        try:
            self.repo.create_audit_record(
                user_id=actor_id,
                action=action,
                entity_type="Payment",
                entity_ids=[p.id for p in payments],
                details=details,
            )
            self.repo.commit()
        except SQLAlchemyError:
            self.repo.rollback()
            log.exception("Failed to write %s audit record for contract %s", action, details.get("contract_id"))

    # --- operations --------------------------------------------------------

    def schedule_rent(self, contract_id, year, payment_day=None, actor_id=None, landlord_id=None) -> ScheduleResult:
        return self._schedule(contract_id, PaymentType.RENT, year, payment_day, None, actor_id, landlord_id)

    def schedule_utility(
        self, contract_id, utility_type, payment_day, amount, year, actor_id=None, landlord_id=None
    ) -> ScheduleResult:
        utility_type = PaymentType(utility_type)
        if not utility_type.is_utility:
            raise ScheduleValidationError(f"{utility_type.value} is not a utility", code="INVALID_UTILITY_TYPE")
        return self._schedule(contract_id, utility_type, year, payment_day, amount, actor_id, landlord_id)

    def _schedule(self, contract_id, payment_type, year, payment_day, amount, actor_id, landlord_id):
        contract = self._load_schedulable_contract(contract_id, landlord_id)
        day, amount = self._resolve_terms(contract, payment_type, payment_day, amount)

        if payment_type is PaymentType.RENT:
            notes = f"Rent payment scheduled automatically for {year}"
        else:
            notes = f"{payment_type.label} payment scheduled automatically for {year}"
        run = self._reconcile(contract, payment_type, year, day, amount, notes)
        skipped_dates = [d for d in run.candidates if d in run.existing_dates]

        if run.created:
            details = {
                "type": payment_type.value,
                "contract_id": contract.id,
                "year": year,
                "payment_day": day,
                "scheduled_count": len(run.created),
                "skipped_count": len(skipped_dates),
                "total_in_year": len(run.candidates),
            }
            if payment_type.is_utility:
                details["amount"] = float(amount)
            self._audit(actor_id, ACTION_SCHEDULED, run.created, details)

        log.info(
            "Scheduled %s payments for contract %s/%s: %d created, %d skipped",
            payment_type.value, contract.id, year, len(run.created), len(skipped_dates),
        )
        return ScheduleResult(
            scheduled=len(run.created),
            skipped=len(skipped_dates),
            total=len(run.candidates),
            payments=run.created,
            skipped_dates=skipped_dates,
        )

    def preview(self, contract_id, payment_type, year, payment_day=None, amount=None, user_id=None) -> SchedulePreview:
        """Same reconciliation as a commit, without writing anything."""
        payment_type = PaymentType(payment_type)
        contract = self._load_schedulable_contract(contract_id, user_id, allow_tenant=True)
        day, amount = self._resolve_terms(contract, payment_type, payment_day, amount)

        existing_months = self.existing_months(contract.id, payment_type, year)
        candidates = candidate_dates(payment_type, year, day, contract.start_date)
        return SchedulePreview(
            contract_id=contract.id,
            type=payment_type,
            year=year,
            amount=amount,
            existing=len(existing_months),
            to_create=missing_dates(candidates, existing_months),
            to_skip=covered_dates(candidates, existing_months),
        )

    def fill_gaps(
        self, contract_id, payment_type, year, payment_day=None, amount=None, actor_id=None, landlord_id=None
    ) -> FillGapsResult:
        payment_type = PaymentType(payment_type)
        contract = self._load_schedulable_contract(contract_id, landlord_id)
        day, amount = self._resolve_terms(contract, payment_type, payment_day, amount)

        run = self._reconcile(
            contract, payment_type, year, day, amount, f"Payment backfilled automatically for {year}"
        )
        self._audit(
            actor_id,
            ACTION_GAPS_FILLED,
            run.created,
            {
                "type": payment_type.value,
                "contract_id": contract.id,
                "year": year,
                "payment_day": day,
                "filled_count": len(run.created),
            },
        )
        log.info("Filled %d %s gaps for contract %s/%s", len(run.created), payment_type.value, contract.id, year)
        return FillGapsResult(filled=len(run.created), payments=run.created)

    def schedule_status(self, contract_id, year, user_id=None) -> dict[str, Any]:
        """Coverage of every schedulable category for `year`."""
        contract = self._load_contract(contract_id, user_id, allow_tenant=True)
        status = {
            "contract_id": contract.id,
            "year": year,
            "contract_start_date": contract.start_date.isoformat(),
            "payment_day": contract.payment_day,
            "monthly_rent": float(contract.monthly_rent),
            "types": {},
        }
        months = [f"{year:04d}-{m:02d}" for m in range(1, 13)]

        for payment_type in PaymentType:
            payments = self.existing_payments(contract.id, payment_type, year)
            covered = {month_key(p.due_date) for p in payments}
            if payment_type is PaymentType.RENT:
                expected = len(generate_rent_dates(contract.start_date, year, contract.payment_day))
            else:
                expected = 12

            status["types"][payment_type.value] = {
                "expected": expected,
                "existing": len(covered),
                "missing": max(expected - len(covered), 0),
                "payments": [
                    {
                        "id": p.id,
                        "due_date": p.due_date.isoformat(),
                        "amount": float(p.amount),
                        "status": p.status,
                        "is_automatic": p.is_automatic,
                    }
                    for p in payments
                ],
                "missing_months": [m for m in months if m not in covered],
            }
        return status
