"""
Calendar due-date generation and gap reconciliation for scheduled payments.

Everything in this module is pure: the same arguments always yield the same
dates, which keeps a preview and the commit that follows it in agreement.
"""
from __future__ import annotations

import enum
import logging
from datetime import date
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

log = logging.getLogger(__name__)

MIN_PAYMENT_DAY = 1
MAX_PAYMENT_DAY = 31


class PaymentType(str, enum.Enum):
    RENT = "rent"
    ELECTRICITY = "electricity"
    WATER = "water"
    GAS = "gas"

    @property
    def is_utility(self) -> bool:
        return self is not PaymentType.RENT

    @property
    def label(self) -> str:
        return self.value.capitalize()


UTILITY_TYPES = tuple(t for t in PaymentType if t.is_utility)


def month_key(d: date) -> str:
    """'YYYY-MM' token for the month a due date falls in."""
    return f"{d.year:04d}-{d.month:02d}"


def year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def clamped_due_date(year: int, month: int, payment_day: int) -> date:
    """Due date for a month, pulled back to the month's last day when short."""
    if not MIN_PAYMENT_DAY <= payment_day <= MAX_PAYMENT_DAY:
        raise ValueError(f"payment_day must be between 1 and 31, got {payment_day}")
    # relativedelta(day=N) stops at the last day of the month.
    return date(year, month, 1) + relativedelta(day=payment_day)


def generate_utility_dates(year: int, payment_day: int) -> list[date]:
    """One due date per month of `year`, always twelve entries."""
    dates = [clamped_due_date(year, month, payment_day) for month in range(1, 13)]
    log.debug("Generated %d utility dates for %s (day %s)", len(dates), year, payment_day)
    return dates


def generate_rent_dates(lease_start: date, year: int, payment_day: int) -> list[date]:
    """Monthly rent due dates for `year` that fall on or after the lease start."""
    dates = [d for d in generate_utility_dates(year, payment_day) if d >= lease_start]
    log.debug(
        "Generated %d rent dates for %s (day %s, lease start %s)",
        len(dates), year, payment_day, lease_start,
    )
    return dates


def candidate_dates(
    payment_type: PaymentType,
    year: int,
    payment_day: int,
    lease_start: Optional[date] = None,
) -> list[date]:
    payment_type = PaymentType(payment_type)
    if payment_type is PaymentType.RENT:
        if lease_start is None:
            raise ValueError("rent dates need the lease start date")
        return generate_rent_dates(lease_start, year, payment_day)
    if payment_type in (PaymentType.ELECTRICITY, PaymentType.WATER, PaymentType.GAS):
        # No lease-start floor for utilities.
        return generate_utility_dates(year, payment_day)
    raise ValueError(f"Unhandled payment type: {payment_type!r}")


def missing_dates(candidates: Iterable[date], existing_months: set[str]) -> list[date]:
    """Candidates whose month has no payment yet, in input order."""
    return [d for d in candidates if month_key(d) not in existing_months]


def covered_dates(candidates: Iterable[date], existing_months: set[str]) -> list[date]:
    return [d for d in candidates if month_key(d) in existing_months]
