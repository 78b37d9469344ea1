# treasury/amortization.py
"""
Flat-interest loan schedules.

    interest = principal * rate / 100
    total    = principal + interest

The total is split into `months` equal installments truncated to cents; the
remainder goes on the last installment so the schedule always sums to the
loan total and no installment is negative. Installment n falls due n months
after the start date (month ends clamp, so Jan 31 is followed by Feb 28/29).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Tuple

from dateutil.relativedelta import relativedelta

CENT = Decimal("0.01")


class ScheduleError(ValueError):
    pass


@dataclass(frozen=True)
class ScheduledInstallment:
    number: int
    due_date: date
    amount: Decimal


@dataclass(frozen=True)
class LoanSchedule:
    principal: Decimal
    interest: Decimal
    total_amount: Decimal
    installments: Tuple[ScheduledInstallment, ...]

    @property
    def end_date(self) -> date:
        return self.installments[-1].due_date


def build_schedule(principal, interest_rate, months: int, start_date: date) -> LoanSchedule:
    principal = Decimal(str(principal)).quantize(CENT, rounding=ROUND_HALF_UP)
    rate = Decimal(str(interest_rate or 0))
    months = int(months)
    if principal <= 0:
        raise ScheduleError("principal must be positive")
    if rate < 0:
        raise ScheduleError("interest rate cannot be negative")
    if months < 1:
        raise ScheduleError("a loan runs for at least one month")

    interest = (principal * rate / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    total = principal + interest
    base = (total / months).quantize(CENT, rounding=ROUND_DOWN)
    last = total - base * (months - 1)

    rows = tuple(
        ScheduledInstallment(
            number=n,
            due_date=start_date + relativedelta(months=n),
            amount=last if n == months else base,
        )
        for n in range(1, months + 1)
    )
    return LoanSchedule(principal=principal, interest=interest, total_amount=total, installments=rows)
