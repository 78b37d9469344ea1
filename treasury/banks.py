# treasury/banks.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from trading.models import Agency, Staff
from trading.services import money

from .amortization import ScheduleError, build_schedule
from .models import AccountRecord, Bank, BankTransaction, Installment, Loan
from .services import BankError, LoanError, create_account_record

logger = logging.getLogger(__name__)


# ================== Banks ==================

def visible_banks(staff: Optional[Staff], agency_id=None):
    qs = (
        Bank.objects.select_related("agency")
        .annotate(active_loans=Count("loans", filter=Q(loans__status=Loan.ACTIVE)))
        .order_by("name")
    )
    if staff is not None and not staff.is_privileged:
        return qs.filter(agency_id=staff.agency_id)
    return qs.filter(agency_id=agency_id) if agency_id else qs


@transaction.atomic
def create_bank(*, name: str, account_number: str = "", opening_balance=0,
                agency: Optional[Agency] = None) -> Bank:
    if not name:
        raise BankError("bank name is required")
    opening = money(opening_balance)
    if opening < 0:
        raise BankError("opening balance cannot be negative")
    bank = Bank.objects.create(name=name, account_number=account_number or "", agency=agency)
    if opening:
        _apply(bank, BankTransaction.DEPOSIT, opening, "Opening balance")
    logger.info("bank %s created opening=%s", bank.pk, opening)
    bank.refresh_from_db()
    return bank


def _apply(bank: Bank, type: str, amount: Decimal, description: str = "", image=None,
           when=None) -> BankTransaction:
    """Record a bank movement and move the stored balance with it; call inside atomic()."""
    amount = money(amount)
    if amount <= 0:
        raise BankError("amount must be positive")
    locked = Bank.objects.select_for_update().get(pk=bank.pk)
    if type == BankTransaction.WITHDRAWAL:
        if locked.balance < amount:
            raise BankError(f"insufficient balance in {locked.name}: have {locked.balance}, need {amount}")
        delta = -amount
    elif type == BankTransaction.DEPOSIT:
        delta = amount
    else:
        raise BankError(f"unknown bank transaction type {type!r}")

    extra = {"date": when} if when else {}
    row = BankTransaction.objects.create(bank=locked, type=type, amount=amount,
                                         description=description or "", image=image, **extra)
    Bank.objects.filter(pk=locked.pk).update(balance=F("balance") + delta)
    logger.info("bank %s %s %s", locked.pk, type, amount)
    return row


@transaction.atomic
def create_bank_transaction(*, bank: Bank, type: str, amount, description: str = "",
                            image=None) -> BankTransaction:
    return _apply(bank, type, amount, description, image)


@transaction.atomic
def deposit_from_safe(*, staff: Optional[Staff], bank: Bank, amount, description: str = "",
                      agency=None, image=None) -> BankTransaction:
    """Move cash from a safe (general or an agency's) into a bank account."""
    amount = money(amount)
    text = description or f"Deposit to {bank.name}"
    create_account_record(staff=staff, type=AccountRecord.EXPENSE, amount=amount, description=text,
                          category="Bank deposit", agency=agency, image=image)
    return _apply(bank, BankTransaction.DEPOSIT, amount, text, image)


@dataclass
class BankReconciliation:
    bank_id: int
    stored: Decimal
    computed: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored - self.computed

    @property
    def consistent(self) -> bool:
        return self.difference == 0

    def as_dict(self) -> dict:
        return {
            "bank_id": self.bank_id,
            "stored": self.stored,
            "computed": self.computed,
            "difference": self.difference,
            "consistent": self.consistent,
        }


def reconcile_bank(bank: Bank) -> BankReconciliation:
    rows = BankTransaction.objects.filter(bank_id=bank.pk)
    deposits = rows.filter(type=BankTransaction.DEPOSIT).aggregate(s=Sum("amount"))["s"] or 0
    withdrawals = rows.filter(type=BankTransaction.WITHDRAWAL).aggregate(s=Sum("amount"))["s"] or 0
    stored = Bank.objects.values_list("balance", flat=True).get(pk=bank.pk)
    rec = BankReconciliation(bank.pk, money(stored), money(deposits) - money(withdrawals))
    if not rec.consistent:
        logger.warning("bank %s out of balance: stored=%s computed=%s", bank.pk, rec.stored, rec.computed)
    return rec


# ================== Loans ==================

@transaction.atomic
def create_loan(*, bank: Bank, principal, interest_rate, months: int, start_date: date,
                notes: str = "") -> Loan:
    try:
        schedule = build_schedule(principal, interest_rate, months, start_date)
    except ScheduleError as e:
        raise LoanError(str(e))

    loan = Loan.objects.create(
        bank=bank, principal=schedule.principal, interest_rate=money(interest_rate),
        interest=schedule.interest, total_amount=schedule.total_amount, months=int(months),
        start_date=start_date, end_date=schedule.end_date, notes=notes or "",
    )
    Installment.objects.bulk_create([
        Installment(loan=loan, number=row.number, amount=row.amount, due_date=row.due_date)
        for row in schedule.installments
    ])
    _apply(bank, BankTransaction.DEPOSIT, schedule.principal, f"Loan #{loan.pk} principal")
    logger.info("loan %s bank=%s principal=%s total=%s months=%s",
                loan.pk, bank.pk, schedule.principal, schedule.total_amount, months)
    return loan


@transaction.atomic
def pay_installment(installment_id, *, bank: Optional[Bank] = None, today: Optional[date] = None) -> Installment:
    inst = (
        Installment.objects.select_for_update()
        .select_related("loan", "loan__bank")
        .filter(pk=installment_id)
        .first()
    )
    if inst is None:
        raise LoanError(f"installment {installment_id} not found")
    if inst.status == Installment.PAID:
        raise LoanError(f"installment {installment_id} is already paid")

    today = today or timezone.localdate()
    payer = bank or inst.loan.bank
    _apply(payer, BankTransaction.WITHDRAWAL, inst.amount,
           f"Loan #{inst.loan_id} installment {inst.number}")
    inst.status = Installment.PAID
    inst.paid_date = today
    inst.save(update_fields=["status", "paid_date"])

    loan = inst.loan
    if not loan.installments.filter(status__in=Installment.OPEN).exists():
        loan.status = Loan.PAID
        loan.end_date = today
        loan.save(update_fields=["status", "end_date", "last_modified"])
        logger.info("loan %s fully paid", loan.pk)
    return inst


def upcoming_installments(today: Optional[date] = None, days: Optional[int] = None):
    today = today or timezone.localdate()
    days = settings.UPCOMING_INSTALLMENT_DAYS if days is None else days
    return (
        Installment.objects.filter(status__in=Installment.OPEN, due_date__lte=today + timedelta(days=days))
        .select_related("loan", "loan__bank")
        .order_by("due_date", "id")
    )


@transaction.atomic
def mark_overdue_installments(today: Optional[date] = None) -> int:
    today = today or timezone.localdate()
    n = Installment.objects.filter(status=Installment.PENDING, due_date__lt=today).update(status=Installment.OVERDUE)
    if n:
        logger.info("%s installments marked overdue", n)
    return n


def loan_remaining(loan: Loan) -> Decimal:
    paid = loan.installments.filter(status=Installment.PAID).aggregate(s=Sum("amount"))["s"] or 0
    return money(loan.total_amount) - money(paid)
