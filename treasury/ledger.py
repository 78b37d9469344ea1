# treasury/ledger.py
"""
Treasury (cash safe) balance.

There is no authoritative cash ledger. The balance of a safe is derived every
time from the rows that moved cash:

    balance = sum(sale.paid) - sum(purchase.paid) + sum(collection.paid)
            + sum(income.amount) - sum(expense.amount)

A safe is either one agency's or the general one (rows without an agency);
`Scope` picks which rows count. `treasury_lines` walks those rows in
chronological order with a running balance, `treasury_totals` gets the same
figure from database aggregates, and `audit_treasury` compares the two
together with the journal. `sync_journal` rebuilds the journal from scratch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from django.db import transaction
from django.db.models import Sum

from trading.models import Transaction
from trading.services import ZERO, money

from .models import AccountRecord, JournalEntry
from .services import GENERAL, TreasuryError, journal_entry_for_record, journal_entry_for_transaction

logger = logging.getLogger(__name__)

CASH_TYPES = (Transaction.SALE, Transaction.PURCHASE, Transaction.COLLECTION)

# same-timestamp rows: money in before money out
KIND_ORDER = {
    Transaction.SALE: 0,
    Transaction.COLLECTION: 1,
    AccountRecord.INCOME: 2,
    Transaction.PURCHASE: 3,
    AccountRecord.EXPENSE: 4,
}


@dataclass(frozen=True)
class Scope:
    agency_id: Optional[int] = None
    general: bool = False

    @classmethod
    def parse(cls, raw) -> "Scope":
        if raw in (None, "", "ALL", "all"):
            return ALL
        if str(raw).upper() == GENERAL:
            return GENERAL_SAFE
        try:
            return cls(agency_id=int(raw))
        except (TypeError, ValueError):
            raise TreasuryError(f"bad agency scope {raw!r}")

    def apply(self, qs, field: str = "agency"):
        if self.general:
            return qs.filter(**{f"{field}__isnull": True})
        if self.agency_id is not None:
            return qs.filter(**{f"{field}_id": self.agency_id})
        return qs

    def __str__(self):
        if self.general:
            return GENERAL
        return "ALL" if self.agency_id is None else str(self.agency_id)


ALL = Scope()
GENERAL_SAFE = Scope(general=True)


def _window(qs, start=None, end=None, before=None, field="created_at"):
    if start is not None:
        qs = qs.filter(**{f"{field}__gte": start})
    if end is not None:
        qs = qs.filter(**{f"{field}__lte": end})
    if before is not None:
        qs = qs.filter(**{f"{field}__lt": before})
    return qs


def cash_transactions(scope: Scope = ALL, start=None, end=None, before=None):
    qs = Transaction.objects.filter(type__in=CASH_TYPES).exclude(paid_amount=0)
    return _window(scope.apply(qs), start, end, before)


def cash_records(scope: Scope = ALL, start=None, end=None, before=None):
    return _window(scope.apply(AccountRecord.objects.all()), start, end, before)


# ================== Aggregates ==================

@dataclass
class TreasuryTotals:
    sales: Decimal = ZERO
    purchases: Decimal = ZERO
    collections: Decimal = ZERO
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def inflow(self) -> Decimal:
        return self.sales + self.collections + self.income

    @property
    def outflow(self) -> Decimal:
        return self.purchases + self.expense

    @property
    def balance(self) -> Decimal:
        return self.inflow - self.outflow

    def as_dict(self) -> dict:
        return {
            "sales_paid": self.sales,
            "purchases_paid": self.purchases,
            "collections": self.collections,
            "income": self.income,
            "expense": self.expense,
            "inflow": self.inflow,
            "outflow": self.outflow,
            "balance": self.balance,
        }


def treasury_totals(scope: Scope = ALL, start=None, end=None, before=None) -> TreasuryTotals:
    paid = dict(
        cash_transactions(scope, start, end, before)
        .order_by().values("type").annotate(s=Sum("paid_amount"))
        .values_list("type", "s")
    )
    recs = dict(
        cash_records(scope, start, end, before)
        .order_by().values("type").annotate(s=Sum("amount"))
        .values_list("type", "s")
    )
    return TreasuryTotals(
        sales=money(paid.get(Transaction.SALE)),
        purchases=money(paid.get(Transaction.PURCHASE)),
        collections=money(paid.get(Transaction.COLLECTION)),
        income=money(recs.get(AccountRecord.INCOME)),
        expense=money(recs.get(AccountRecord.EXPENSE)),
    )


def treasury_balance(scope: Scope = ALL) -> Decimal:
    return treasury_totals(scope).balance


# ================== Walk ==================

@dataclass
class TreasuryLine:
    date: datetime
    kind: str
    reference_id: int
    description: str
    agency_id: Optional[int]
    amount: Decimal          # signed
    balance: Decimal = ZERO  # running, after this line

    def as_dict(self) -> dict:
        return {
            "date": self.date,
            "kind": self.kind,
            "reference_id": self.reference_id,
            "description": self.description,
            "agency_id": self.agency_id,
            "amount": self.amount,
            "balance": self.balance,
        }


def _describe(tx: Transaction) -> str:
    if tx.type == Transaction.SALE:
        who = f" - {tx.customer.name}" if tx.customer_id else ""
        return f"Sale #{tx.pk}{who}"
    if tx.type == Transaction.COLLECTION:
        return tx.note or f"Debt collection #{tx.pk}"
    return f"Purchase #{tx.pk}"


def treasury_lines(scope: Scope = ALL, start=None, end=None) -> List[TreasuryLine]:
    """Cash rows oldest first with a running balance; a start date carries the balance before it."""
    lines = []
    for tx in cash_transactions(scope, start, end).select_related("customer"):
        sign = -1 if tx.type == Transaction.PURCHASE else 1
        lines.append(TreasuryLine(tx.created_at, tx.type, tx.pk, _describe(tx), tx.agency_id,
                                  sign * tx.paid_amount))
    for rec in cash_records(scope, start, end):
        lines.append(TreasuryLine(rec.created_at, rec.type, rec.pk, rec.description, rec.agency_id,
                                  rec.signed_amount))
    lines.sort(key=lambda ln: (ln.date, KIND_ORDER[ln.kind], ln.reference_id))

    running = treasury_totals(scope, before=start).balance if start is not None else ZERO
    for ln in lines:
        running += ln.amount
        ln.balance = running
    return lines


def treasury_entries(scope: Scope = ALL, start=None, end=None) -> List[TreasuryLine]:
    """Newest first, the way the treasury screen lists them."""
    return list(reversed(treasury_lines(scope, start, end)))


# ================== Journal ==================

def journal_balance(scope: Scope = ALL) -> Decimal:
    qs = scope.apply(JournalEntry.objects.all())
    debit = qs.filter(side=JournalEntry.DEBIT).aggregate(s=Sum("amount"))["s"] or 0
    credit = qs.filter(side=JournalEntry.CREDIT).aggregate(s=Sum("amount"))["s"] or 0
    return money(debit) - money(credit)


def journal_rows() -> List[JournalEntry]:
    rows = []
    for tx in cash_transactions().order_by("created_at", "id"):
        rows.append(journal_entry_for_transaction(tx))
    for rec in AccountRecord.objects.order_by("created_at", "id"):
        rows.append(journal_entry_for_record(rec))
    return [r for r in rows if r is not None]


@transaction.atomic
def sync_journal() -> int:
    """Replace the journal with entries rebuilt from sales, purchases, collections and account records."""
    rows = journal_rows()
    removed, _ = JournalEntry.objects.all().delete()
    JournalEntry.objects.bulk_create(rows)
    logger.info("journal rebuilt: %s entries removed, %s written", removed, len(rows))
    return len(rows)


# ================== Audit ==================

@dataclass
class TreasuryAudit:
    scope: Scope
    walk_balance: Decimal
    journal_balance: Decimal
    entries: int
    totals: TreasuryTotals = field(default_factory=TreasuryTotals)

    @property
    def aggregate_balance(self) -> Decimal:
        return self.totals.balance

    @property
    def gap(self) -> Decimal:
        return self.aggregate_balance - self.walk_balance

    @property
    def journal_gap(self) -> Decimal:
        return self.aggregate_balance - self.journal_balance

    @property
    def consistent(self) -> bool:
        return self.gap == 0

    def as_dict(self) -> dict:
        return {
            "scope": str(self.scope),
            "entries": self.entries,
            "walk_balance": self.walk_balance,
            "aggregate_balance": self.aggregate_balance,
            "journal_balance": self.journal_balance,
            "gap": self.gap,
            "journal_gap": self.journal_gap,
            "consistent": self.consistent,
            "totals": self.totals.as_dict(),
        }


def audit_treasury(scope: Scope = ALL) -> TreasuryAudit:
    lines = treasury_lines(scope)
    audit = TreasuryAudit(
        scope=scope,
        walk_balance=lines[-1].balance if lines else ZERO,
        journal_balance=journal_balance(scope),
        entries=len(lines),
        totals=treasury_totals(scope),
    )
    if not audit.consistent:
        logger.warning("treasury drift scope=%s walk=%s aggregates=%s gap=%s",
                       scope, audit.walk_balance, audit.aggregate_balance, audit.gap)
    if audit.journal_gap:
        logger.warning("journal out of sync scope=%s journal=%s aggregates=%s",
                       scope, audit.journal_balance, audit.aggregate_balance)
    return audit
