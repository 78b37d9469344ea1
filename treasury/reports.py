# treasury/reports.py
"""Date-ranged financial reports. Every range defaults to epoch -> now."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone as dt_timezone

from django.conf import settings
from django.db.models import Prefetch, Sum
from django.utils import timezone

from trading.models import Agency, Transaction
from trading.services import ZERO, money

from .banks import loan_remaining
from .ledger import ALL, GENERAL_SAFE, Scope, treasury_balance, treasury_totals
from .models import AccountRecord, Bank, BankTransaction, Installment, Loan

EPOCH = datetime(1970, 1, 1, tzinfo=dt_timezone.utc)
UNCATEGORISED = "Uncategorised"


def date_range(start=None, end=None):
    return (start or EPOCH, end or timezone.now())


def _in_range(qs, start, end, field="created_at"):
    start, end = date_range(start, end)
    return qs.filter(**{f"{field}__gte": start, f"{field}__lte": end})


def revenue_sales(scope: Scope = ALL, start=None, end=None):
    """SALE rows that are revenue: custody loads and stock adjustments are not."""
    qs = Transaction.objects.filter(type=Transaction.SALE, source=Transaction.MANUAL)
    return _in_range(scope.apply(qs), start, end)


def _record_row(rec: AccountRecord) -> dict:
    return {
        "id": rec.pk,
        "type": rec.type,
        "amount": rec.amount,
        "description": rec.description,
        "category": rec.category,
        "agency_id": rec.agency_id,
        "agency_name": rec.agency.name if rec.agency_id else None,
        "created_at": rec.created_at,
    }


# ============ Profit & loss ============

def profit_and_loss(start=None, end=None, scope: Scope = ALL) -> dict:
    sales = revenue_sales(scope, start, end).select_related("agency").prefetch_related("items__product")
    records = _in_range(scope.apply(AccountRecord.objects.select_related("agency")), start, end)

    def bucket():
        return {"sales_revenue": ZERO, "cost_of_goods_sold": ZERO, "other_income": ZERO,
                "total_expenses": ZERO, "sales_count": 0, "expenses_count": 0}

    buckets = defaultdict(bucket)
    names = {"GENERAL": "General"}

    revenue = cost = ZERO
    sales_count = 0
    for sale in sales:
        sale_revenue = sale_cost = ZERO
        for item in sale.items.all():
            sale_revenue += item.price * item.quantity
            unit_cost = item.cost if item.cost > 0 else item.product.unit_factory_price
            sale_cost += unit_cost * item.quantity
        revenue += sale_revenue
        cost += sale_cost
        sales_count += 1
        key = sale.agency_id or "GENERAL"
        if sale.agency_id:
            names[key] = sale.agency.name
        b = buckets[key]
        b["sales_revenue"] += sale_revenue
        b["cost_of_goods_sold"] += sale_cost
        b["sales_count"] += 1

    other_income = expenses = ZERO
    expenses_count = 0
    for rec in records:
        key = rec.agency_id or "GENERAL"
        if rec.agency_id:
            names[key] = rec.agency.name
        if rec.type == AccountRecord.INCOME:
            other_income += rec.amount
            buckets[key]["other_income"] += rec.amount
        else:
            expenses += rec.amount
            expenses_count += 1
            buckets[key]["total_expenses"] += rec.amount
            buckets[key]["expenses_count"] += 1

    breakdown = []
    for key, b in buckets.items():
        profit = b["sales_revenue"] - b["cost_of_goods_sold"]
        breakdown.append({
            "agency_id": key,
            "agency_name": names.get(key, ""),
            **b,
            "sales_profit": profit,
            "total_income": profit + b["other_income"],
            "net_profit": profit + b["other_income"] - b["total_expenses"],
        })

    sales_profit = money(revenue - cost)
    return {
        "sales_revenue": money(revenue),
        "cost_of_goods_sold": money(cost),
        "sales_profit": sales_profit,
        "other_income": money(other_income),
        "total_income": sales_profit + money(other_income),
        "total_expenses": money(expenses),
        "net_profit": sales_profit + money(other_income) - money(expenses),
        "sales_count": sales_count,
        "expenses_count": expenses_count,
        "breakdown": breakdown,
    }


# ============ Income & expenses ============

def income_expenses(start=None, end=None, scope: Scope = ALL) -> dict:
    records = list(
        _in_range(scope.apply(AccountRecord.objects.select_related("agency")), start, end)
        .order_by("-created_at", "-id")
    )
    by_cat = {AccountRecord.INCOME: defaultdict(lambda: ZERO), AccountRecord.EXPENSE: defaultdict(lambda: ZERO)}
    for rec in records:
        by_cat[rec.type][rec.category or UNCATEGORISED] += rec.amount

    income = [r for r in records if r.type == AccountRecord.INCOME]
    expenses = [r for r in records if r.type == AccountRecord.EXPENSE]
    total_income = sum((r.amount for r in income), ZERO)
    total_expenses = sum((r.amount for r in expenses), ZERO)
    return {
        "income": [_record_row(r) for r in income],
        "expenses": [_record_row(r) for r in expenses],
        "income_by_category": [{"name": k, "value": v} for k, v in by_cat[AccountRecord.INCOME].items()],
        "expenses_by_category": [{"name": k, "value": v} for k, v in by_cat[AccountRecord.EXPENSE].items()],
        "total_income": total_income,
        "total_expenses": total_expenses,
        "net_cash_flow": total_income - total_expenses,
    }


# ============ Banks ============

def bank_movements(start=None, end=None, bank_id=None) -> list:
    start, end = date_range(start, end)
    rows = BankTransaction.objects.filter(date__gte=start, date__lte=end).order_by("-date", "-id")
    banks = Bank.objects.order_by("name").prefetch_related(Prefetch("transactions", queryset=rows, to_attr="in_range"))
    if bank_id:
        banks = banks.filter(pk=bank_id)

    report = []
    for bank in banks:
        deposits = sum((t.amount for t in bank.in_range if t.type == BankTransaction.DEPOSIT), ZERO)
        withdrawals = sum((t.amount for t in bank.in_range if t.type == BankTransaction.WITHDRAWAL), ZERO)
        report.append({
            "bank_id": bank.pk,
            "bank_name": bank.name,
            "current_balance": bank.balance,
            "total_deposits": deposits,
            "total_withdrawals": withdrawals,
            "net_movement": deposits - withdrawals,
            "transactions_count": len(bank.in_range),
            "transactions": [
                {"id": t.pk, "type": t.type, "amount": t.amount, "description": t.description, "date": t.date}
                for t in bank.in_range
            ],
        })
    return report


# ============ Treasury status ============

def _safe(totals) -> dict:
    return {"total_inflow": totals.inflow, "total_outflow": totals.outflow, "balance": totals.balance}


def treasury_status(start=None, end=None) -> dict:
    """Every safe's movement over the range, from the same calculator as the treasury balance."""
    start, end = date_range(start, end)
    general = _safe(treasury_totals(GENERAL_SAFE, start, end))
    agencies = []
    for agency in Agency.objects.order_by("name"):
        row = _safe(treasury_totals(Scope(agency_id=agency.pk), start, end))
        agencies.append({"agency_id": agency.pk, "agency_name": agency.name, **row})
    return {
        "general_treasury": general,
        "agency_treasuries": agencies,
        "total_balance": general["balance"] + sum((a["balance"] for a in agencies), ZERO),
    }


# ============ Purchases ============

def purchases_report(start=None, end=None, warehouse_id=None) -> dict:
    qs = _in_range(Transaction.objects.filter(type=Transaction.PURCHASE), start, end)
    if warehouse_id:
        qs = qs.filter(warehouse_id=warehouse_id)
    purchases = list(qs.select_related("warehouse").prefetch_related("items__product").order_by("-created_at", "-id"))

    by_wh = {}
    for p in purchases:
        if p.warehouse_id:
            row = by_wh.setdefault(p.warehouse_id, {"name": p.warehouse.name, "total": ZERO, "count": 0})
            row["total"] += p.total_amount
            row["count"] += 1
    return {
        "purchases": [
            {
                "id": p.pk,
                "warehouse_id": str(p.warehouse_id) if p.warehouse_id else None,
                "total_amount": p.total_amount,
                "paid_amount": p.paid_amount,
                "remaining_amount": p.remaining_amount,
                "created_at": p.created_at,
                "items": [
                    {"product_id": i.product_id, "product_name": i.product.name,
                     "quantity": i.quantity, "cost": i.cost}
                    for i in p.items.all()
                ],
            }
            for p in purchases
        ],
        "total_purchases": sum((p.total_amount for p in purchases), ZERO),
        "total_paid": sum((p.paid_amount for p in purchases), ZERO),
        "total_outstanding": sum((p.remaining_amount for p in purchases), ZERO),
        "purchases_count": len(purchases),
        "by_warehouse": list(by_wh.values()),
    }


# ============ Loans ============

def loans_report(today=None) -> dict:
    today = today or timezone.localdate()
    horizon = today + timedelta(days=settings.LOAN_ALERT_DAYS)
    loans = list(Loan.objects.select_related("bank").prefetch_related("installments").order_by("-created_at", "-id"))

    principal = remaining = ZERO
    overdue = upcoming = 0
    rows = []
    for loan in loans:
        left = loan_remaining(loan)
        rows.append({
            "id": loan.pk,
            "bank_id": loan.bank_id,
            "bank_name": loan.bank.name,
            "principal": loan.principal,
            "interest": loan.interest,
            "total_amount": loan.total_amount,
            "remaining": left,
            "status": loan.status,
            "start_date": loan.start_date,
            "end_date": loan.end_date,
            "installments": [
                {"id": i.pk, "number": i.number, "amount": i.amount, "due_date": i.due_date,
                 "paid_date": i.paid_date, "status": i.status}
                for i in loan.installments.all()
            ],
        })
        if loan.status != Loan.ACTIVE:
            continue
        principal += loan.principal
        remaining += left
        for inst in loan.installments.all():
            if inst.status not in Installment.OPEN:
                continue
            if inst.status == Installment.OVERDUE or inst.due_date < today:
                overdue += 1
            elif inst.due_date <= horizon:
                upcoming += 1

    return {
        "loans": rows,
        "active_loans": [r for r in rows if r["status"] == Loan.ACTIVE],
        "total_principal": principal,
        "total_remaining": remaining,
        "overdue_installments_count": overdue,
        "upcoming_installments_count": upcoming,
    }


# ============ Summaries ============

def financial_summary(start=None, end=None) -> dict:
    pnl = profit_and_loss(start, end)
    treasury = treasury_status(start, end)
    banks = bank_movements(start, end)
    loans = loans_report()

    bank_total = sum((b["current_balance"] for b in banks), ZERO)
    assets = treasury["total_balance"] + bank_total
    liabilities = loans["total_remaining"]
    return {
        "profit_loss": pnl,
        "treasury": treasury,
        "banks": banks,
        "loans": loans,
        "summary": {
            "total_assets": assets,
            "total_liabilities": liabilities,
            "net_worth": assets - liabilities,
            "profitability": pnl["net_profit"],
        },
    }


def treasury_summary(start=None, end=None, scope: Scope = ALL) -> dict:
    """Dashboard figures for one safe; opening balances are not profit."""
    opening = settings.OPENING_BALANCE_CATEGORY
    sales = revenue_sales(scope, start, end)
    total_sales = money(sales.aggregate(s=Sum("total_amount"))["s"] or 0)
    total_cost = ZERO
    for sale in sales.prefetch_related("items"):
        for item in sale.items.all():
            total_cost += item.cost * item.quantity

    records = _in_range(scope.apply(AccountRecord.objects.exclude(category=opening)), start, end)
    income = money(records.filter(type=AccountRecord.INCOME).aggregate(s=Sum("amount"))["s"] or 0)
    expenses = money(records.filter(type=AccountRecord.EXPENSE).aggregate(s=Sum("amount"))["s"] or 0)
    gross = total_sales - money(total_cost)

    has_opening = scope.apply(
        AccountRecord.objects.filter(category=opening, customer__isnull=True, supplier__isnull=True)
    ).exists()
    return {
        "total_sales": total_sales,
        "total_cost": money(total_cost),
        "gross_profit": gross,
        "income": income,
        "expenses": expenses,
        "net_profit": gross + income - expenses,
        "treasury_balance": treasury_balance(scope),
        "has_initial_balance": has_opening,
    }
