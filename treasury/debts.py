# treasury/debts.py
"""
Customer and supplier balances.

A customer owes the unpaid part of their transactions plus manual account
records against them: INCOME adds to the debt (opening balance, manual
debit), EXPENSE takes from it. A supplier balance is read the same way from
the supplier's transactions (total - paid) and account records.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from django.db.models import Sum
from django.db.models.functions import Coalesce

from trading.models import Customer, Staff, Supplier
from trading.services import ZERO, money, visible_customers

from .models import AccountRecord
from .services import is_opening_balance


def _record_balance(records) -> Decimal:
    return sum((r.signed_amount for r in records), ZERO)


def customer_debt(customer: Customer) -> Decimal:
    tx = customer.transactions.aggregate(s=Sum("remaining_amount"))["s"] or 0
    return money(tx) + _record_balance(customer.account_records.all())


def customers_with_debt(staff: Optional[Staff]) -> List[dict]:
    out = []
    for c in visible_customers(staff).prefetch_related("transactions", "account_records"):
        debt = sum((t.remaining_amount for t in c.transactions.all()), ZERO)
        debt += _record_balance(c.account_records.all())
        out.append({
            "id": c.pk,
            "name": c.name,
            "phone": c.phone,
            "address": c.address,
            "agency_id": c.agency_id,
            "agency_name": c.agency.name,
            "representative_id": str(c.representative_id) if c.representative_id else None,
            "representative_name": str(c.representative) if c.representative_id else None,
            "total_debt": debt,
        })
    return out


def customer_ledger(customer: Customer) -> dict:
    """Transactions and account records merged newest first."""
    rows = []
    for t in customer.transactions.select_related("staff").prefetch_related("items__product"):
        rows.append({
            "id": t.pk,
            "type": t.type,
            "created_at": t.created_at,
            "total_amount": t.total_amount,
            "paid_amount": t.paid_amount,
            "remaining_amount": t.remaining_amount,
            "note": t.note,
            "payment_type": t.payment_type,
            "items": [
                {"product_id": i.product_id, "product_name": i.product.name,
                 "quantity": i.quantity, "price": i.price, "cost": i.cost}
                for i in t.items.all()
            ],
        })
    records = list(customer.account_records.all())
    for r in records:
        income = r.type == AccountRecord.INCOME
        rows.append({
            "id": r.pk,
            "type": "ACCOUNT_ADJUSTMENT",
            "created_at": r.created_at,
            "total_amount": r.amount if income else ZERO,
            "paid_amount": ZERO if income else r.amount,
            "remaining_amount": r.signed_amount,
            "note": r.description,
            "payment_type": "MANUAL",
            "items": [],
        })
    rows.sort(key=lambda row: row["created_at"], reverse=True)
    return {
        "id": customer.pk,
        "name": customer.name,
        "phone": customer.phone,
        "address": customer.address,
        "agency_id": customer.agency_id,
        "representative_id": str(customer.representative_id) if customer.representative_id else None,
        "total_debt": customer_debt(customer),
        "has_initial_balance": any(is_opening_balance(r) for r in records),
        "transactions": rows,
    }


def supplier_balances(agency_id) -> List[dict]:
    suppliers = (
        Supplier.objects.filter(agency_id=agency_id)
        .annotate(
            tx_total=Coalesce(Sum("transactions__total_amount"), ZERO),
            tx_paid=Coalesce(Sum("transactions__paid_amount"), ZERO),
        )
        .order_by("name")
    )
    out = []
    for s in suppliers:
        records = _record_balance(s.account_records.all())
        out.append({
            "id": s.pk,
            "name": s.name,
            "phone": s.phone,
            "current_balance": money(s.tx_total - s.tx_paid) + records,
        })
    return out


def supplier_details(supplier: Supplier) -> dict:
    records = list(supplier.account_records.order_by("-created_at", "-id"))
    txs = supplier.transactions.select_related("staff").prefetch_related("items__product").order_by("-created_at", "-id")
    return {
        "id": supplier.pk,
        "name": supplier.name,
        "phone": supplier.phone,
        "address": supplier.address,
        "agency_id": supplier.agency_id,
        "agency_name": supplier.agency.name,
        "products": [{"id": p.pk, "name": p.name} for p in supplier.products.order_by("name")],
        "accounts": [
            {"id": r.pk, "type": r.type, "amount": r.amount, "description": r.description,
             "category": r.category, "created_at": r.created_at}
            for r in records
        ],
        "transactions": [
            {"id": t.pk, "type": t.type, "total_amount": t.total_amount, "paid_amount": t.paid_amount,
             "remaining_amount": t.remaining_amount, "created_at": t.created_at, "note": t.note}
            for t in txs
        ],
        "has_initial_balance": any(is_opening_balance(r) for r in records),
    }
