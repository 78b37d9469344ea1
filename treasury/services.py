# treasury/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from django.conf import settings
from django.db import transaction

from trading.models import Agency, Customer, Product, Staff, Supplier, Transaction, Warehouse
from trading.services import ZERO, Line, add_stock, money, post_transaction

from .models import AccountRecord, JournalEntry

logger = logging.getLogger(__name__)


class TreasuryError(Exception):
    pass


class BankError(TreasuryError):
    pass


class LoanError(TreasuryError):
    pass


GENERAL = "GENERAL"


def resolve_agency(raw) -> Optional[Agency]:
    """'GENERAL', '' and None mean the general safe (no agency)."""
    if raw in (None, "", GENERAL, "general"):
        return None
    if isinstance(raw, Agency):
        return raw
    agency = Agency.objects.filter(pk=raw).first()
    if agency is None:
        raise TreasuryError(f"agency {raw} not found")
    return agency


# ================== Journal ==================

def journal_entry_for_transaction(tx: Transaction) -> Optional[JournalEntry]:
    """Unsaved journal entry mirroring the cash part of a transaction, if it has one."""
    if not tx.paid_amount or tx.type not in (Transaction.SALE, Transaction.PURCHASE, Transaction.COLLECTION):
        return None
    if tx.type == Transaction.SALE:
        side, text = JournalEntry.DEBIT, f"Sale #{tx.pk}"
    elif tx.type == Transaction.COLLECTION:
        side, text = JournalEntry.DEBIT, f"Debt collection #{tx.pk} {tx.note}".strip()
    else:
        side, text = JournalEntry.CREDIT, f"Purchase #{tx.pk}"
    return JournalEntry(
        amount=tx.paid_amount, side=side, description=text[:255],
        reference_type=tx.type, reference_id=tx.pk,
        agency_id=tx.agency_id, staff_id=tx.staff_id, created_at=tx.created_at,
    )


def journal_entry_for_record(rec: AccountRecord) -> JournalEntry:
    return JournalEntry(
        amount=rec.amount,
        side=JournalEntry.DEBIT if rec.type == AccountRecord.INCOME else JournalEntry.CREDIT,
        description=rec.description[:255],
        reference_type=JournalEntry.REF_RECORD, reference_id=rec.pk,
        agency_id=rec.agency_id, staff_id=rec.staff_id, created_at=rec.created_at,
    )


def record_journal_entry(entry: Optional[JournalEntry]) -> Optional[JournalEntry]:
    if entry is not None:
        entry.save()
    return entry


# ================== Account records ==================

@transaction.atomic
def create_account_record(*, staff: Optional[Staff], type: str, amount, description: str,
                          category: str = "", agency=None, customer: Optional[Customer] = None,
                          supplier: Optional[Supplier] = None, created_at=None,
                          image=None) -> AccountRecord:
    if type not in (AccountRecord.INCOME, AccountRecord.EXPENSE):
        raise TreasuryError(f"unknown record type {type!r}")
    amount = money(amount)
    if amount <= 0:
        raise TreasuryError("amount must be positive")
    if not description:
        raise TreasuryError("description is required")

    extra = {"created_at": created_at} if created_at else {}
    rec = AccountRecord.objects.create(
        type=type, amount=amount, description=description, category=category or "",
        agency=resolve_agency(agency), staff=staff, customer=customer, supplier=supplier,
        image=image, **extra,
    )
    record_journal_entry(journal_entry_for_record(rec))
    logger.info("account record %s %s %s agency=%s", rec.pk, type, amount, rec.agency_id)
    return rec


def account_records(type: Optional[str] = None, scope=None):
    qs = AccountRecord.objects.select_related("agency", "staff", "customer", "supplier")
    if type:
        qs = qs.filter(type=type)
    if scope is not None:
        qs = scope.apply(qs)
    return qs.order_by("-created_at", "-id")


@transaction.atomic
def update_account_record(rec: AccountRecord, *, amount=None, description=None, category=None) -> AccountRecord:
    if amount is not None:
        amount = money(amount)
        if amount <= 0:
            raise TreasuryError("amount must be positive")
        rec.amount = amount
    if description:
        rec.description = description
    if category is not None:
        rec.category = category
    rec.save()
    JournalEntry.objects.filter(reference_type=JournalEntry.REF_RECORD, reference_id=rec.pk).update(
        amount=rec.amount, description=rec.description[:255],
    )
    return rec


@transaction.atomic
def delete_account_record(rec: AccountRecord):
    JournalEntry.objects.filter(reference_type=JournalEntry.REF_RECORD, reference_id=rec.pk).delete()
    logger.info("account record %s deleted", rec.pk)
    rec.delete()


def is_opening_balance(rec: AccountRecord) -> bool:
    return rec.category == settings.OPENING_BALANCE_CATEGORY


# ================== Purchases ==================

@dataclass
class PurchaseLine:
    product: Product
    quantity: int
    cost: Decimal


@transaction.atomic
def create_purchase_invoice(*, staff: Optional[Staff], warehouse: Warehouse, items: Iterable[PurchaseLine],
                            paid_amount=0, supplier: Optional[Supplier] = None, note: str = "",
                            created_at=None, image=None) -> Transaction:
    items = list(items)
    if not items:
        raise TreasuryError("a purchase needs at least one item")
    paid = money(paid_amount)
    if paid < 0:
        raise TreasuryError("paid amount cannot be negative")

    total, lines = ZERO, []
    for it in items:
        if it.quantity <= 0:
            raise TreasuryError(f"quantity for {it.product.name} must be positive")
        cost = money(it.cost)
        add_stock(warehouse, it.product, it.quantity)
        total += money(cost * it.quantity)
        lines.append(Line(it.product, it.quantity, cost, cost))

    if paid >= total:
        payment_type = Transaction.CASH
    elif paid == 0:
        payment_type = Transaction.CREDIT
    else:
        payment_type = Transaction.PARTIAL
    extra = {"created_at": created_at} if created_at else {}
    tx = post_transaction(
        type=Transaction.PURCHASE, total_amount=total, paid_amount=paid, remaining_amount=total - paid,
        payment_type=payment_type, staff=staff, agency_id=warehouse.agency_id, warehouse=warehouse,
        supplier=supplier, note=note, image=image, lines=lines, **extra,
    )
    record_journal_entry(journal_entry_for_transaction(tx))
    logger.info("purchase %s wh=%s total=%s paid=%s", tx.pk, warehouse.pk, total, paid)
    return tx


def purchase_invoices(agency_id=None):
    qs = (
        Transaction.objects.filter(type=Transaction.PURCHASE)
        .select_related("warehouse", "agency", "supplier", "staff")
        .prefetch_related("items__product")
        .order_by("-created_at", "-id")
    )
    return qs.filter(agency_id=agency_id) if agency_id else qs


@transaction.atomic
def record_agency_payment(*, staff: Optional[Staff], agency: Agency, amount, note: str = "",
                          supplier: Optional[Supplier] = None, created_at=None) -> Transaction:
    """Settle part of what an agency is owed for supplied goods."""
    amount = money(amount)
    if amount <= 0:
        raise TreasuryError("payment amount must be positive")
    extra = {"created_at": created_at} if created_at else {}
    tx = post_transaction(
        type=Transaction.SUPPLY_PAYMENT,
        total_amount=ZERO, paid_amount=amount, remaining_amount=-amount,
        payment_type=Transaction.CASH, staff=staff, agency=agency, supplier=supplier,
        note=note or f"Payment to {agency.name}", **extra,
    )
    logger.info("supply payment agency=%s amount=%s", agency.pk, amount)
    return tx


def agency_purchase_accounts(agency_ids: Optional[List[int]] = None) -> List[dict]:
    """Per agency: PURCHASE and SUPPLY_PAYMENT rows with purchased / paid / remaining totals."""
    agencies = Agency.objects.order_by("name")
    if agency_ids is not None:
        agencies = agencies.filter(pk__in=agency_ids)
    out = []
    for agency in agencies:
        rows = list(
            Transaction.objects.filter(agency=agency, type__in=[Transaction.PURCHASE, Transaction.SUPPLY_PAYMENT])
            .order_by("-created_at", "-id")
        )
        purchased = sum((t.total_amount for t in rows), ZERO)
        paid = sum((t.paid_amount for t in rows), ZERO)
        out.append({
            "agency_id": agency.pk,
            "agency_name": agency.name,
            "total_purchases": purchased,
            "total_paid": paid,
            "remaining": purchased - paid,
            "transactions": rows,
        })
    return out
