# trading/sales.py
"""Sales representative custody, sales and debt collection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from .models import Customer, Product, Staff, Stock, Transaction, TransactionItem, Warehouse
from .services import (
    ZERO, Line, StockError, TradingError, add_stock, money, post_transaction, split_payment,
    take_stock,
)

logger = logging.getLogger(__name__)


@dataclass
class LoadLine:
    product: Product
    cartons: int = 0
    units: int = 0

    @property
    def quantity(self) -> int:
        return self.cartons * max(self.product.units_per_carton, 1) + self.units


@dataclass
class SaleLine:
    product: Product
    quantity: int
    unit_price: Optional[Decimal] = None   # overrides the pricing-type price


@dataclass
class CustodyAudit:
    sale: Optional[Transaction]
    total: Decimal
    sold: List[Tuple[Product, int]] = field(default_factory=list)
    returned: List[Tuple[Product, int]] = field(default_factory=list)


def custody_warehouse(rep: Staff) -> Warehouse:
    wh = Warehouse.objects.filter(pk=rep.pk, is_custody=True).select_related("agency").first()
    if wh is None:
        raise TradingError(f"{rep} has no custody warehouse")
    return wh


def price_pieces(product: Product, quantity: int, pricing_type: str) -> Decimal:
    """Value of `quantity` pieces: full cartons at the carton price, the rest per piece."""
    cartons, units = divmod(quantity, max(product.units_per_carton, 1))
    carton_price, unit_price = product.prices_for(pricing_type)
    return money(cartons * carton_price + units * unit_price)


def _sale_lines(lines: Iterable[SaleLine], pricing_type: str) -> Tuple[List[Line], Decimal]:
    out, total = [], ZERO
    for ln in lines:
        if ln.quantity <= 0:
            raise StockError(f"quantity for {ln.product.name} must be positive")
        if ln.unit_price is not None:
            value = money(Decimal(ln.unit_price) * ln.quantity)
        else:
            value = price_pieces(ln.product, ln.quantity, pricing_type)
        total += value
        out.append(Line(ln.product, ln.quantity, money(value / ln.quantity), ln.product.unit_factory_price))
    if not out:
        raise TradingError("at least one item is required")
    return out, total


def _payment_type_for(paid: Decimal, total: Decimal) -> str:
    if paid >= total:
        return Transaction.CASH
    if paid == 0:
        return Transaction.CREDIT
    return Transaction.PARTIAL


# ================== Custody ==================

@transaction.atomic
def load_to_custody(*, staff: Optional[Staff], rep: Staff, warehouse: Warehouse,
                    lines: Iterable[LoadLine], note: str = "") -> Transaction:
    """Move stock from a warehouse into a representative's custody, priced by their pricing type."""
    if rep.role != Staff.SALES_REPRESENTATIVE:
        raise TradingError(f"{rep} is not a sales representative")
    custody = custody_warehouse(rep)

    items, total = [], ZERO
    for ln in lines:
        qty = ln.quantity
        if qty <= 0:
            raise StockError(f"quantity for {ln.product.name} must be positive")
        take_stock(warehouse, ln.product, qty)
        add_stock(custody, ln.product, qty)
        carton_price, unit_price = ln.product.prices_for(rep.pricing_type)
        value = money(ln.cartons * carton_price + ln.units * unit_price)
        total += value
        items.append(Line(ln.product, qty, money(value / qty), ln.product.unit_factory_price))
    if not items:
        raise TradingError("at least one item is required")

    tx = post_transaction(
        type=Transaction.SALE, source=Transaction.CUSTODY_LOAD,
        total_amount=total, paid_amount=ZERO, remaining_amount=total,
        payment_type=Transaction.CREDIT,
        staff=staff or rep, agency_id=warehouse.agency_id, warehouse=warehouse,
        note=note or f"Loaded to {rep}", lines=items,
    )
    logger.info("custody load rep=%s wh=%s total=%s", rep.pk, warehouse.pk, total)
    return tx


@transaction.atomic
def finalize_custody_audit(*, rep: Staff, counts: Iterable[Tuple[Product, int]],
                           payment_type: str = Transaction.CASH, paid_amount=None,
                           return_to: Optional[Warehouse] = None, customer: Optional[Customer] = None,
                           note: str = "") -> CustodyAudit:
    """
    Close a representative's custody round.

    Whatever is no longer on hand was sold (held - counted, products not counted are
    taken as unchanged) and becomes one SALE split by `payment_type`. What is left is
    moved to `return_to` when given, otherwise it stays in custody.
    """
    custody = custody_warehouse(rep)
    counted = {p.pk: int(q) for p, q in counts}
    held = list(
        Stock.objects.select_for_update()
        .select_related("product")
        .filter(warehouse=custody, quantity__gt=0)
    )

    result = CustodyAudit(sale=None, total=ZERO)
    sold_lines = []
    for stock in held:
        actual = counted.get(stock.product_id, stock.quantity)
        if actual < 0 or actual > stock.quantity:
            raise StockError(
                f"counted {actual} of {stock.product.name} but custody holds {stock.quantity}"
            )
        sold = stock.quantity - actual
        if sold:
            sold_lines.append(SaleLine(stock.product, sold))
            result.sold.append((stock.product, sold))

        keep = actual
        if return_to is not None and actual:
            add_stock(return_to, stock.product, actual)
            result.returned.append((stock.product, actual))
            keep = 0
        stock.quantity = keep
        stock.save(update_fields=["quantity"])

    if sold_lines:
        items, total = _sale_lines(sold_lines, rep.pricing_type)
        paid, remaining = split_payment(total, payment_type, paid_amount)
        result.sale = post_transaction(
            type=Transaction.SALE, total_amount=total, paid_amount=paid, remaining_amount=remaining,
            payment_type=payment_type, staff=rep, agency_id=custody.agency_id, warehouse=custody,
            customer=customer, note=note or "Custody audit", lines=items,
        )
        result.total = total

    if result.returned:
        post_transaction(
            type=Transaction.PURCHASE, source=Transaction.CUSTODY_RETURN,
            total_amount=ZERO, paid_amount=ZERO, remaining_amount=ZERO,
            payment_type=Transaction.CREDIT, staff=rep, agency_id=return_to.agency_id,
            warehouse=return_to, note=f"Returned from {rep}",
            lines=[Line(p, q, ZERO) for p, q in result.returned],
        )
    logger.info("custody audit rep=%s sold=%s returned=%s", rep.pk, result.total, len(result.returned))
    return result


# ================== Sales ==================

@transaction.atomic
def direct_sale(*, rep: Staff, customer: Customer, lines: Iterable[SaleLine],
                payment_type: str = Transaction.CASH, paid_amount=None, note: str = "") -> Transaction:
    custody = custody_warehouse(rep)
    lines = list(lines)
    items, total = _sale_lines(lines, rep.pricing_type)
    for ln in lines:
        take_stock(custody, ln.product, ln.quantity)
    paid, remaining = split_payment(total, payment_type, paid_amount)
    tx = post_transaction(
        type=Transaction.SALE, total_amount=total, paid_amount=paid, remaining_amount=remaining,
        payment_type=payment_type, staff=rep, agency_id=customer.agency_id, warehouse=custody,
        customer=customer, note=note, lines=items,
    )
    logger.info("direct sale rep=%s customer=%s total=%s paid=%s", rep.pk, customer.pk, total, paid)
    return tx


@transaction.atomic
def record_sales_session(*, rep: Staff, lines: Iterable[SaleLine], customer: Optional[Customer] = None,
                         payment_type: str = Transaction.CASH, paid_amount=None,
                         created_at=None, note: str = "") -> Transaction:
    """Book a representative's sales after the fact; stock is not touched."""
    agency_id = rep.agency_id or getattr(customer, "agency_id", None)
    if not agency_id:
        raise TradingError(f"{rep} has no agency to book the session against")
    items, total = _sale_lines(lines, rep.pricing_type)
    paid, remaining = split_payment(total, payment_type, paid_amount)
    extra = {"created_at": created_at} if created_at else {}
    return post_transaction(
        type=Transaction.SALE, total_amount=total, paid_amount=paid, remaining_amount=remaining,
        payment_type=payment_type, staff=rep, agency_id=agency_id,
        warehouse=Warehouse.objects.filter(pk=rep.pk, is_custody=True).first(),
        customer=customer, note=note or "Sales session", lines=items, **extra,
    )


@transaction.atomic
def update_sales_session(sale: Transaction, *, lines: Optional[Iterable[SaleLine]] = None,
                         paid_amount=None) -> Transaction:
    sale = Transaction.objects.select_for_update().get(pk=sale.pk)
    if sale.type != Transaction.SALE:
        raise TradingError(f"transaction {sale.pk} is not a sale")

    if lines is not None:
        pricing = sale.staff.pricing_type if sale.staff_id else Staff.RETAIL
        items, total = _sale_lines(lines, pricing)
        sale.items.all().delete()
        TransactionItem.objects.bulk_create([
            TransactionItem(transaction=sale, product=ln.product, quantity=ln.quantity,
                            price=ln.price, cost=money(ln.cost))
            for ln in items
        ])
        sale.total_amount = total
    paid = money(paid_amount) if paid_amount is not None else sale.paid_amount
    if paid < 0:
        raise TradingError("paid amount cannot be negative")
    sale.paid_amount = paid
    sale.remaining_amount = sale.total_amount - paid
    sale.payment_type = _payment_type_for(paid, sale.total_amount)
    sale.save()
    return sale


def rep_debt_breakdown(rep: Staff) -> List[dict]:
    """Outstanding balance per customer of a representative, largest first."""
    rows = (
        Customer.objects.filter(representative=rep)
        .annotate(debt=Coalesce(Sum("transactions__remaining_amount"), ZERO))
        .exclude(debt=0)
        .order_by("-debt")
    )
    return [{"id": c.pk, "name": c.name, "debt": money(c.debt)} for c in rows]


# ================== Collections ==================

@transaction.atomic
def record_debt_collection(*, staff: Optional[Staff], customer: Customer, amount, note: str = "",
                           rep: Optional[Staff] = None, created_at=None) -> Transaction:
    amount = money(amount)
    if amount <= 0:
        raise TradingError("collected amount must be positive")
    extra = {"created_at": created_at} if created_at else {}
    tx = post_transaction(
        type=Transaction.COLLECTION,
        total_amount=ZERO, paid_amount=amount, remaining_amount=-amount,
        payment_type=Transaction.CASH,
        staff=rep or customer.representative or staff,
        agency_id=customer.agency_id, customer=customer,
        note=note or f"Collection from {customer.name}", **extra,
    )
    logger.info("collection customer=%s amount=%s", customer.pk, amount)
    return tx


def sales_transactions(staff: Optional[Staff], agency_id=None):
    """Manual SALE rows visible to a staff member, newest first."""
    qs = (
        Transaction.objects.filter(type=Transaction.SALE, source=Transaction.MANUAL)
        .select_related("customer", "staff", "agency")
        .order_by("-created_at", "-id")
    )
    if staff is not None and staff.role == Staff.SALES_REPRESENTATIVE:
        qs = qs.filter(Q(staff=staff) | Q(customer__representative=staff))
    elif staff is not None and not staff.is_privileged:
        qs = qs.filter(agency_id=staff.agency_id)
    if agency_id:
        qs = qs.filter(agency_id=agency_id)
    return qs
