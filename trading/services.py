# trading/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Tuple

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.db.models import F, RestrictedError

from .models import (
    Agency, Customer, Product, Staff, Stock, Supplier, Transaction, TransactionItem, Warehouse,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class TradingError(Exception):
    pass


class StockError(TradingError):
    pass


def money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


# ================== Roles ==================

def require_privileged(staff: Optional[Staff]):
    if staff is None or not staff.is_privileged:
        raise PermissionDenied("Only admins and managers can do this")


def require_admin(staff: Optional[Staff]):
    if staff is None or not staff.is_admin:
        raise PermissionDenied("Only admins can do this")


def agency_filter_for(staff: Optional[Staff]) -> Optional[int]:
    """Agency a restricted member is pinned to, or None for full visibility."""
    if staff is not None and staff.is_privileged:
        return None
    return getattr(staff, "agency_id", None) or -1


# ================== Payment split ==================

def split_payment(total, payment_type: str, paid=None) -> Tuple[Decimal, Decimal]:
    """(paid, remaining) for a total under CASH / CREDIT / PARTIAL."""
    total = money(total)
    if payment_type == Transaction.CASH:
        paid = total
    elif payment_type == Transaction.CREDIT:
        paid = ZERO
    elif payment_type == Transaction.PARTIAL:
        paid = money(paid)
        if paid < 0:
            raise TradingError("paid amount cannot be negative")
    else:
        raise TradingError(f"unknown payment type {payment_type!r}")
    return paid, total - paid


@dataclass
class Line:
    product: Product
    quantity: int
    price: Decimal
    cost: Decimal = ZERO


def post_transaction(*, lines: Iterable[Line] = (), **fields) -> Transaction:
    """Create a transaction and its items, refusing rows that break paid + remaining == total."""
    tx = Transaction(**fields)
    for name in ("total_amount", "paid_amount", "remaining_amount"):
        setattr(tx, name, money(getattr(tx, name)))
    if tx.paid_amount + tx.remaining_amount != tx.total_amount:
        raise TradingError(
            f"paid ({tx.paid_amount}) + remaining ({tx.remaining_amount}) "
            f"must equal total ({tx.total_amount})"
        )
    tx.save()
    TransactionItem.objects.bulk_create([
        TransactionItem(transaction=tx, product=ln.product, quantity=ln.quantity,
                        price=money(ln.price), cost=money(ln.cost))
        for ln in lines
    ])
    return tx


# ================== Stock ==================

def _locked_stock(warehouse: Warehouse, product: Product) -> Stock:
    stock = (
        Stock.objects.select_for_update()
        .filter(warehouse=warehouse, product=product)
        .first()
    )
    if stock is None:
        stock, _ = Stock.objects.get_or_create(warehouse=warehouse, product=product,
                                               defaults={"quantity": 0})
    return stock


def stock_level(warehouse: Warehouse, product: Product) -> int:
    row = Stock.objects.filter(warehouse=warehouse, product=product).values_list("quantity", flat=True).first()
    return int(row or 0)


def add_stock(warehouse: Warehouse, product: Product, qty: int) -> int:
    stock = _locked_stock(warehouse, product)
    stock.quantity = F("quantity") + qty
    stock.save(update_fields=["quantity"])
    stock.refresh_from_db(fields=["quantity"])
    return int(stock.quantity)


def take_stock(warehouse: Warehouse, product: Product, qty: int) -> int:
    stock = _locked_stock(warehouse, product)
    if stock.quantity < qty:
        raise StockError(
            f"insufficient stock of {product.name} in {warehouse.name}: have {stock.quantity}, need {qty}"
        )
    stock.quantity = F("quantity") - qty
    stock.save(update_fields=["quantity"])
    stock.refresh_from_db(fields=["quantity"])
    return int(stock.quantity)


def put_stock(warehouse: Warehouse, product: Product, qty: int) -> int:
    if qty < 0:
        raise StockError("quantity cannot be negative")
    stock = _locked_stock(warehouse, product)
    stock.quantity = qty
    stock.save(update_fields=["quantity"])
    return qty


@transaction.atomic
def set_stock(*, staff: Optional[Staff], warehouse: Warehouse, product: Product, quantity: int,
              note: str = "", factory_price=None, update_base_price: bool = False,
              wholesale_price=None, retail_price=None) -> Stock:
    """Overwrite a stock level, logging the difference as an adjustment transaction."""
    if quantity < 0:
        raise StockError("quantity cannot be negative")
    stock = _locked_stock(warehouse, product)
    change = quantity - stock.quantity
    stock.quantity = quantity
    stock.save(update_fields=["quantity"])

    price = money(factory_price) if factory_price is not None else product.factory_price
    if update_base_price:
        if factory_price is not None:
            product.factory_price = price
        if wholesale_price is not None:
            product.wholesale_price = money(wholesale_price)
        if retail_price is not None:
            product.retail_price = money(retail_price)
        product.save()

    if change:
        total = money(price * abs(change))
        post_transaction(
            type=Transaction.PURCHASE if change > 0 else Transaction.SALE,
            source=Transaction.STOCK_ADJUSTMENT,
            total_amount=total, paid_amount=ZERO, remaining_amount=total,
            payment_type=Transaction.CREDIT,
            staff=staff, agency_id=warehouse.agency_id, warehouse=warehouse,
            note=note or f"Stock adjustment: {change:+d}",
            lines=[Line(product, abs(change), price, price)],
        )
        logger.info("stock set wh=%s product=%s qty=%s change=%+d", warehouse.pk, product.pk, quantity, change)
    return stock


def supply_stock(*, staff: Optional[Staff], warehouse: Warehouse, product: Product, added: int,
                 note: str = "", **prices) -> Stock:
    if added <= 0:
        raise StockError("supplied quantity must be positive")
    with transaction.atomic():
        current = _locked_stock(warehouse, product).quantity
        return set_stock(staff=staff, warehouse=warehouse, product=product,
                         quantity=current + added, note=note or f"Supply: +{added}", **prices)


@transaction.atomic
def audit_warehouse(warehouse: Warehouse, counts: Iterable[Tuple[Product, int]]) -> int:
    """Overwrite counted quantities; returns how many rows were written."""
    n = 0
    for product, qty in counts:
        put_stock(warehouse, product, int(qty))
        n += 1
    logger.info("warehouse audit wh=%s rows=%s", warehouse.pk, n)
    return n


@transaction.atomic
def record_opening_stock(*, staff: Optional[Staff], warehouse: Warehouse, product: Product,
                         quantity: int, cost=None, created_at=None, note: str = "") -> Transaction:
    if quantity <= 0:
        raise StockError("opening quantity must be positive")
    cost = money(cost if cost is not None else product.factory_price)
    add_stock(warehouse, product, quantity)
    total = money(cost * quantity)
    extra = {"created_at": created_at} if created_at else {}
    return post_transaction(
        type=Transaction.INITIAL_STOCK,
        total_amount=total, paid_amount=ZERO, remaining_amount=total,
        payment_type=Transaction.CREDIT,
        staff=staff, agency_id=warehouse.agency_id, warehouse=warehouse,
        note=note or "Opening stock",
        lines=[Line(product, quantity, cost, cost)],
        **extra,
    )


# ================== Agencies ==================

def visible_agencies(staff: Optional[Staff]):
    qs = Agency.objects.order_by("-created_at", "-id")
    pinned = agency_filter_for(staff)
    return qs if pinned is None else qs.filter(pk=pinned)


@transaction.atomic
def delete_agency(agency: Agency, *, staff: Optional[Staff]):
    require_privileged(staff)
    # products sold on another agency's transactions keep the agency alive
    logger.info("deleting agency %s (%s)", agency.pk, agency.name)
    try:
        agency.delete()
    except RestrictedError:
        raise TradingError(f"agency {agency.name} has products on other agencies' transactions")


# ================== Warehouses ==================

def visible_warehouses(staff: Optional[Staff]):
    qs = Warehouse.objects.select_related("agency").filter(is_custody=False).order_by("name")
    if staff is not None and staff.is_privileged:
        return qs
    if staff is None or not staff.agency_id:
        return qs.none()
    if staff.role == Staff.WAREHOUSE_KEEPER and staff.warehouse_id:
        return qs.filter(pk=staff.warehouse_id)
    return qs.filter(agency_id=staff.agency_id)


# ================== Staff ==================

@transaction.atomic
def create_staff(*, staff: Optional[Staff], username: str, password: str, role: str,
                 name: str = "", agencies: Iterable[Agency] = (), pricing_type: str = Staff.RETAIL,
                 warehouse: Optional[Warehouse] = None, image=None) -> Staff:
    require_privileged(staff)
    if not username or not password or not role:
        raise TradingError("username, password and role are required")
    if role not in dict(Staff.ROLE_CHOICES):
        raise TradingError(f"unknown role {role!r}")
    if Staff.objects.filter(username=username).exists():
        raise TradingError(f"username {username!r} is taken")
    agencies = [a for a in agencies if a is not None]
    if role == Staff.SALES_REPRESENTATIVE and not agencies:
        raise TradingError("a sales representative needs an agency")

    member = Staff(username=username, role=role, name=name, pricing_type=pricing_type,
                   agency=agencies[0] if agencies else None, warehouse=warehouse, image=image)
    member.set_password(password)
    member.save()
    member.agencies.set(agencies)

    if role == Staff.SALES_REPRESENTATIVE:
        Warehouse.objects.create(id=member.id, name=f"{Warehouse.CUSTODY_PREFIX}{name or username}",
                                 agency=agencies[0], is_custody=True)
    logger.info("staff created %s role=%s", member.username, role)
    return member


@transaction.atomic
def update_staff(member: Staff, *, staff: Optional[Staff], agencies: Optional[Iterable[Agency]] = None,
                 password: Optional[str] = None, **fields) -> Staff:
    require_admin(staff)
    for name, value in fields.items():
        if value is not None:
            setattr(member, name, value)
    if password:
        member.set_password(password)
    if agencies is not None:
        agencies = [a for a in agencies if a is not None]
        member.agency = agencies[0] if agencies else None
        member.agencies.set(agencies)
    member.save()
    return member


@transaction.atomic
def delete_staff(member: Staff, *, staff: Optional[Staff]):
    require_admin(staff)
    Warehouse.objects.filter(pk=member.pk, is_custody=True).delete()
    logger.info("staff deleted %s", member.username)
    member.delete()


def toggle_pricing(member: Staff, *, staff: Optional[Staff]) -> Staff:
    require_privileged(staff)
    member.pricing_type = Staff.RETAIL if member.pricing_type == Staff.WHOLESALE else Staff.WHOLESALE
    member.save(update_fields=["pricing_type", "last_modified"])
    return member


# ================== Suppliers / customers / products ==================

def visible_suppliers(staff: Optional[Staff], agency_id=None):
    qs = Supplier.objects.select_related("agency").order_by("name")
    pinned = agency_filter_for(staff)
    if pinned is not None:
        return qs.filter(agency_id=pinned)
    return qs.filter(agency_id=agency_id) if agency_id else qs


def visible_customers(staff: Optional[Staff]):
    qs = Customer.objects.select_related("agency", "representative").order_by("name")
    if staff is not None and staff.role == Staff.SALES_REPRESENTATIVE:
        return qs.filter(representative=staff)
    pinned = agency_filter_for(staff)
    return qs if pinned is None else qs.filter(agency_id=pinned)


def check_product_supplier(agency: Optional[Agency], supplier: Optional[Supplier]):
    if agency is None or supplier is None:
        raise TradingError("product needs an agency and a supplier")
    if supplier.agency_id != agency.pk:
        raise TradingError(f"supplier {supplier.name} does not belong to agency {agency.name}")


def delete_product(product: Product, *, staff: Optional[Staff]):
    require_privileged(staff)
    try:
        product.delete()
    except RestrictedError:
        raise TradingError(f"product {product.name} appears on transactions and cannot be deleted")
