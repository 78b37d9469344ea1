# trading/reports.py

from __future__ import annotations

from datetime import datetime, time, timedelta

from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from .models import Agency, Customer, Product, Staff, Stock, Transaction, Warehouse
from .services import ZERO, money

IN_STOCK     = "IN_STOCK"
LOW_STOCK    = "LOW_STOCK"
OUT_OF_STOCK = "OUT_OF_STOCK"


def stock_status(quantity: int) -> str:
    if quantity == 0:
        return OUT_OF_STOCK
    if quantity < settings.LOW_STOCK_THRESHOLD:
        return LOW_STOCK
    return IN_STOCK


def inventory_report(warehouse_id=None) -> dict:
    """Stock value at factory price, with per-warehouse detail."""
    stocks = Stock.objects.select_related("product", "warehouse__agency").order_by("-quantity", "id")
    if warehouse_id:
        stocks = stocks.filter(warehouse_id=warehouse_id)

    total_items, total_value, low, out = 0, ZERO, 0, 0
    by_wh = {}
    n = 0
    for s in stocks:
        n += 1
        value = s.product.factory_price * s.quantity
        total_items += s.quantity
        total_value += value
        status = stock_status(s.quantity)
        if status == OUT_OF_STOCK:
            out += 1
        elif status == LOW_STOCK:
            low += 1

        wh = by_wh.setdefault(s.warehouse_id, {
            "warehouse_id": str(s.warehouse_id),
            "name": s.warehouse.name,
            "agency_name": s.warehouse.agency.name,
            "items_count": 0,
            "total_value": ZERO,
            "items": [],
        })
        wh["items_count"] += s.quantity
        wh["total_value"] += value
        wh["items"].append({
            "product_id": s.product_id,
            "product_name": s.product.name,
            "barcode": s.product.barcode,
            "quantity": s.quantity,
            "factory_price": s.product.factory_price,
            "wholesale_price": s.product.wholesale_price,
            "retail_price": s.product.retail_price,
            "total_value": value,
            "stock_status": status,
        })

    return {
        "total_items": total_items,
        "total_value": money(total_value),
        "low_stock_items": low,
        "out_of_stock_items": out,
        "total_products": n,
        "warehouses": list(by_wh.values()),
    }


def _alert(stock: Stock, severity: str) -> dict:
    return {
        "product_id": stock.product_id,
        "product_name": stock.product.name,
        "warehouse_name": stock.warehouse.name,
        "current_quantity": stock.quantity,
        "severity": severity,
    }


def dashboard_stats(today=None) -> dict:
    today = today or timezone.localdate()
    day_start = timezone.make_aware(datetime.combine(today, time.min))
    week_ago = day_start - timedelta(days=7)
    two_weeks_ago = day_start - timedelta(days=14)
    threshold = settings.LOW_STOCK_THRESHOLD

    sales = Transaction.objects.filter(type=Transaction.SALE, source=Transaction.MANUAL)
    today_sales = sales.filter(created_at__gte=day_start)

    def total(qs):
        return money(qs.aggregate(s=Sum("total_amount"))["s"] or 0)

    low = Stock.objects.filter(quantity__gt=0, quantity__lt=threshold).select_related("product", "warehouse")
    out = Stock.objects.filter(quantity=0).select_related("product", "warehouse")
    recent = Transaction.objects.select_related("staff", "customer").order_by("-created_at", "-id")[:5]

    return {
        "total_agencies": Agency.objects.count(),
        "total_warehouses": Warehouse.objects.filter(is_custody=False).count(),
        "total_products": Product.objects.count(),
        "total_users": Staff.objects.count(),
        "total_customers": Customer.objects.count(),
        "today_sales": total(today_sales),
        "today_transactions": today_sales.count(),
        "week_sales": total(sales.filter(created_at__gte=week_ago, created_at__lt=day_start)),
        "last_week_sales": total(sales.filter(created_at__gte=two_weeks_ago, created_at__lt=week_ago)),
        "low_stock_count": low.count(),
        "out_of_stock_count": out.count(),
        "low_stock_products": [_alert(s, "warning") for s in low.order_by("quantity", "id")[:10]],
        "out_of_stock_products": [_alert(s, "critical") for s in out.order_by("id")[:10]],
        "recent_transactions": [
            {
                "id": t.pk,
                "type": t.type,
                "total_amount": t.total_amount,
                "created_at": t.created_at,
                "staff_name": str(t.staff) if t.staff_id else None,
                "customer_name": t.customer.name if t.customer_id else None,
            }
            for t in recent
        ],
    }
