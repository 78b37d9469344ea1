# trading/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AgencyViewSet, CustomerViewSet, ProductViewSet, StaffViewSet, StockViewSet, SupplierViewSet,
    TransactionViewSet, WarehouseViewSet, custody_audit, dashboard, debt_collection, direct_sale_view,
    inventory, load_to_rep, opening_stock, sales_session_detail, sales_sessions, stock_set, stock_supply,
    warehouse_audit,
)

router = DefaultRouter()
router.register(r"agencies", AgencyViewSet, basename="agency")
router.register(r"warehouses", WarehouseViewSet, basename="warehouse")
router.register(r"staff", StaffViewSet, basename="staff")
router.register(r"suppliers", SupplierViewSet, basename="supplier")
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"products", ProductViewSet, basename="product")
router.register(r"stocks", StockViewSet, basename="stock")
router.register(r"transactions", TransactionViewSet, basename="transaction")

urlpatterns = [
    path("", include(router.urls)),

    path("stock/set/", stock_set, name="stock-set"),
    path("stock/supply/", stock_supply, name="stock-supply"),
    path("stock/audit/", warehouse_audit, name="warehouse-audit"),
    path("stock/opening/", opening_stock, name="opening-stock"),

    path("custody/load/", load_to_rep, name="custody-load"),
    path("custody/audit/", custody_audit, name="custody-audit"),
    path("sales/direct/", direct_sale_view, name="direct-sale"),
    path("sales-sessions/", sales_sessions, name="sales-sessions"),
    path("sales-sessions/<int:pk>/", sales_session_detail, name="sales-session-detail"),
    path("collections/", debt_collection, name="debt-collection"),

    path("reports/inventory/", inventory, name="report-inventory"),
    path("dashboard/", dashboard, name="dashboard"),
]
