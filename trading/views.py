# trading/views.py
# ============================================================
# Imports
# ============================================================
import logging

from django.conf import settings
from django.shortcuts import get_object_or_404

from rest_framework import filters, permissions, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.response import Response

from .models import Product, Staff, Stock, Transaction
from .reports import dashboard_stats, inventory_report
from .sales import (
    LoadLine, SaleLine, custody_warehouse, direct_sale, finalize_custody_audit, load_to_custody,
    record_debt_collection, record_sales_session, rep_debt_breakdown, sales_transactions,
    update_sales_session,
)
from .serializers import (
    AgencySerializer, CollectionSerializer, CustodyAuditSerializer, CustomerSerializer,
    DirectSaleSerializer, LoadToRepSerializer, OpeningStockSerializer, ProductSerializer,
    SalesSessionSerializer, SalesSessionUpdateSerializer, StaffSerializer, StaffWriteSerializer,
    StockSerializer, StockSetSerializer, StockSupplySerializer, SupplierSerializer,
    TransactionSerializer, WarehouseAuditSerializer, WarehouseSerializer,
)
from .services import (
    TradingError, audit_warehouse, delete_agency, delete_product, delete_staff, create_staff,
    record_opening_stock, require_privileged, set_stock, supply_stock, toggle_pricing,
    update_staff, visible_agencies, visible_customers, visible_suppliers, visible_warehouses,
)

logger = logging.getLogger(__name__)


# ============================================================
# Helpers
# ============================================================
def current_staff(request):
    """
    Staff member acting on this request.
    DEFAULT_STAFF_ID from settings when set, otherwise the first admin.
    """
    if hasattr(request, "_staff"):
        return request._staff
    staff_id = getattr(settings, "DEFAULT_STAFF_ID", None)
    if staff_id:
        staff = Staff.objects.filter(pk=staff_id).first()
    else:
        staff = Staff.objects.filter(role=Staff.ADMIN).order_by("date_created").first()
    request._staff = staff
    return staff


def bad_request(exc):
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


class DomainErrorsMixin:
    """Service-layer errors become 400 responses."""
    domain_errors = (TradingError,)

    def handle_exception(self, exc):
        if isinstance(exc, self.domain_errors):
            return bad_request(exc)
        return super().handle_exception(exc)

    @property
    def staff(self):
        return current_staff(self.request)


# ============================================================
# Entity viewsets
# ============================================================
class AgencyViewSet(DomainErrorsMixin, viewsets.ModelViewSet):
    permission_classes = [permissions.AllowAny]
    serializer_class = AgencySerializer
    filter_backends = [filters.SearchFilter]
    search_fields = ["name"]

    def get_queryset(self):
        return visible_agencies(self.staff)

    def perform_create(self, serializer):
        require_privileged(self.staff)
        serializer.save()

    def perform_update(self, serializer):
        require_privileged(self.staff)
        serializer.save()

    def perform_destroy(self, instance):
        delete_agency(instance, staff=self.staff)


class WarehouseViewSet(DomainErrorsMixin, viewsets.ModelViewSet):
    permission_classes = [permissions.AllowAny]
    serializer_class = WarehouseSerializer

    def get_queryset(self):
        return visible_warehouses(self.staff)

    def perform_destroy(self, instance):
        require_privileged(self.staff)
        logger.info("deleting warehouse %s", instance.pk)
        instance.delete()

    @action(detail=True, methods=["GET"], url_path="transactions")
    def transactions(self, request, pk=None):
        wh = self.get_object()
        qs = wh.transactions.prefetch_related("items__product").order_by("-created_at", "-id")[:100]
        return Response(TransactionSerializer(qs, many=True).data)


class StaffViewSet(DomainErrorsMixin, viewsets.ModelViewSet):
    """
    /api/staff/
      POST   creates a member; sales representatives also get their custody warehouse
      PATCH  admin only
      DELETE admin only, removes the custody warehouse and its stock
    """
    permission_classes = [permissions.AllowAny]
    serializer_class = StaffSerializer
    queryset = Staff.objects.prefetch_related("agencies").order_by("username")

    def get_queryset(self):
        qs = super().get_queryset()
        role = self.request.query_params.get("role")
        return qs.filter(role=role) if role else qs

    def create(self, request, *args, **kwargs):
        ser = StaffWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        member = create_staff(staff=self.staff, **ser.validated_data)
        return Response(StaffSerializer(member).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        member = self.get_object()
        ser = StaffWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        member = update_staff(member, staff=self.staff, **ser.validated_data)
        return Response(StaffSerializer(member).data)

    def perform_destroy(self, instance):
        delete_staff(instance, staff=self.staff)

    @action(detail=True, methods=["POST"], url_path="toggle-pricing")
    def pricing(self, request, pk=None):
        member = toggle_pricing(self.get_object(), staff=self.staff)
        return Response(StaffSerializer(member).data)

    @action(detail=True, methods=["GET"], url_path="custody")
    def custody(self, request, pk=None):
        wh = custody_warehouse(self.get_object())
        stocks = wh.stocks.select_related("product", "warehouse").filter(quantity__gt=0).order_by("product__name")
        return Response(StockSerializer(stocks, many=True).data)

    @action(detail=True, methods=["GET"], url_path="debts")
    def debts(self, request, pk=None):
        return Response(rep_debt_breakdown(self.get_object()))


class SupplierViewSet(DomainErrorsMixin, viewsets.ModelViewSet):
    permission_classes = [permissions.AllowAny]
    serializer_class = SupplierSerializer

    def get_queryset(self):
        return visible_suppliers(self.staff, self.request.query_params.get("agency"))

    def perform_destroy(self, instance):
        require_privileged(self.staff)
        instance.delete()


class CustomerViewSet(DomainErrorsMixin, viewsets.ModelViewSet):
    permission_classes = [permissions.AllowAny]
    serializer_class = CustomerSerializer
    filter_backends = [filters.SearchFilter]
    search_fields = ["name", "phone"]

    def get_queryset(self):
        return visible_customers(self.staff)


class ProductViewSet(DomainErrorsMixin, viewsets.ModelViewSet):
    """
    /api/products/
      - search=<name|barcode>
      - agency=<id>
      - ordering=name|-factory_price|...
    """
    permission_classes = [permissions.AllowAny]
    serializer_class = ProductSerializer
    queryset = Product.objects.select_related("agency", "supplier").order_by("name")
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ["name", "barcode"]
    ordering_fields = ["name", "factory_price", "wholesale_price", "retail_price"]

    def get_queryset(self):
        qs = super().get_queryset()
        agency = self.request.query_params.get("agency")
        return qs.filter(agency_id=agency) if agency else qs

    def perform_destroy(self, instance):
        delete_product(instance, staff=self.staff)


class StockViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [permissions.AllowAny]
    serializer_class = StockSerializer

    def get_queryset(self):
        qs = Stock.objects.select_related("product", "warehouse").order_by("warehouse__name", "product__name")
        wh = self.request.query_params.get("warehouse")
        return qs.filter(warehouse_id=wh) if wh else qs.filter(warehouse__is_custody=False)


class TransactionViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [permissions.AllowAny]
    serializer_class = TransactionSerializer

    def get_queryset(self):
        qs = (
            Transaction.objects.select_related("staff", "customer")
            .prefetch_related("items__product")
            .order_by("-created_at", "-id")
        )
        params = self.request.query_params
        for name in ("type", "agency", "warehouse", "customer"):
            value = params.get(name)
            if value:
                qs = qs.filter(**{name: value})
        return qs


# ============================================================
# Stock operations
# ============================================================
@api_view(["POST"])
def stock_set(request):
    ser = StockSetSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    try:
        stock = set_stock(staff=current_staff(request), **ser.validated_data)
    except TradingError as e:
        return bad_request(e)
    return Response({"warehouse": str(stock.warehouse_id), "product": stock.product_id,
                     "quantity": ser.validated_data["quantity"]})


@api_view(["POST"])
def stock_supply(request):
    ser = StockSupplySerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = dict(ser.validated_data)
    prices = {k: data.pop(k) for k in ("factory_price", "wholesale_price", "retail_price") if k in data}
    try:
        stock = supply_stock(staff=current_staff(request), update_base_price=bool(prices), **prices, **data)
    except TradingError as e:
        return bad_request(e)
    stock.refresh_from_db()
    return Response({"warehouse": str(stock.warehouse_id), "product": stock.product_id, "quantity": stock.quantity})


@api_view(["POST"])
def warehouse_audit(request):
    ser = WarehouseAuditSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    counts = [(c["product"], c["quantity"]) for c in ser.validated_data["counts"]]
    try:
        n = audit_warehouse(ser.validated_data["warehouse"], counts)
    except TradingError as e:
        return bad_request(e)
    return Response({"updated": n})


@api_view(["POST"])
def opening_stock(request):
    ser = OpeningStockSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    try:
        tx = record_opening_stock(staff=current_staff(request), **ser.validated_data)
    except TradingError as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


# ============================================================
# Sales representatives
# ============================================================
def _sale_lines(items):
    return [SaleLine(i["product"], i["quantity"], i.get("unit_price")) for i in items]


@api_view(["POST"])
def load_to_rep(request):
    ser = LoadToRepSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    lines = [LoadLine(i["product"], i["cartons"], i["units"]) for i in d["items"]]
    try:
        tx = load_to_custody(staff=current_staff(request), rep=d["rep"], warehouse=d["warehouse"],
                             lines=lines, note=d["note"])
    except TradingError as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
def custody_audit(request):
    ser = CustodyAuditSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    try:
        result = finalize_custody_audit(
            rep=d["rep"], counts=[(c["product"], c["quantity"]) for c in d["counts"]],
            payment_type=d["payment_type"], paid_amount=d.get("paid_amount"),
            return_to=d.get("return_to"), customer=d.get("customer"), note=d["note"],
        )
    except TradingError as e:
        return bad_request(e)
    return Response({
        "sale": TransactionSerializer(result.sale).data if result.sale else None,
        "total": result.total,
        "sold": [{"product": p.pk, "quantity": q} for p, q in result.sold],
        "returned": [{"product": p.pk, "quantity": q} for p, q in result.returned],
    })


@api_view(["POST"])
def direct_sale_view(request):
    ser = DirectSaleSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    try:
        tx = direct_sale(rep=d["rep"], customer=d["customer"], lines=_sale_lines(d["items"]),
                         payment_type=d["payment_type"], paid_amount=d.get("paid_amount"), note=d["note"])
    except TradingError as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


@api_view(["GET", "POST"])
def sales_sessions(request):
    """
    GET  /api/sales-sessions/?agency=<id>   manual sales visible to the caller
    POST /api/sales-sessions/                book a session without touching stock
    """
    if request.method == "GET":
        qs = sales_transactions(current_staff(request), request.query_params.get("agency"))[:200]
        return Response(TransactionSerializer(qs, many=True).data)

    ser = SalesSessionSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    try:
        tx = record_sales_session(rep=d["rep"], lines=_sale_lines(d["items"]), customer=d.get("customer"),
                                  payment_type=d["payment_type"], paid_amount=d.get("paid_amount"),
                                  created_at=d.get("created_at"), note=d["note"])
    except TradingError as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


@api_view(["PATCH"])
def sales_session_detail(request, pk):
    sale = get_object_or_404(Transaction, pk=pk)
    ser = SalesSessionUpdateSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = ser.validated_data
    lines = _sale_lines(d["items"]) if "items" in d else None
    try:
        sale = update_sales_session(sale, lines=lines, paid_amount=d.get("paid_amount"))
    except TradingError as e:
        return bad_request(e)
    return Response(TransactionSerializer(sale).data)


@api_view(["POST"])
def debt_collection(request):
    ser = CollectionSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    try:
        tx = record_debt_collection(staff=current_staff(request), **ser.validated_data)
    except TradingError as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


# ============================================================
# Reports
# ============================================================
@api_view(["GET"])
def inventory(request):
    return Response(inventory_report(request.query_params.get("warehouse")))


@api_view(["GET"])
def dashboard(request):
    return Response(dashboard_stats())
