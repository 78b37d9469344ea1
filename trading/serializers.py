# trading/serializers.py

from rest_framework import serializers

from .models import Agency, Customer, Product, Staff, Stock, Supplier, Transaction, TransactionItem, Warehouse
from .services import TradingError, check_product_supplier


# ============ Entities ============
class AgencySerializer(serializers.ModelSerializer):
    class Meta:
        model = Agency
        fields = ["id", "name", "image", "created_at", "date_created", "last_modified"]
        read_only_fields = ["date_created", "last_modified"]


class WarehouseSerializer(serializers.ModelSerializer):
    agency_name = serializers.CharField(source="agency.name", read_only=True)

    class Meta:
        model = Warehouse
        fields = ["id", "name", "agency", "agency_name", "is_custody"]
        read_only_fields = ["is_custody"]


class StaffSerializer(serializers.ModelSerializer):
    agency_name = serializers.CharField(source="agency.name", read_only=True, default=None)

    class Meta:
        model = Staff
        fields = ["id", "username", "name", "role", "agency", "agency_name", "agencies",
                  "warehouse", "pricing_type", "image"]
        read_only_fields = ["agency"]


class StaffWriteSerializer(serializers.Serializer):
    username     = serializers.CharField(max_length=150)
    password     = serializers.CharField(write_only=True, required=False, allow_blank=True)
    name         = serializers.CharField(required=False, allow_blank=True, default="")
    role         = serializers.ChoiceField(choices=Staff.ROLE_CHOICES)
    agencies     = serializers.PrimaryKeyRelatedField(queryset=Agency.objects.all(), many=True, required=False)
    warehouse    = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all(), required=False, allow_null=True)
    pricing_type = serializers.ChoiceField(choices=Staff.PRICING_CHOICES, default=Staff.RETAIL)
    image        = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SupplierSerializer(serializers.ModelSerializer):
    agency_name = serializers.CharField(source="agency.name", read_only=True)

    class Meta:
        model = Supplier
        fields = ["id", "name", "phone", "address", "agency", "agency_name"]


class CustomerSerializer(serializers.ModelSerializer):
    agency_name = serializers.CharField(source="agency.name", read_only=True)
    representative = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.all())

    class Meta:
        model = Customer
        fields = ["id", "name", "phone", "address", "agency", "agency_name", "representative"]


class ProductSerializer(serializers.ModelSerializer):
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all())

    class Meta:
        model = Product
        fields = [
            "id", "name", "description", "barcode",
            "factory_price", "wholesale_price", "retail_price",
            "units_per_carton", "unit_factory_price", "unit_wholesale_price", "unit_retail_price",
            "agency", "supplier", "image", "last_modified", "date_created",
        ]
        read_only_fields = ["last_modified", "date_created"]

    def validate(self, attrs):
        agency = attrs.get("agency") or getattr(self.instance, "agency", None)
        supplier = attrs.get("supplier") or getattr(self.instance, "supplier", None)
        try:
            check_product_supplier(agency, supplier)
        except TradingError as e:
            raise serializers.ValidationError({"supplier": str(e)})
        if attrs.get("barcode") == "":
            attrs["barcode"] = None
        return attrs


class StockSerializer(serializers.ModelSerializer):
    product_name   = serializers.CharField(source="product.name", read_only=True)
    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)

    class Meta:
        model = Stock
        fields = ["id", "warehouse", "warehouse_name", "product", "product_name", "quantity"]


class TransactionItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = TransactionItem
        fields = ["id", "product", "product_name", "quantity", "price", "cost"]


class TransactionSerializer(serializers.ModelSerializer):
    items = TransactionItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True, default=None)
    staff_name    = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            "id", "type", "source", "total_amount", "paid_amount", "remaining_amount", "payment_type",
            "staff", "staff_name", "agency", "warehouse", "customer", "customer_name", "supplier",
            "note", "image", "created_at", "items",
        ]

    def get_staff_name(self, obj):
        return str(obj.staff) if obj.staff_id else None


# ============ Stock operations (input) ============
class StockSetSerializer(serializers.Serializer):
    warehouse         = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    product           = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity          = serializers.IntegerField(min_value=0)
    note              = serializers.CharField(required=False, allow_blank=True, default="")
    factory_price     = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    update_base_price = serializers.BooleanField(required=False, default=False)
    wholesale_price   = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    retail_price      = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)


class StockSupplySerializer(serializers.Serializer):
    warehouse       = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    product         = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    added           = serializers.IntegerField(min_value=1)
    note            = serializers.CharField(required=False, allow_blank=True, default="")
    factory_price   = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    wholesale_price = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    retail_price    = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)


class CountSerializer(serializers.Serializer):
    product  = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=0)


class WarehouseAuditSerializer(serializers.Serializer):
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    counts    = CountSerializer(many=True)


class OpeningStockSerializer(serializers.Serializer):
    warehouse  = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.all())
    product    = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity   = serializers.IntegerField(min_value=1)
    cost       = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    created_at = serializers.DateTimeField(required=False)
    note       = serializers.CharField(required=False, allow_blank=True, default="")


# ============ Sales (input) ============
class LoadLineSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    cartons = serializers.IntegerField(min_value=0, default=0)
    units   = serializers.IntegerField(min_value=0, default=0)


class LoadToRepSerializer(serializers.Serializer):
    rep       = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.filter(role=Staff.SALES_REPRESENTATIVE))
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_custody=False))
    items     = LoadLineSerializer(many=True)
    note      = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentSerializer(serializers.Serializer):
    payment_type = serializers.ChoiceField(choices=Transaction.PAYMENT_CHOICES, default=Transaction.CASH)
    paid_amount  = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("payment_type") == Transaction.PARTIAL and attrs.get("paid_amount") is None:
            raise serializers.ValidationError({"paid_amount": "required for a partial payment"})
        return attrs


class CustodyAuditSerializer(PaymentSerializer):
    rep       = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.filter(role=Staff.SALES_REPRESENTATIVE))
    counts    = CountSerializer(many=True)
    return_to = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_custody=False),
                                                   required=False, allow_null=True)
    customer  = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    note      = serializers.CharField(required=False, allow_blank=True, default="")


class SaleLineSerializer(serializers.Serializer):
    product    = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity   = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)


class DirectSaleSerializer(PaymentSerializer):
    rep      = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.filter(role=Staff.SALES_REPRESENTATIVE))
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    items    = SaleLineSerializer(many=True)
    note     = serializers.CharField(required=False, allow_blank=True, default="")


class SalesSessionSerializer(PaymentSerializer):
    rep        = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.all())
    customer   = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    items      = SaleLineSerializer(many=True)
    created_at = serializers.DateTimeField(required=False)
    note       = serializers.CharField(required=False, allow_blank=True, default="")


class SalesSessionUpdateSerializer(serializers.Serializer):
    items       = SaleLineSerializer(many=True, required=False)
    paid_amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)


class CollectionSerializer(serializers.Serializer):
    customer   = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    amount     = serializers.DecimalField(max_digits=14, decimal_places=2)
    rep        = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.all(), required=False, allow_null=True)
    note       = serializers.CharField(required=False, allow_blank=True, default="")
    created_at = serializers.DateTimeField(required=False)
