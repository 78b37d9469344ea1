import time
import uuid
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

MONEY = {"max_digits": 14, "decimal_places": 2}


class Stamped(models.Model):
    date_created = models.BigIntegerField(editable=False, null=True, blank=True)
    last_modified = models.BigIntegerField(editable=False, null=True, blank=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        # always use current UTC time in seconds
        now = int(time.time())
        self.last_modified = now
        if not self.date_created:
            self.date_created = now
        return super().save(*args, **kwargs)


class Agency(Stamped):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=255)
    image = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "agency"
        indexes = [models.Index(fields=["name"], name="idx_agency_name")]

    def __str__(self):
        return self.name


class Staff(Stamped):
    ADMIN                = "ADMIN"
    MANAGER              = "MANAGER"
    ACCOUNTANT           = "ACCOUNTANT"
    WAREHOUSE_KEEPER     = "WAREHOUSE_KEEPER"
    SALES_REPRESENTATIVE = "SALES_REPRESENTATIVE"
    SALES_RECORDER       = "SALES_RECORDER"
    ROLE_CHOICES = [
        (ADMIN,                "Admin"),
        (MANAGER,              "Manager"),
        (ACCOUNTANT,           "Accountant"),
        (WAREHOUSE_KEEPER,     "Warehouse keeper"),
        (SALES_REPRESENTATIVE, "Sales representative"),
        (SALES_RECORDER,       "Sales recorder"),
    ]
    PRIVILEGED_ROLES = (ADMIN, MANAGER)

    WHOLESALE = "WHOLESALE"
    RETAIL    = "RETAIL"
    PRICING_CHOICES = [(WHOLESALE, "Wholesale"), (RETAIL, "Retail")]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = models.CharField(max_length=150, unique=True)
    password = models.CharField(max_length=128)
    name = models.CharField(max_length=255, blank=True, default="")
    role = models.CharField(max_length=32, choices=ROLE_CHOICES)

    # primary agency + every agency the member works for
    agency = models.ForeignKey("Agency", on_delete=models.SET_NULL, null=True, blank=True,
                               related_name="primary_staff")
    agencies = models.ManyToManyField("Agency", blank=True, related_name="staff")
    warehouse = models.ForeignKey("Warehouse", on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name="keepers")

    pricing_type = models.CharField(max_length=16, choices=PRICING_CHOICES, default=RETAIL)
    image = models.TextField(blank=True, null=True)

    class Meta:
        db_table = "staff"
        indexes = [
            models.Index(fields=["role"], name="idx_staff_role"),
            models.Index(fields=["agency"], name="idx_staff_agency"),
        ]

    def __str__(self):
        return self.name or self.username

    def set_password(self, raw_password):
        self.password = make_password(raw_password)

    @property
    def is_privileged(self):
        return self.role in self.PRIVILEGED_ROLES

    @property
    def is_admin(self):
        return self.role == self.ADMIN


class Warehouse(Stamped):
    CUSTODY_PREFIX = "Rep custody: "

    # a sales representative's custody warehouse reuses the representative's id
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    agency = models.ForeignKey("Agency", on_delete=models.CASCADE, related_name="warehouses")
    is_custody = models.BooleanField(default=False)

    class Meta:
        db_table = "warehouse"
        indexes = [
            models.Index(fields=["agency"], name="idx_wh_agency"),
            models.Index(fields=["is_custody"], name="idx_wh_custody"),
        ]

    def __str__(self):
        return self.name


class Supplier(Stamped):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=50, blank=True, null=True)
    address = models.CharField(max_length=255, blank=True, null=True)
    agency = models.ForeignKey("Agency", on_delete=models.CASCADE, related_name="suppliers")

    class Meta:
        db_table = "supplier"
        indexes = [models.Index(fields=["name"], name="idx_supplier_name")]

    def __str__(self):
        return self.name


class Product(Stamped):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    barcode = models.CharField(max_length=100, unique=True, blank=True, null=True)

    # carton prices
    factory_price   = models.DecimalField(**MONEY, default=Decimal("0"))
    wholesale_price = models.DecimalField(**MONEY, default=Decimal("0"))
    retail_price    = models.DecimalField(**MONEY, default=Decimal("0"))

    # piece prices
    units_per_carton     = models.PositiveIntegerField(default=1)
    unit_factory_price   = models.DecimalField(**MONEY, default=Decimal("0"))
    unit_wholesale_price = models.DecimalField(**MONEY, default=Decimal("0"))
    unit_retail_price    = models.DecimalField(**MONEY, default=Decimal("0"))

    agency = models.ForeignKey("Agency", on_delete=models.CASCADE, related_name="products")
    supplier = models.ForeignKey("Supplier", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="products")
    image = models.TextField(blank=True, null=True)

    class Meta:
        db_table = "product"
        indexes = [
            models.Index(fields=["agency"], name="idx_product_agency"),
            models.Index(fields=["name"], name="idx_product_name"),
        ]

    def __str__(self):
        return self.name

    def prices_for(self, pricing_type):
        """(carton price, piece price) for a representative's pricing type."""
        if pricing_type == Staff.WHOLESALE:
            return self.wholesale_price, self.unit_wholesale_price
        return self.retail_price, self.unit_retail_price


class Stock(models.Model):
    id = models.AutoField(primary_key=True)
    warehouse = models.ForeignKey("Warehouse", on_delete=models.CASCADE, related_name="stocks")
    product = models.ForeignKey("Product", on_delete=models.CASCADE, related_name="stocks")
    quantity = models.IntegerField(default=0)

    class Meta:
        db_table = "stock"
        constraints = [
            models.UniqueConstraint(fields=["warehouse", "product"], name="uq_stock_warehouse_product"),
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name="ck_stock_qty_nonnegative"),
        ]

    def __str__(self):
        return f"{self.product_id}@{self.warehouse_id}: {self.quantity}"


class Customer(Stamped):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=50, blank=True, null=True)
    address = models.CharField(max_length=255, blank=True, null=True)
    agency = models.ForeignKey("Agency", on_delete=models.CASCADE, related_name="customers")
    representative = models.ForeignKey("Staff", on_delete=models.SET_NULL, null=True, blank=True,
                                       related_name="customers")

    class Meta:
        db_table = "customer"
        indexes = [
            models.Index(fields=["agency"], name="idx_customer_agency"),
            models.Index(fields=["representative"], name="idx_customer_rep"),
        ]

    def __str__(self):
        return self.name


class Transaction(Stamped):
    SALE           = "SALE"
    PURCHASE       = "PURCHASE"
    RETURN         = "RETURN"
    COLLECTION     = "COLLECTION"
    SUPPLY_PAYMENT = "SUPPLY_PAYMENT"
    INITIAL_STOCK  = "INITIAL_STOCK"
    TYPE_CHOICES = [
        (SALE,           "Sale"),
        (PURCHASE,       "Purchase"),
        (RETURN,         "Return"),
        (COLLECTION,     "Debt collection"),
        (SUPPLY_PAYMENT, "Supply payment"),
        (INITIAL_STOCK,  "Opening stock"),
    ]

    CASH    = "CASH"
    CREDIT  = "CREDIT"
    PARTIAL = "PARTIAL"
    PAYMENT_CHOICES = [(CASH, "Cash"), (CREDIT, "Credit"), (PARTIAL, "Partial")]

    # where a row came from; only MANUAL sales are revenue
    MANUAL           = "MANUAL"
    CUSTODY_LOAD     = "CUSTODY_LOAD"
    CUSTODY_RETURN   = "CUSTODY_RETURN"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
    SOURCE_CHOICES = [
        (MANUAL,           "Manual"),
        (CUSTODY_LOAD,     "Load to representative"),
        (CUSTODY_RETURN,   "Return from representative"),
        (STOCK_ADJUSTMENT, "Stock adjustment"),
    ]

    id = models.AutoField(primary_key=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default=MANUAL)

    total_amount     = models.DecimalField(**MONEY, default=Decimal("0"))
    paid_amount      = models.DecimalField(**MONEY, default=Decimal("0"))
    remaining_amount = models.DecimalField(**MONEY, default=Decimal("0"))
    payment_type     = models.CharField(max_length=10, choices=PAYMENT_CHOICES, default=CASH)

    staff = models.ForeignKey("Staff", on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="transactions")
    agency = models.ForeignKey("Agency", on_delete=models.CASCADE, related_name="transactions")
    warehouse = models.ForeignKey("Warehouse", on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name="transactions")
    customer = models.ForeignKey("Customer", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="transactions")
    supplier = models.ForeignKey("Supplier", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="transactions")

    note = models.TextField(blank=True, default="")
    image = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "transaction"
        indexes = [
            models.Index(fields=["type", "created_at"], name="idx_tx_type_date"),
            models.Index(fields=["agency", "type"], name="idx_tx_agency_type"),
            models.Index(fields=["customer"], name="idx_tx_customer"),
            models.Index(fields=["warehouse"], name="idx_tx_warehouse"),
        ]

    def __str__(self):
        return f"{self.type} #{self.pk} {self.total_amount}"

    def clean(self):
        if self.paid_amount + self.remaining_amount != self.total_amount:
            raise ValidationError(
                f"paid ({self.paid_amount}) + remaining ({self.remaining_amount}) "
                f"must equal total ({self.total_amount})"
            )


class TransactionItem(models.Model):
    id = models.AutoField(primary_key=True)
    transaction = models.ForeignKey("Transaction", on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("Product", on_delete=models.RESTRICT, related_name="transaction_items")
    quantity = models.IntegerField()
    price = models.DecimalField(**MONEY, default=Decimal("0"))   # unit price
    cost  = models.DecimalField(**MONEY, default=Decimal("0"))   # unit cost at the time

    class Meta:
        db_table = "transaction_item"

    @property
    def line_total(self):
        return self.price * self.quantity
