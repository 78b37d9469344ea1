from django.contrib import admin
from .models import Agency, Customer, Product, Staff, Stock, Supplier, Transaction, TransactionItem, Warehouse


@admin.register(Agency)
class AgencyAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_at")
    search_fields = ("name",)


@admin.register(Staff)
class StaffAdmin(admin.ModelAdmin):
    list_display = ("username", "name", "role", "agency", "pricing_type")
    list_filter = ("role", "pricing_type")
    search_fields = ("username", "name")
    exclude = ("password",)


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ("name", "agency", "is_custody")
    list_filter = ("is_custody",)


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "phone", "agency")
    search_fields = ("name", "phone")


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "phone", "agency", "representative")
    search_fields = ("name", "phone")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "barcode", "agency", "factory_price", "retail_price", "has_supplier")
    search_fields = ("name", "barcode")

    def has_supplier(self, obj):
        return obj.supplier_id is not None
    has_supplier.boolean = True


@admin.register(Stock)
class StockAdmin(admin.ModelAdmin):
    list_display = ("warehouse", "product", "quantity")
    list_filter = ("warehouse",)


class TransactionItemInline(admin.TabularInline):
    model = TransactionItem
    extra = 0


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "source", "total_amount", "paid_amount", "remaining_amount", "agency", "created_at")
    list_filter = ("type", "source", "payment_type")
    inlines = [TransactionItemInline]
