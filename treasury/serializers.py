# treasury/serializers.py

from rest_framework import serializers

from trading.models import Customer, Product, Supplier, Warehouse

from .models import AccountRecord, Bank, BankTransaction, Installment, Loan


# ============ Account records ============
class AccountRecordSerializer(serializers.ModelSerializer):
    agency_name = serializers.CharField(source="agency.name", read_only=True, default=None)

    class Meta:
        model = AccountRecord
        fields = ["id", "type", "amount", "description", "category", "agency", "agency_name",
                  "staff", "customer", "supplier", "image", "created_at"]
        read_only_fields = fields


class AccountRecordCreateSerializer(serializers.Serializer):
    type        = serializers.ChoiceField(choices=AccountRecord.TYPE_CHOICES)
    amount      = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    description = serializers.CharField(max_length=255)
    category    = serializers.CharField(required=False, allow_blank=True, default="")
    # "GENERAL", empty or an agency id
    agency      = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customer    = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    supplier    = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all(), required=False, allow_null=True)
    created_at  = serializers.DateTimeField(required=False)
    image       = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AccountRecordUpdateSerializer(serializers.Serializer):
    amount      = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    description = serializers.CharField(max_length=255, required=False)
    category    = serializers.CharField(required=False, allow_blank=True)


# ============ Purchases ============
class PurchaseItemSerializer(serializers.Serializer):
    product  = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    cost     = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)


class PurchaseInvoiceSerializer(serializers.Serializer):
    warehouse   = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_custody=False))
    items       = PurchaseItemSerializer(many=True, allow_empty=False)
    paid_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, default=0)
    supplier    = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all(), required=False, allow_null=True)
    note        = serializers.CharField(required=False, allow_blank=True, default="")
    created_at  = serializers.DateTimeField(required=False)
    image       = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AgencyPaymentSerializer(serializers.Serializer):
    agency   = serializers.IntegerField()
    amount   = serializers.DecimalField(max_digits=14, decimal_places=2)
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all(), required=False, allow_null=True)
    note     = serializers.CharField(required=False, allow_blank=True, default="")


# ============ Banks & loans ============
class BankTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = BankTransaction
        fields = ["id", "bank", "type", "amount", "description", "image", "date"]
        read_only_fields = ["bank", "date"]


class InstallmentSerializer(serializers.ModelSerializer):
    bank_name = serializers.CharField(source="loan.bank.name", read_only=True)

    class Meta:
        model = Installment
        fields = ["id", "loan", "number", "amount", "due_date", "paid_date", "status", "bank_name"]


class LoanSerializer(serializers.ModelSerializer):
    installments = InstallmentSerializer(many=True, read_only=True)

    class Meta:
        model = Loan
        fields = ["id", "bank", "principal", "interest_rate", "interest", "total_amount", "months",
                  "start_date", "end_date", "notes", "status", "created_at", "installments"]


class LoanCreateSerializer(serializers.Serializer):
    principal     = serializers.DecimalField(max_digits=14, decimal_places=2)
    interest_rate = serializers.DecimalField(max_digits=6, decimal_places=2, default=0)
    months        = serializers.IntegerField(min_value=1)
    start_date    = serializers.DateField()
    notes         = serializers.CharField(required=False, allow_blank=True, default="")


class BankSerializer(serializers.ModelSerializer):
    active_loans = serializers.IntegerField(read_only=True, default=0)
    agency_name  = serializers.CharField(source="agency.name", read_only=True, default=None)

    class Meta:
        model = Bank
        fields = ["id", "name", "account_number", "balance", "agency", "agency_name", "active_loans", "created_at"]
        read_only_fields = ["balance", "created_at"]


class BankCreateSerializer(serializers.ModelSerializer):
    opening_balance = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0, default=0)

    class Meta:
        model = Bank
        fields = ["name", "account_number", "agency", "opening_balance"]


class BankDetailSerializer(BankSerializer):
    transactions = serializers.SerializerMethodField()
    loans = LoanSerializer(many=True, read_only=True)

    class Meta(BankSerializer.Meta):
        fields = BankSerializer.Meta.fields + ["transactions", "loans"]

    def get_transactions(self, obj):
        rows = obj.transactions.order_by("-date", "-id")[:20]
        return BankTransactionSerializer(rows, many=True).data


class SafeDepositSerializer(serializers.Serializer):
    amount      = serializers.DecimalField(max_digits=14, decimal_places=2)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    agency      = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    image       = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PayInstallmentSerializer(serializers.Serializer):
    bank = serializers.PrimaryKeyRelatedField(queryset=Bank.objects.all(), required=False, allow_null=True)
