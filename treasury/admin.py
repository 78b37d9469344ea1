from django.contrib import admin
from .models import AccountRecord, Bank, BankTransaction, Installment, JournalEntry, Loan


@admin.register(AccountRecord)
class AccountRecordAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "amount", "category", "agency", "created_at")
    list_filter = ("type", "category")
    search_fields = ("description",)


@admin.register(JournalEntry)
class JournalEntryAdmin(admin.ModelAdmin):
    list_display = ("id", "side", "amount", "reference_type", "reference_id", "agency", "created_at")
    list_filter = ("side", "reference_type")


@admin.register(Bank)
class BankAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "account_number", "balance", "agency")
    # balance only moves through bank transactions
    readonly_fields = ("balance",)


class ReadOnlyMixin:
    # bank movements and installments only change through treasury.banks
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(BankTransaction)
class BankTransactionAdmin(ReadOnlyMixin, admin.ModelAdmin):
    list_display = ("id", "bank", "type", "amount", "date")
    list_filter = ("type", "bank")


class InstallmentInline(ReadOnlyMixin, admin.TabularInline):
    model = Installment
    extra = 0


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ("id", "bank", "principal", "total_amount", "months", "status", "start_date")
    list_filter = ("status",)
    inlines = [InstallmentInline]
