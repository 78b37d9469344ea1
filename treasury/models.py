from decimal import Decimal

from django.db import models
from django.utils import timezone

from trading.models import MONEY, Stamped


class AccountRecord(Stamped):
    INCOME  = "INCOME"
    EXPENSE = "EXPENSE"
    TYPE_CHOICES = [(INCOME, "Income"), (EXPENSE, "Expense")]

    id = models.AutoField(primary_key=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.DecimalField(**MONEY)
    description = models.CharField(max_length=255)
    category = models.CharField(max_length=100, blank=True, default="")

    # null agency = general safe
    agency = models.ForeignKey("trading.Agency", on_delete=models.CASCADE, null=True, blank=True,
                               related_name="account_records")
    staff = models.ForeignKey("trading.Staff", on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="account_records")
    customer = models.ForeignKey("trading.Customer", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="account_records")
    supplier = models.ForeignKey("trading.Supplier", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="account_records")
    image = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "account_record"
        indexes = [
            models.Index(fields=["type", "created_at"], name="idx_rec_type_date"),
            models.Index(fields=["agency"], name="idx_rec_agency"),
        ]

    def __str__(self):
        return f"{self.type} {self.amount} {self.description}"

    @property
    def signed_amount(self):
        return self.amount if self.type == self.INCOME else -self.amount


class JournalEntry(models.Model):
    DEBIT  = "DEBIT"
    CREDIT = "CREDIT"
    SIDE_CHOICES = [(DEBIT, "Debit"), (CREDIT, "Credit")]

    # reference_type values
    REF_SALE       = "SALE"
    REF_PURCHASE   = "PURCHASE"
    REF_COLLECTION = "COLLECTION"
    REF_RECORD     = "ACCOUNT_RECORD"

    id = models.AutoField(primary_key=True)
    amount = models.DecimalField(**MONEY)
    side = models.CharField(max_length=6, choices=SIDE_CHOICES)
    description = models.CharField(max_length=255, blank=True, default="")
    reference_type = models.CharField(max_length=20)
    reference_id = models.IntegerField(null=True, blank=True)

    agency = models.ForeignKey("trading.Agency", on_delete=models.CASCADE, null=True, blank=True,
                               related_name="journal_entries")
    staff = models.ForeignKey("trading.Staff", on_delete=models.SET_NULL, null=True, blank=True,
                              related_name="journal_entries")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "journal_entry"
        verbose_name_plural = "journal entries"
        indexes = [models.Index(fields=["reference_type", "reference_id"], name="idx_journal_ref")]

    def __str__(self):
        return f"{self.side} {self.amount} ({self.reference_type}#{self.reference_id})"

    @property
    def signed_amount(self):
        return self.amount if self.side == self.DEBIT else -self.amount


class Bank(Stamped):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=255)
    account_number = models.CharField(max_length=100, blank=True, default="")
    balance = models.DecimalField(**MONEY, default=Decimal("0"))
    agency = models.ForeignKey("trading.Agency", on_delete=models.SET_NULL, null=True, blank=True,
                               related_name="banks")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "bank"

    def __str__(self):
        return self.name


class BankTransaction(models.Model):
    DEPOSIT    = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TYPE_CHOICES = [(DEPOSIT, "Deposit"), (WITHDRAWAL, "Withdrawal")]

    id = models.AutoField(primary_key=True)
    bank = models.ForeignKey("Bank", on_delete=models.CASCADE, related_name="transactions")
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.DecimalField(**MONEY)
    description = models.CharField(max_length=255, blank=True, default="")
    image = models.TextField(blank=True, null=True)
    date = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "bank_transaction"
        indexes = [models.Index(fields=["bank", "date"], name="idx_banktx_bank_date")]

    def __str__(self):
        return f"{self.type} {self.amount} @ {self.bank_id}"

    @property
    def signed_amount(self):
        return self.amount if self.type == self.DEPOSIT else -self.amount


class Loan(Stamped):
    ACTIVE = "ACTIVE"
    PAID   = "PAID"
    STATUS_CHOICES = [(ACTIVE, "Active"), (PAID, "Paid")]

    id = models.AutoField(primary_key=True)
    bank = models.ForeignKey("Bank", on_delete=models.CASCADE, related_name="loans")
    principal = models.DecimalField(**MONEY)
    interest_rate = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("0"))
    interest = models.DecimalField(**MONEY, default=Decimal("0"))
    total_amount = models.DecimalField(**MONEY)
    months = models.PositiveIntegerField()
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=ACTIVE)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "loan"
        indexes = [models.Index(fields=["status"], name="idx_loan_status")]

    def __str__(self):
        return f"Loan #{self.pk} {self.total_amount} ({self.bank_id})"


class Installment(models.Model):
    PENDING = "PENDING"
    PAID    = "PAID"
    OVERDUE = "OVERDUE"
    STATUS_CHOICES = [(PENDING, "Pending"), (PAID, "Paid"), (OVERDUE, "Overdue")]
    OPEN = (PENDING, OVERDUE)

    id = models.AutoField(primary_key=True)
    loan = models.ForeignKey("Loan", on_delete=models.CASCADE, related_name="installments")
    number = models.PositiveIntegerField()
    amount = models.DecimalField(**MONEY)
    due_date = models.DateField()
    paid_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)

    class Meta:
        db_table = "installment"
        ordering = ["loan_id", "number"]
        constraints = [
            models.UniqueConstraint(fields=["loan", "number"], name="uq_installment_loan_number"),
        ]
        indexes = [models.Index(fields=["status", "due_date"], name="idx_inst_status_due")]

    def __str__(self):
        return f"#{self.number} {self.amount} due {self.due_date}"
