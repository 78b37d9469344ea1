from datetime import date
from decimal import Decimal

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase

from treasury.admin import InstallmentInline
from treasury.banks import create_bank, create_loan, reconcile_bank
from treasury.models import BankTransaction, Installment, Loan


class BankAdminTests(TestCase):
    def setUp(self):
        self.root = get_user_model().objects.create_superuser("root", "root@example.com", "pw")
        self.client.force_login(self.root)
        self.bank = create_bank(name="City", opening_balance=100)

    def test_bank_transactions_cannot_be_added_through_admin(self):
        resp = self.client.post("/admin/treasury/banktransaction/add/", {
            "bank": self.bank.pk, "type": BankTransaction.DEPOSIT, "amount": "50",
        })
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.bank.transactions.count(), 1)
        self.assertTrue(reconcile_bank(self.bank).consistent)

    def test_bank_transactions_are_read_only(self):
        request = RequestFactory().get("/admin/")
        request.user = self.root
        model_admin = admin.site._registry[BankTransaction]
        tx = self.bank.transactions.get()
        self.assertFalse(model_admin.has_add_permission(request))
        self.assertFalse(model_admin.has_change_permission(request, tx))
        self.assertFalse(model_admin.has_delete_permission(request, tx))

        resp = self.client.post(f"/admin/treasury/banktransaction/{tx.pk}/delete/", {"post": "yes"})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.bank.transactions.count(), 1)

    def test_installments_are_read_only_on_loan(self):
        loan = create_loan(bank=self.bank, principal=300, interest_rate=0, months=3, start_date=date(2024, 1, 1))
        request = RequestFactory().get("/admin/")
        request.user = self.root
        inline = InstallmentInline(Loan, admin.site)
        self.assertFalse(inline.has_add_permission(request, loan))
        self.assertFalse(inline.has_change_permission(request, loan))
        self.assertFalse(inline.has_delete_permission(request, loan))
        total = sum((i.amount for i in Installment.objects.filter(loan=loan)), Decimal("0"))
        self.assertEqual(total, loan.total_amount)
