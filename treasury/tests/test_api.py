from datetime import date
from decimal import Decimal

from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from trading.models import Staff
from trading.tests.factories import make_agency, make_product, make_staff, make_warehouse
from treasury.banks import create_bank, create_loan
from treasury.models import AccountRecord, Bank, JournalEntry
from treasury.services import create_account_record


class TreasuryApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = make_staff(Staff.ADMIN)
        self.agency = make_agency("North")

    def post(self, url, data):
        return self.client.post(url, data, format="json")

    def test_account_record_lifecycle(self):
        resp = self.post("/api/account-records/", {
            "type": AccountRecord.INCOME, "amount": "250.00", "description": "capital", "agency": "GENERAL",
        })
        self.assertEqual(resp.status_code, 201, resp.content)
        pk = resp.json()["id"]
        self.assertIsNone(resp.json()["agency"])

        listed = self.client.get("/api/account-records/", {"agency": "GENERAL"}).json()
        self.assertEqual([r["id"] for r in listed["results"]], [pk])

        resp = self.client.patch(f"/api/account-records/{pk}/", {"amount": "300"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(JournalEntry.objects.get().amount, Decimal("300.00"))

        self.assertEqual(self.client.delete(f"/api/account-records/{pk}/").status_code, 204)
        self.assertFalse(JournalEntry.objects.exists())

    def test_account_record_rejects_unknown_agency(self):
        resp = self.post("/api/account-records/", {
            "type": AccountRecord.EXPENSE, "amount": "10", "description": "x", "agency": "424242",
        })
        self.assertEqual(resp.status_code, 400)
        self.assertIn("detail", resp.json())

    def test_treasury_balance_and_entries(self):
        create_account_record(staff=self.admin, type=AccountRecord.INCOME, amount=100, description="in")
        create_account_record(staff=self.admin, type=AccountRecord.EXPENSE, amount=30, description="out",
                              agency=self.agency.pk)

        body = self.client.get("/api/treasury/").json()
        self.assertEqual(Decimal(body["balance"]), Decimal("70.00"))
        self.assertEqual(len(body["entries"]), 2)

        body = self.client.get("/api/treasury/balance/", {"agency": "GENERAL"}).json()
        self.assertEqual((body["scope"], Decimal(body["balance"])), ("GENERAL", Decimal("100.00")))

        self.assertEqual(self.client.get("/api/treasury/", {"agency": "nowhere"}).status_code, 400)
        self.assertEqual(self.client.get("/api/treasury/", {"start": "not-a-date"}).status_code, 400)

    def test_audit_and_sync(self):
        create_account_record(staff=self.admin, type=AccountRecord.INCOME, amount=100, description="in")
        self.assertTrue(self.client.get("/api/treasury/audit/").json()["consistent"])
        self.assertEqual(self.post("/api/journal/sync/", {}).json(), {"entries": 1})

    def test_purchase_invoice(self):
        wh = make_warehouse(self.agency)
        product = make_product(self.agency)
        resp = self.post("/api/purchases/", {
            "warehouse": str(wh.pk), "paid_amount": "12",
            "items": [{"product": product.pk, "quantity": 3, "cost": "6"}],
        })
        self.assertEqual(resp.status_code, 201, resp.content)
        self.assertEqual(resp.json()["payment_type"], "PARTIAL")
        self.assertEqual(len(self.client.get("/api/purchases/").json()), 1)

        resp = self.post("/api/agency-accounts/payments/", {"agency": self.agency.pk, "amount": "6"})
        self.assertEqual(resp.status_code, 201)
        (row,) = self.client.get("/api/agency-accounts/").json()
        self.assertEqual(Decimal(row["remaining"]), Decimal("0.00"))

    def test_bank_flow(self):
        resp = self.post("/api/banks/", {"name": "City", "opening_balance": "100"})
        self.assertEqual(resp.status_code, 201, resp.content)
        pk = resp.json()["id"]

        resp = self.post(f"/api/banks/{pk}/transactions/", {"type": "WITHDRAWAL", "amount": "150"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("insufficient balance", resp.json()["detail"])

        resp = self.post(f"/api/banks/{pk}/loans/", {"principal": "300", "months": 3, "start_date": "2024-01-31"})
        self.assertEqual(resp.status_code, 201, resp.content)
        self.assertEqual(len(resp.json()["installments"]), 3)

        detail = self.client.get(f"/api/banks/{pk}/").json()
        self.assertEqual(Decimal(detail["balance"]), Decimal("400.00"))
        self.assertEqual(len(detail["transactions"]), 2)
        self.assertEqual(len(detail["loans"]), 1)
        self.assertTrue(self.client.get(f"/api/banks/{pk}/reconcile/").json()["consistent"])

    def test_deposit_from_safe(self):
        bank = create_bank(name="City")
        resp = self.post(f"/api/banks/{bank.pk}/deposit-from-safe/", {"amount": "40", "agency": self.agency.pk})
        self.assertEqual(resp.status_code, 201, resp.content)
        self.assertEqual(Bank.objects.get(pk=bank.pk).balance, Decimal("40.00"))
        self.assertTrue(AccountRecord.objects.filter(agency=self.agency, type=AccountRecord.EXPENSE).exists())

    def test_installments(self):
        bank = create_bank(name="City", opening_balance=1000)
        loan = create_loan(bank=bank, principal=300, interest_rate=0, months=3, start_date=date(2024, 1, 1))
        inst = loan.installments.first()

        resp = self.post(f"/api/installments/{inst.pk}/pay/", {})
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["status"], "PAID")
        self.assertEqual(self.post(f"/api/installments/{inst.pk}/pay/", {}).status_code, 400)

        self.assertEqual(self.post("/api/installments/mark-overdue/", {}).json(), {"updated": 2})
        self.assertEqual(len(self.client.get("/api/installments/upcoming/").json()), 2)

    def test_reports_answer(self):
        for url in ("profit-loss", "income-expenses", "bank-movements", "treasury-status",
                    "purchases", "loans", "financial-summary", "treasury-summary"):
            resp = self.client.get(f"/api/reports/{url}/", {"start": "2024-01-01", "end": "2024-12-31"})
            self.assertEqual(resp.status_code, 200, url)

    def test_restricted_staff_cannot_sync(self):
        clerk = make_staff(Staff.ACCOUNTANT, agency=self.agency)
        with override_settings(DEFAULT_STAFF_ID=str(clerk.pk)):
            self.assertEqual(self.post("/api/journal/sync/", {}).status_code, 403)
