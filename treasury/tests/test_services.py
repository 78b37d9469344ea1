from decimal import Decimal

from django.test import TestCase

from trading.models import Staff, Transaction
from trading.services import stock_level
from trading.tests.factories import make_agency, make_product, make_staff, make_supplier, make_warehouse
from treasury.ledger import Scope, treasury_balance
from treasury.models import AccountRecord, JournalEntry
from treasury.services import (
    PurchaseLine, TreasuryError, account_records, agency_purchase_accounts, create_account_record,
    create_purchase_invoice, delete_account_record, purchase_invoices, record_agency_payment,
    update_account_record,
)


class AccountRecordTests(TestCase):
    def setUp(self):
        self.admin = make_staff(Staff.ADMIN)
        self.agency = make_agency()

    def create(self, **kw):
        fields = {"staff": self.admin, "type": AccountRecord.INCOME, "amount": 100, "description": "cash in"}
        fields.update(kw)
        return create_account_record(**fields)

    def test_general_safe_has_no_agency(self):
        for raw in ("GENERAL", "", None):
            self.assertIsNone(self.create(agency=raw).agency_id)

    def test_journal_entry_follows_record(self):
        rec = self.create(type=AccountRecord.EXPENSE, amount="45.50", agency=self.agency.pk)
        entry = JournalEntry.objects.get(reference_type=JournalEntry.REF_RECORD, reference_id=rec.pk)
        self.assertEqual((entry.side, entry.amount, entry.agency_id),
                         (JournalEntry.CREDIT, Decimal("45.50"), self.agency.pk))

        update_account_record(rec, amount=60, description="rent")
        entry.refresh_from_db()
        self.assertEqual((entry.amount, entry.description), (Decimal("60.00"), "rent"))

        delete_account_record(rec)
        self.assertFalse(JournalEntry.objects.exists())
        self.assertFalse(AccountRecord.objects.exists())

    def test_validation(self):
        with self.assertRaises(TreasuryError):
            self.create(amount=0)
        with self.assertRaises(TreasuryError):
            self.create(description="")
        with self.assertRaises(TreasuryError):
            self.create(type="GIFT")
        with self.assertRaises(TreasuryError):
            self.create(agency=987654)

    def test_listing_by_type_and_scope(self):
        self.create(agency=self.agency.pk)
        self.create(type=AccountRecord.EXPENSE, amount=5)
        self.assertEqual(account_records(AccountRecord.INCOME).count(), 1)
        self.assertEqual(account_records(scope=Scope(agency_id=self.agency.pk)).count(), 1)
        self.assertEqual(account_records().count(), 2)


class PurchaseTests(TestCase):
    def setUp(self):
        self.admin = make_staff(Staff.ADMIN)
        self.agency = make_agency()
        self.wh = make_warehouse(self.agency)
        self.supplier = make_supplier(self.agency)
        self.p1, self.p2 = make_product(self.agency), make_product(self.agency)

    def test_invoice(self):
        tx = create_purchase_invoice(
            staff=self.admin, warehouse=self.wh, supplier=self.supplier, paid_amount=100,
            items=[PurchaseLine(self.p1, 10, Decimal("6")), PurchaseLine(self.p2, 2, Decimal("55.25"))],
        )
        self.assertEqual(tx.total_amount, Decimal("170.50"))
        self.assertEqual(tx.remaining_amount, Decimal("70.50"))
        self.assertEqual(tx.payment_type, Transaction.PARTIAL)
        self.assertEqual(tx.agency_id, self.agency.pk)
        self.assertEqual(stock_level(self.wh, self.p1), 10)
        self.assertEqual(stock_level(self.wh, self.p2), 2)

        entry = JournalEntry.objects.get(reference_type=JournalEntry.REF_PURCHASE, reference_id=tx.pk)
        self.assertEqual((entry.side, entry.amount), (JournalEntry.CREDIT, Decimal("100.00")))
        self.assertEqual(treasury_balance(Scope(agency_id=self.agency.pk)), Decimal("-100.00"))
        self.assertEqual(list(purchase_invoices(self.agency.pk)), [tx])

    def test_credit_invoice_has_no_journal_entry(self):
        tx = create_purchase_invoice(staff=self.admin, warehouse=self.wh, items=[PurchaseLine(self.p1, 1, 6)])
        self.assertEqual(tx.payment_type, Transaction.CREDIT)
        self.assertFalse(JournalEntry.objects.exists())

    def test_needs_items(self):
        with self.assertRaises(TreasuryError):
            create_purchase_invoice(staff=self.admin, warehouse=self.wh, items=[])

    def test_bad_line_rolls_back(self):
        with self.assertRaises(TreasuryError):
            create_purchase_invoice(staff=self.admin, warehouse=self.wh,
                                    items=[PurchaseLine(self.p1, 3, 6), PurchaseLine(self.p2, 0, 6)])
        self.assertEqual(stock_level(self.wh, self.p1), 0)

    def test_agency_account(self):
        create_purchase_invoice(staff=self.admin, warehouse=self.wh, items=[PurchaseLine(self.p1, 10, 6)])
        pay = record_agency_payment(staff=self.admin, agency=self.agency, amount=25)
        self.assertEqual((pay.total_amount, pay.paid_amount, pay.remaining_amount),
                         (0, Decimal("25.00"), Decimal("-25.00")))

        (row,) = agency_purchase_accounts([self.agency.pk])
        self.assertEqual((row["total_purchases"], row["total_paid"], row["remaining"]),
                         (Decimal("60.00"), Decimal("25.00"), Decimal("35.00")))
        self.assertEqual(len(row["transactions"]), 2)
        # supplier payments stay out of the safe
        self.assertEqual(treasury_balance(Scope(agency_id=self.agency.pk)), 0)

    def test_agency_payment_must_be_positive(self):
        with self.assertRaises(TreasuryError):
            record_agency_payment(staff=self.admin, agency=self.agency, amount=-5)
