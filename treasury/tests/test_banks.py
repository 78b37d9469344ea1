from datetime import date
from decimal import Decimal

from django.test import TestCase

from trading.models import Staff
from trading.tests.factories import make_agency, make_staff
from treasury.banks import (
    create_bank, create_bank_transaction, create_loan, deposit_from_safe, loan_remaining,
    mark_overdue_installments, pay_installment, reconcile_bank, upcoming_installments, visible_banks,
)
from treasury.ledger import GENERAL_SAFE, treasury_balance
from treasury.models import AccountRecord, Bank, BankTransaction, Installment, Loan
from treasury.services import BankError, LoanError, create_account_record


class BankLedgerTests(TestCase):
    def setUp(self):
        self.bank = create_bank(name="City Bank", opening_balance=1000)

    def test_opening_balance_is_a_deposit(self):
        self.assertEqual(self.bank.balance, Decimal("1000.00"))
        row = self.bank.transactions.get()
        self.assertEqual((row.type, row.amount), (BankTransaction.DEPOSIT, Decimal("1000.00")))

    def test_balance_after_several_movements(self):
        create_bank_transaction(bank=self.bank, type=BankTransaction.DEPOSIT, amount=200)
        create_bank_transaction(bank=self.bank, type=BankTransaction.WITHDRAWAL, amount=50)
        create_bank_transaction(bank=self.bank, type=BankTransaction.WITHDRAWAL, amount="25.50")
        self.bank.refresh_from_db()
        self.assertEqual(self.bank.balance, Decimal("1124.50"))
        rec = reconcile_bank(self.bank)
        self.assertTrue(rec.consistent)
        self.assertEqual(rec.computed, Decimal("1124.50"))

    def test_overdraw_is_refused(self):
        with self.assertRaises(BankError):
            create_bank_transaction(bank=self.bank, type=BankTransaction.WITHDRAWAL, amount="1000.01")
        self.bank.refresh_from_db()
        self.assertEqual(self.bank.balance, Decimal("1000.00"))
        self.assertEqual(self.bank.transactions.count(), 1)

    def test_amount_must_be_positive(self):
        with self.assertRaises(BankError):
            create_bank_transaction(bank=self.bank, type=BankTransaction.DEPOSIT, amount=0)

    def test_reconcile_flags_drift(self):
        Bank.objects.filter(pk=self.bank.pk).update(balance=Decimal("990"))
        with self.assertLogs("treasury.banks", level="WARNING"):
            rec = reconcile_bank(self.bank)
        self.assertFalse(rec.consistent)
        self.assertEqual(rec.difference, Decimal("-10.00"))

    def test_deposit_from_safe(self):
        admin = make_staff(Staff.ADMIN)
        create_account_record(staff=admin, type=AccountRecord.INCOME, amount=300, description="capital")
        deposit_from_safe(staff=admin, bank=self.bank, amount=120)
        self.bank.refresh_from_db()
        self.assertEqual(self.bank.balance, Decimal("1120.00"))
        self.assertEqual(treasury_balance(GENERAL_SAFE), Decimal("180.00"))
        self.assertTrue(AccountRecord.objects.filter(type=AccountRecord.EXPENSE, agency=None).exists())

    def test_restricted_staff_see_own_agency_banks(self):
        a = make_agency()
        mine = create_bank(name="Agency bank", agency=a)
        clerk = make_staff(Staff.ACCOUNTANT, agency=a)
        self.assertEqual(list(visible_banks(clerk)), [mine])
        self.assertEqual(visible_banks(make_staff(Staff.ADMIN)).count(), 2)


class LoanTests(TestCase):
    def setUp(self):
        self.bank = create_bank(name="Loan Bank", opening_balance=500)
        self.loan = create_loan(bank=self.bank, principal=1200, interest_rate=10, months=12,
                                start_date=date(2024, 1, 31))

    def test_creation(self):
        self.bank.refresh_from_db()
        self.assertEqual(self.bank.balance, Decimal("1700.00"))
        self.assertEqual(self.loan.total_amount, Decimal("1320.00"))
        self.assertEqual(self.loan.status, Loan.ACTIVE)
        self.assertEqual(self.loan.end_date, date(2025, 1, 31))
        installments = list(self.loan.installments.all())
        self.assertEqual(len(installments), 12)
        self.assertEqual(sum(i.amount for i in installments), self.loan.total_amount)
        self.assertEqual(installments[0].due_date, date(2024, 2, 29))
        self.assertTrue(all(i.status == Installment.PENDING for i in installments))

    def test_bad_terms(self):
        with self.assertRaises(LoanError):
            create_loan(bank=self.bank, principal=1000, interest_rate=5, months=0, start_date=date(2024, 1, 1))

    def test_pay_installment(self):
        first = self.loan.installments.first()
        paid = pay_installment(first.pk, today=date(2024, 2, 28))
        self.assertEqual((paid.status, paid.paid_date), (Installment.PAID, date(2024, 2, 28)))
        self.bank.refresh_from_db()
        self.assertEqual(self.bank.balance, Decimal("1590.00"))
        self.assertEqual(loan_remaining(self.loan), Decimal("1210.00"))
        with self.assertRaises(LoanError):
            pay_installment(first.pk)

    def test_unknown_installment(self):
        with self.assertRaises(LoanError):
            pay_installment(999999)

    def test_paying_everything_closes_the_loan(self):
        for inst in self.loan.installments.all():
            pay_installment(inst.pk, today=date(2025, 2, 1))
        self.loan.refresh_from_db()
        self.assertEqual(self.loan.status, Loan.PAID)
        self.assertEqual(self.loan.end_date, date(2025, 2, 1))
        self.assertEqual(loan_remaining(self.loan), 0)
        self.assertTrue(reconcile_bank(self.bank).consistent)

    def test_installment_larger_than_balance(self):
        create_bank_transaction(bank=self.bank, type=BankTransaction.WITHDRAWAL, amount=1650)
        inst = self.loan.installments.first()
        with self.assertRaises(BankError):
            pay_installment(inst.pk)
        inst.refresh_from_db()
        self.assertEqual(inst.status, Installment.PENDING)

    def test_mark_overdue_and_upcoming(self):
        self.assertEqual(mark_overdue_installments(today=date(2024, 4, 1)), 2)
        self.assertEqual(self.loan.installments.filter(status=Installment.OVERDUE).count(), 2)

        due = list(upcoming_installments(today=date(2024, 4, 25), days=7))
        self.assertEqual([i.number for i in due], [1, 2, 3])
