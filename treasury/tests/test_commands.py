from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase

from trading.models import Staff, Transaction
from trading.services import post_transaction
from trading.tests.factories import make_agency, make_staff
from treasury.models import AccountRecord, JournalEntry
from treasury.services import create_account_record


class CommandTests(TestCase):
    def setUp(self):
        self.agency = make_agency()
        admin = make_staff(Staff.ADMIN)
        post_transaction(type=Transaction.SALE, total_amount=80, paid_amount=80, remaining_amount=0,
                         agency=self.agency)
        create_account_record(staff=admin, type=AccountRecord.EXPENSE, amount=10, description="tea")

    def run_command(self, *args):
        out = StringIO()
        call_command(*args, stdout=out)
        return out.getvalue()

    def test_sync_journal(self):
        out = self.run_command("sync_journal")
        self.assertIn("2 entries", out)
        self.assertEqual(JournalEntry.objects.count(), 2)

    def test_audit_reports_every_safe(self):
        out = self.run_command("audit_treasury")
        self.assertIn("[ALL]", out)
        self.assertIn("[GENERAL]", out)
        self.assertIn(f"[{self.agency.pk}]", out)

    def test_strict_audit_fails_on_unsynced_journal(self):
        with self.assertRaises(CommandError):
            self.run_command("audit_treasury", "--strict", "--agency", str(self.agency.pk))
        self.run_command("sync_journal")
        out = self.run_command("audit_treasury", "--strict")
        self.assertNotIn("gap=", out)

    def test_bad_scope(self):
        with self.assertRaises(CommandError):
            self.run_command("audit_treasury", "--agency", "somewhere")
