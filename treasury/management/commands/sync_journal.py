from django.core.management.base import BaseCommand

from treasury.ledger import sync_journal


class Command(BaseCommand):
    help = "Rebuild the journal from sales, purchases, collections and account records."

    def handle(self, *args, **options):
        n = sync_journal()
        self.stdout.write(self.style.SUCCESS(f"journal rebuilt with {n} entries"))
