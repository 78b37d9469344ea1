from django.core.management.base import BaseCommand, CommandError

from trading.models import Agency
from treasury.ledger import ALL, GENERAL_SAFE, Scope, audit_treasury
from treasury.services import TreasuryError


class Command(BaseCommand):
    help = "Compare the treasury walk, the aggregate sums and the journal for each safe."

    def add_arguments(self, parser):
        parser.add_argument("--agency", help="ALL, GENERAL or an agency id; default checks every safe")
        parser.add_argument("--strict", action="store_true", help="exit non-zero when a safe drifts")

    def handle(self, *args, **options):
        if options["agency"]:
            try:
                scopes = [Scope.parse(options["agency"])]
            except TreasuryError as e:
                raise CommandError(str(e))
        else:
            scopes = [ALL, GENERAL_SAFE] + [Scope(agency_id=pk) for pk in Agency.objects.values_list("pk", flat=True)]

        drifted = 0
        for scope in scopes:
            audit = audit_treasury(scope)
            line = (f"[{scope}] entries={audit.entries} walk={audit.walk_balance} "
                    f"aggregates={audit.aggregate_balance} journal={audit.journal_balance}")
            if audit.consistent and not audit.journal_gap:
                self.stdout.write(self.style.SUCCESS(line))
                continue
            drifted += 1
            self.stdout.write(self.style.WARNING(f"{line} gap={audit.gap} journal_gap={audit.journal_gap}"))

        if drifted and options["strict"]:
            raise CommandError(f"{drifted} safe(s) out of balance")
