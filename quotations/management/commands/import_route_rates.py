import csv
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from quotations.services.audit import log_admin_action
from quotations.services.rate_table import parse_rate_sheet_rows, replace_route_rate


class Command(BaseCommand):
    help = "Import per-kg route rates from a rate sheet CSV export."

    def add_arguments(self, parser):
        parser.add_argument("csv_path", type=Path)
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Parse and report the rows without saving them.",
        )

    def handle(self, *args, csv_path: Path, dry_run: bool = False, **options):
        if not csv_path.exists():
            raise CommandError(f"File not found: {csv_path}")

        with csv_path.open(newline="", encoding="utf-8-sig") as handle:
            rows = parse_rate_sheet_rows(csv.DictReader(handle))

        if dry_run:
            for row in rows:
                self.stdout.write(f"{row.origin_code} -> {row.destination_code}: {row.rate_per_kg}")
            self.stdout.write(self.style.WARNING(f"Dry run: {len(rows)} route rates parsed, nothing saved."))
            return

        with transaction.atomic():
            for row in rows:
                replace_route_rate(
                    origin_code=row.origin_code,
                    destination_code=row.destination_code,
                    rate_per_kg=row.rate_per_kg,
                )
            log_admin_action(
                actor=None,
                action="IMPORT_RATES",
                model_name="RouteRate",
                metadata={"source": csv_path.name, "rows": len(rows)},
            )

        self.stdout.write(self.style.SUCCESS(f"Imported {len(rows)} route rates from {csv_path.name}."))
