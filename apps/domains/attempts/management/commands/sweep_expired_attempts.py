# PATH: apps/domains/attempts/management/commands/sweep_expired_attempts.py
"""
Auto-submit IN_PROGRESS attempts whose elapsed time exceeds the test duration.

Run via cron (e.g. every minute) when Celery beat is not running:
  python manage.py sweep_expired_attempts
  python manage.py sweep_expired_attempts --dry-run
"""
from django.core.management.base import BaseCommand

from assessment.framework.wiring import build_expiry_sweep


class Command(BaseCommand):
    help = "Auto-submit expired IN_PROGRESS test attempts"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only list expired attempts, do not submit",
        )

    def handle(self, *args, **options):
        dry_run = options.get("dry_run", False)
        sweep = build_expiry_sweep()
        report = sweep.run_once(dry_run=dry_run)

        if dry_run:
            for attempt_id in report.expired_ids:
                self.stdout.write(f"DRY-RUN AUTO_SUBMIT | attempt_id={attempt_id}")
            self.stdout.write(
                self.style.SUCCESS(f"Scanned {report.scanned}, {len(report.expired_ids)} expired (dry-run)")
            )
            return

        for attempt_id in report.submitted_ids:
            self.stdout.write(self.style.SUCCESS(f"AUTO_SUBMITTED | attempt_id={attempt_id}"))
        for attempt_id in report.skipped_ids:
            self.stdout.write(f"SKIPPED | attempt_id={attempt_id} (already submitted)")
        for attempt_id in report.failed_ids:
            self.stdout.write(self.style.WARNING(f"FAILED | attempt_id={attempt_id}"))
        self.stdout.write(
            self.style.SUCCESS(
                f"Scanned {report.scanned}, submitted {report.submitted}, "
                f"skipped {len(report.skipped_ids)}, failed {len(report.failed_ids)}"
            )
        )
