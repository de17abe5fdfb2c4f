from django.core.management.base import BaseCommand
from django.utils import timezone

from signaling.models import Signal
from services.propagation import expire_stale_signals


class Command(BaseCommand):
    help = "Expire active signals whose lifetime has passed (e.g. after a restart)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many signals would be expired without changing them.",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            count = Signal.objects.filter(
                status=Signal.STATUS_ACTIVE, expires_at__lte=timezone.now()
            ).count()
            self.stdout.write(self.style.WARNING(f"DRY RUN: Would expire {count} stale signal(s)."))
            return

        count = expire_stale_signals()
        self.stdout.write(self.style.SUCCESS(f"Expired {count} stale signal(s)."))
