from django.core.management.base import BaseCommand
from django.utils import timezone

from locations.models import UserLocation
from services.container import get_container


class Command(BaseCommand):
    help = "Delete user locations whose 24h TTL has passed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many rows would be deleted without deleting them.",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            count = UserLocation.objects.filter(expires_at__lte=timezone.now()).count()
            self.stdout.write(self.style.WARNING(f"DRY RUN: Would delete {count} expired location(s)."))
            return

        count = get_container().store.purge_expired()
        self.stdout.write(self.style.SUCCESS(f"Deleted {count} expired location(s)."))
