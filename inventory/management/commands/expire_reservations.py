import logging

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone
from inventory.models import StockReservation
from inventory.services import release_reservation

logger = logging.getLogger("bazaar.inventory")


class Command(BaseCommand):
    help = "Release checkout stock holds whose expiry has passed."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Only report how many holds would be released")

    def handle(self, *args, **options):
        now = timezone.now()
        qs = StockReservation.objects.filter(state=StockReservation.STATE_ACTIVE, expires_at__lt=now)
        if options.get("dry_run"):
            self.stdout.write(f"Expired holds: {qs.count()}")
            return
        count = 0
        with transaction.atomic():
            for res in qs.select_for_update(skip_locked=True):  # type: ignore[arg-type]
                release_reservation(reservation_id=res.id)
                count += 1
        logger.info("holds_expired", extra={"event": "holds_expired", "count": count})
        self.stdout.write(self.style.SUCCESS(f"Expired holds released: {count}"))
