from cart.services import expire_guest_carts
from django.conf import settings
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Delete guest carts that have not been touched within the retention window."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help=f"Retention window in days (default: GUEST_CART_RETENTION_DAYS={settings.GUEST_CART_RETENTION_DAYS})",
        )

    def handle(self, *args, **options):
        count = expire_guest_carts(older_than_days=options.get("days"))
        self.stdout.write(self.style.SUCCESS(f"Expired guest carts deleted: {count}"))
