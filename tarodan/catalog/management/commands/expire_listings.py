"""
Daily listing maintenance: expire old listings, warn sellers and refresh popularity scores
"""
from django.core.management.base import BaseCommand
from tarodan.catalog.services import (
    expire_old_listings, send_expiration_warnings, update_popularity_scores, LISTING_EXPIRY_DAYS,
)


class Command(BaseCommand):
    help = f"Deactivates active listings older than {LISTING_EXPIRY_DAYS} days"

    def add_arguments(self, parser):
        parser.add_argument(
            '--warn-days',
            type=int,
            default=7,
            help='Warn sellers about listings expiring within this many days (0 disables warnings)',
        )
        parser.add_argument(
            '--skip-popularity',
            action='store_true',
            help='Do not recompute popularity scores',
        )

    def handle(self, *args, **options):
        expired = expire_old_listings()
        self.stdout.write(self.style.SUCCESS(f'Expired {expired} listing(s)'))

        warn_days = options['warn_days']
        if warn_days > 0:
            sellers = send_expiration_warnings(days=warn_days)
            self.stdout.write(f'Warned {sellers} seller(s) about listings expiring within {warn_days} days')

        if not options['skip_popularity']:
            updated = update_popularity_scores()
            self.stdout.write(f'Recomputed popularity for {updated} listing(s)')
