"""
Management command to expire pending trades past their deadline
"""
from django.core.management.base import BaseCommand
from tarodan.trades.services import expire_trades


class Command(BaseCommand):
    help = "Marks pending trades past expires_at as expired"

    def handle(self, *args, **options):
        count = expire_trades()
        self.stdout.write(self.style.SUCCESS(f'Expired {count} trade(s)'))
