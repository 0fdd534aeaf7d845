"""
Management command to expire pending offers past their deadline
"""
from django.core.management.base import BaseCommand
from tarodan.offers.services import expire_offers


class Command(BaseCommand):
    help = "Marks pending offers past expires_at as expired"

    def handle(self, *args, **options):
        count = expire_offers()
        self.stdout.write(self.style.SUCCESS(f'Expired {count} offer(s)'))
