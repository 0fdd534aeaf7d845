"""
Management command to fail pending payments that were never completed
"""
from django.core.management.base import BaseCommand
from tarodan.payments.services import cancel_expired_payments, PAYMENT_TIMEOUT_MINUTES


class Command(BaseCommand):
    help = f"Marks pending payments older than {PAYMENT_TIMEOUT_MINUTES} minutes as failed"

    def handle(self, *args, **options):
        count = cancel_expired_payments()
        self.stdout.write(self.style.SUCCESS(f'Cancelled {count} expired payment(s)'))
