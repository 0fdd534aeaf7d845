"""
Daily membership maintenance: expire ended periods and send renewal reminders
"""
from django.core.management.base import BaseCommand
from tarodan.membership.services import expire_memberships, send_expiration_reminders


class Command(BaseCommand):
    help = "Expires memberships past their period end and notifies members whose period ends soon"

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-reminders',
            action='store_true',
            help='Only expire memberships, do not send reminders',
        )

    def handle(self, *args, **options):
        expired = expire_memberships()
        self.stdout.write(self.style.SUCCESS(f'Expired {expired} membership(s)'))

        if options['skip_reminders']:
            return

        counts = send_expiration_reminders()
        for key, count in counts.items():
            self.stdout.write(f'Reminders ({key.replace("_", " ")}): {count}')
