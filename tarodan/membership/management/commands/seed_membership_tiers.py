"""
Management command to create or refresh the default membership tiers
"""
from django.core.management.base import BaseCommand
from tarodan.membership.models import MembershipTier
from tarodan.membership.tiers import DEFAULT_TIERS


class Command(BaseCommand):
    help = "Creates the default membership tiers, updating existing ones"

    def add_arguments(self, parser):
        parser.add_argument(
            '--keep-existing',
            action='store_true',
            help='Only create missing tiers, leave existing rows untouched',
        )

    def handle(self, *args, **options):
        keep_existing = options['keep_existing']
        created_count = 0
        updated_count = 0

        for tier in DEFAULT_TIERS:
            values = dict(tier)
            tier_type = values.pop('type')
            if keep_existing:
                _, created = MembershipTier.objects.get_or_create(type=tier_type, defaults=values)
            else:
                _, created = MembershipTier.objects.update_or_create(type=tier_type, defaults=values)
            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f'Created tier: {tier_type}'))
            elif not keep_existing:
                updated_count += 1
                self.stdout.write(f'Updated tier: {tier_type}')

        self.stdout.write(self.style.SUCCESS(
            f'\nDone. Created: {created_count}, updated: {updated_count}'
        ))
