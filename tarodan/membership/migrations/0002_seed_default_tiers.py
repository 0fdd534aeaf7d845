from django.db import migrations

from tarodan.membership.tiers import DEFAULT_TIERS


def seed_tiers(apps, schema_editor):
    MembershipTier = apps.get_model('membership', 'MembershipTier')
    for tier in DEFAULT_TIERS:
        values = dict(tier)
        tier_type = values.pop('type')
        MembershipTier.objects.update_or_create(type=tier_type, defaults=values)


class Migration(migrations.Migration):

    dependencies = [
        ('membership', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_tiers, migrations.RunPython.noop),
    ]
