from django.db import migrations


def create_settings(apps, schema_editor):
    OrganizationSettings = apps.get_model('dashboard', 'OrganizationSettings')
    if not OrganizationSettings.objects.exists():
        OrganizationSettings.objects.create(display_name='Admin User', email='admin@farmaid.org')

def reverse_settings(apps, schema_editor):
    OrganizationSettings = apps.get_model('dashboard', 'OrganizationSettings')
    OrganizationSettings.objects.all().delete()

class Migration(migrations.Migration):
    dependencies = [
        ('dashboard', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_settings, reverse_settings),
    ]
