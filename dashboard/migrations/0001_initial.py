from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(max_length=120)),
                ('details', models.TextField(blank=True)),
                ('user', models.CharField(default='SuperAdmin', max_length=120)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                'db_table': 'auditLogs',
                'ordering': ('-timestamp',),
            },
        ),
        migrations.CreateModel(
            name='Member',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('uid', models.CharField(max_length=64, unique=True)),
                ('firstname', models.CharField(blank=True, max_length=80)),
                ('lastname', models.CharField(blank=True, max_length=80)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('user_type', models.CharField(choices=[('Farmer', 'Farmer'), ('Donor', 'Donor'), ('Market', 'Market'), ('Admin', 'Admin')], db_index=True, default='Donor', max_length=10)),
                ('location', models.CharField(blank=True, max_length=120)),
                ('join_date', models.DateField(blank=True, null=True)),
            ],
            options={
                'db_table': 'users',
                'ordering': ('uid',),
            },
        ),
        migrations.CreateModel(
            name='Organization',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('contact_person', models.CharField(max_length=120)),
                ('organization_name', models.CharField(max_length=200)),
                ('contact_number', models.CharField(max_length=20)),
                ('email', models.EmailField(max_length=254)),
                ('year_founded', models.PositiveIntegerField()),
                ('certification_url', models.CharField(max_length=500)),
                ('created', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'organizations',
                'ordering': ('-created',),
            },
        ),
        migrations.CreateModel(
            name='OrganizationSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('display_name', models.CharField(default='Admin User', max_length=120, verbose_name='Name')),
                ('email', models.EmailField(default='admin@farmaid.org', max_length=254)),
                ('email_notifications', models.BooleanField(default=True)),
                ('sms_notifications', models.BooleanField(default=False)),
                ('app_notifications', models.BooleanField(default=True, verbose_name='In-app notifications')),
                ('updated', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Organization settings',
                'verbose_name_plural': 'Organization settings',
                'db_table': 'organizationSettings',
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(help_text='Ex: TRX-007', max_length=32, unique=True)),
                ('farmer_name', models.CharField(blank=True, max_length=120)),
                ('buyer_id', models.CharField(blank=True, db_index=True, help_text='Member uid of the buyer/donor', max_length=64)),
                ('buyer_name', models.CharField(blank=True, max_length=120)),
                ('crop', models.CharField(blank=True, max_length=60, verbose_name='Category')),
                ('quantity', models.CharField(blank=True, max_length=30)),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12)),
                ('items', models.JSONField(blank=True, default=list, help_text='List of {"name", "price"}')),
                ('transaction_type', models.CharField(choices=[('donation', 'Donation'), ('sale', 'Sale')], db_index=True, default='donation', max_length=10)),
                ('status', models.CharField(choices=[('Pending', 'Pending'), ('Processing', 'Processing'), ('Delivered', 'Delivered'), ('Confirmed', 'Confirmed'), ('Completed', 'Completed'), ('Cancelled', 'Cancelled')], db_index=True, default='Pending', max_length=12)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'transactions',
                'ordering': ('-timestamp',),
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(blank=True, max_length=200)),
                ('message', models.TextField()),
                ('read', models.BooleanField(db_index=True, default=False)),
                ('type', models.CharField(blank=True, help_text='Ex: donation_confirmation', max_length=40)),
                ('transaction_type', models.CharField(blank=True, db_index=True, max_length=10)),
                ('buyer_id', models.CharField(blank=True, max_length=64)),
                ('donation_ref', models.CharField(blank=True, max_length=32)),
                ('donor_name', models.CharField(blank=True, max_length=120)),
                ('organization_id', models.CharField(blank=True, max_length=64)),
                ('image_url', models.CharField(blank=True, max_length=500)),
                ('confirmed', models.BooleanField(default=False)),
                ('created', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated', models.DateTimeField(auto_now=True)),
                ('recipient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='farmaid_notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'notifications',
                'ordering': ('-created',),
            },
        ),
    ]
