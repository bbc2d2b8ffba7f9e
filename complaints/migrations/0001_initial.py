from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='ChatThread',
            fields=[
                ('donor_id', models.CharField(max_length=64, primary_key=True, serialize=False)),
                ('donor_name', models.CharField(default='Donor', max_length=120)),
                ('last_message', models.TextField(blank=True)),
                ('last_message_from', models.CharField(default='donor', max_length=64)),
                ('last_message_time', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('read_by_admin', models.BooleanField(default=False)),
            ],
            options={
                'verbose_name': 'Chat thread',
                'verbose_name_plural': 'Chat threads',
                'db_table': 'donationOrgChats',
                'ordering': ('-last_message_time',),
            },
        ),
        migrations.CreateModel(
            name='ChatMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('text', models.TextField(blank=True)),
                ('image_url', models.CharField(blank=True, max_length=500, null=True)),
                ('sender_id', models.CharField(max_length=64)),
                ('sender_name', models.CharField(blank=True, max_length=120)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('thread', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='complaints.chatthread')),
            ],
            options={
                'db_table': 'messages',
                'ordering': ('timestamp', 'id'),
            },
        ),
    ]
