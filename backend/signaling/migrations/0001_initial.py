import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Signal',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('latitude', models.FloatField()),
                ('longitude', models.FloatField()),
                ('max_distance', models.FloatField()),
                ('distance_unit', models.CharField(choices=[('mile', 'Mile'), ('km', 'Kilometer')], default='mile', max_length=10)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('expired', 'Expired')], default='pending', max_length=20)),
                ('sent_at', models.DateTimeField()),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('response_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='responses', to='signaling.signal')),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_signals', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'signals',
                'ordering': ['-sent_at'],
                'indexes': [models.Index(fields=['sender', 'status', 'sent_at'], name='signal_sender_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='SignalReceipt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('distance', models.FloatField()),
                ('direction', models.CharField(max_length=2)),
                ('responded', models.BooleanField(default=False)),
                ('received_at', models.DateTimeField()),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='signal_receipts', to=settings.AUTH_USER_MODEL)),
                ('signal', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='receipts', to='signaling.signal')),
            ],
            options={
                'db_table': 'signal_receipts',
                'ordering': ['-received_at'],
                'constraints': [models.UniqueConstraint(fields=('signal', 'receiver'), name='unique_signal_receiver')],
            },
        ),
    ]
