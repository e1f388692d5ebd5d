import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('fleet', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Schedule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField()),
                ('departure_time', models.TimeField()),
                ('arrival_time', models.TimeField()),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('in_progress', 'In progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='scheduled', max_length=12)),
                ('trips_total', models.PositiveSmallIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ('trips_done', models.PositiveSmallIntegerField(default=0)),
                ('flagged_for_reassignment', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('bus', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='schedules', to='fleet.bus')),
                ('conductor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='schedules', to='fleet.conductor')),
                ('depot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='schedules', to='core.depot')),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='schedules', to='fleet.driver')),
                ('route', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='schedules', to='fleet.route')),
            ],
            options={
                'db_table': 'schedules',
                'ordering': ['date', 'departure_time'],
                'indexes': [
                    models.Index(fields=['date', 'bus'], name='schedules_date_bus_idx'),
                    models.Index(fields=['date', 'driver'], name='schedules_date_driver_idx'),
                    models.Index(fields=['date', 'conductor'], name='schedules_date_conductor_idx'),
                    models.Index(fields=['depot', 'flagged_for_reassignment'], name='schedules_depot_flagged_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'cancelled'), _negated=True), fields=('bus', 'date', 'departure_time'), name='unique_live_bus_departure'),
                    models.UniqueConstraint(condition=models.Q(('status', 'cancelled'), _negated=True), fields=('driver', 'date', 'departure_time'), name='unique_live_driver_departure'),
                    models.UniqueConstraint(condition=models.Q(('status', 'cancelled'), _negated=True), fields=('conductor', 'date', 'departure_time'), name='unique_live_conductor_departure'),
                    models.CheckConstraint(condition=models.Q(('trips_done__lte', models.F('trips_total'))), name='trips_done_within_total'),
                    models.CheckConstraint(condition=models.Q(('arrival_time__gt', models.F('departure_time'))), name='arrival_after_departure'),
                ],
            },
        ),
    ]
