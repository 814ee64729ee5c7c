import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('registration', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Activity',
            fields=[
                ('id', models.CharField(max_length=12, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('planned', 'Planned'), ('active', 'Active'), ('finished', 'Finished'), ('cancelled', 'Cancelled')], db_index=True, default='planned', max_length=10)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('ended_at', models.DateTimeField(blank=True, null=True)),
                ('share_token', models.CharField(max_length=19, unique=True)),
                ('distance_m', models.FloatField(default=0.0)),
                ('pace_sec_per_km', models.FloatField(default=0.0)),
                ('last_lat', models.FloatField(blank=True, null=True)),
                ('last_lng', models.FloatField(blank=True, null=True)),
                ('last_ping_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activities', to='core.event')),
                ('runner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activities', to='registration.runner')),
            ],
            options={
                'verbose_name_plural': 'activities',
            },
        ),
        migrations.CreateModel(
            name='LocationSample',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('lat', models.FloatField()),
                ('lng', models.FloatField()),
                ('accuracy', models.FloatField(blank=True, null=True)),
                ('altitude', models.FloatField(blank=True, null=True)),
                ('speed_mps', models.FloatField(blank=True, null=True)),
                ('heading', models.FloatField(blank=True, null=True)),
                ('heart_rate', models.FloatField(blank=True, null=True)),
                ('cadence', models.FloatField(blank=True, null=True)),
                ('battery', models.FloatField(blank=True, null=True)),
                ('activity', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='samples', to='tracking.activity')),
                ('runner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='registration.runner')),
            ],
            options={
                'ordering': ['timestamp'],
                'indexes': [
                    models.Index(fields=['runner', '-timestamp'], name='sample_runner_ts_idx'),
                    models.Index(fields=['activity', 'timestamp'], name='sample_activity_ts_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('activity', 'timestamp', 'lat', 'lng'), name='sample_activity_ts_pos_uniq'),
                ],
            },
        ),
    ]
