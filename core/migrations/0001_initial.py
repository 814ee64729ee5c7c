from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.CharField(max_length=12, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('event_type', models.CharField(choices=[('marathon', 'Marathon'), ('half-marathon', 'Half Marathon'), ('10k', '10K'), ('5k', '5K'), ('ultra', 'Ultra'), ('custom', 'Custom'), ('other', 'Other')], default='marathon', max_length=20)),
                ('date', models.DateTimeField()),
                ('distance_m', models.FloatField()),
                ('city', models.CharField(blank=True, max_length=100)),
                ('country', models.CharField(blank=True, max_length=100)),
                ('min_lat', models.FloatField(blank=True, null=True)),
                ('max_lat', models.FloatField(blank=True, null=True)),
                ('min_lng', models.FloatField(blank=True, null=True)),
                ('max_lng', models.FloatField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
    ]
