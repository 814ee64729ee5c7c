from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Runner',
            fields=[
                ('id', models.CharField(max_length=12, primary_key=True, serialize=False)),
                ('display_name', models.CharField(max_length=100)),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('voice', models.CharField(choices=[('en-GB', 'en-GB'), ('en-US', 'en-US'), ('de-DE', 'de-DE'), ('fr-FR', 'fr-FR'), ('es-ES', 'es-ES')], default='en-US', max_length=5)),
                ('cheers_volume', models.FloatField(default=0.8)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
    ]
