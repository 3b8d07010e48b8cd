from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("core", "0002_ballotline_append_only"),
    ]

    operations = [
        migrations.AddField(
            model_name="candidate",
            name="position",
            field=models.CharField(blank=True, default="", max_length=255),
        ),
    ]
