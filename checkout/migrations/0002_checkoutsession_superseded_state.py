from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("checkout", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="checkoutsession",
            name="state",
            field=models.CharField(
                choices=[
                    ("initiated", "Initiated"),
                    ("awaiting_payment", "Awaiting payment"),
                    ("gateway_failed", "Gateway failed"),
                    ("settled", "Settled"),
                    ("failed", "Failed"),
                    ("superseded", "Superseded"),
                ],
                db_index=True,
                default="initiated",
                max_length=20,
            ),
        ),
    ]
