import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PromoCode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=40, unique=True)),
                ("description", models.CharField(blank=True, max_length=255)),
                (
                    "discount_type",
                    models.CharField(
                        choices=[("percentage", "Percentage"), ("fixed_amount", "Fixed amount")], max_length=16
                    ),
                ),
                ("discount_value", models.DecimalField(decimal_places=2, max_digits=12)),
                ("min_cart_value", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("max_discount_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("max_uses", models.PositiveIntegerField(blank=True, null=True)),
                ("max_uses_per_account", models.PositiveIntegerField(blank=True, null=True)),
                ("starts_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("use_count", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("discount_value__gt", 0)), name="promo_value_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("discount_type", "percentage"), _negated=True)
                        | models.Q(("discount_value__lte", 100)),
                        name="promo_percentage_le_100",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("max_uses__isnull", True))
                        | models.Q(("use_count__lte", models.F("max_uses"))),
                        name="promo_use_count_within_limit",
                    ),
                ],
            },
        ),
    ]
