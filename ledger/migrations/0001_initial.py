import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("direction", models.CharField(choices=[("credit", "Credit"), ("debit", "Debit")], max_length=8)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("sales", "Sales"),
                            ("order_advance", "Order Advance"),
                            ("customer_payment", "Customer Payment"),
                            ("purchase", "Purchase"),
                            ("expense", "Expense"),
                            ("other", "Other"),
                        ],
                        max_length=32,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("method", models.CharField(max_length=16)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("related_entity_type", models.CharField(blank=True, max_length=64, null=True)),
                ("related_entity_id", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "branch",
                    models.ForeignKey(
                        blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="core.branch"
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["branch", "created_at"], name="ledger_branch_created_idx"),
                    models.Index(fields=["related_entity_type", "related_entity_id"], name="ledger_related_entity_idx"),
                ],
            },
        ),
    ]
