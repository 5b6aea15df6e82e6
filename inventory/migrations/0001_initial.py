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
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(max_length=64)),
                ("barcode", models.CharField(blank=True, max_length=128, null=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "metal",
                    models.CharField(
                        choices=[
                            ("gold", "Gold"),
                            ("silver", "Silver"),
                            ("diamond", "Diamond"),
                            ("platinum", "Platinum"),
                            ("other", "Other"),
                        ],
                        default="gold",
                        max_length=16,
                    ),
                ),
                ("purity", models.CharField(help_text="e.g. 22K, 18K, 925", max_length=16)),
                ("gross_weight", models.DecimalField(decimal_places=3, max_digits=10)),
                ("net_weight", models.DecimalField(decimal_places=3, default=0, max_digits=10)),
                ("stone_weight", models.DecimalField(decimal_places=3, default=0, max_digits=10)),
                ("making_charge_per_gram", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("making_charge_fixed", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("wastage_percent", models.DecimalField(decimal_places=2, default=0, max_digits=6)),
                ("purchase_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("selling_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("quantity", models.IntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
            ],
            options={
                "unique_together": {("branch", "sku")},
                "indexes": [
                    models.Index(fields=["branch", "is_active"], name="product_branch_active_idx"),
                    models.Index(fields=["branch", "barcode"], name="product_branch_barcode_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMove",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.IntegerField()),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("purchase", "Purchase"),
                            ("restock", "Restock"),
                            ("sale", "Sale"),
                            ("return", "Return"),
                            ("adjustment", "Adjustment"),
                        ],
                        max_length=32,
                    ),
                ),
                ("source_ref_type", models.CharField(blank=True, max_length=64, null=True)),
                ("source_ref_id", models.UUIDField(blank=True, null=True)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_moves", to="inventory.product"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["product", "created_at"], name="stockmove_product_created_idx"),
                    models.Index(fields=["source_ref_id", "source_ref_type"], name="stockmove_source_ref_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MetalRate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("rate_24k", models.DecimalField(decimal_places=2, max_digits=12)),
                ("rate_22k", models.DecimalField(decimal_places=2, max_digits=12)),
                ("rate_18k", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "source",
                    models.CharField(choices=[("api", "API"), ("manual", "Manual")], default="manual", max_length=16),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL
                    ),
                ),
            ],
            options={
                "get_latest_by": "created_at",
                "indexes": [models.Index(fields=["created_at"], name="metalrate_created_idx")],
            },
        ),
    ]
