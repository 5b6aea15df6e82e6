import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
        ("sales", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.CharField(max_length=64, unique=True)),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=64)),
                ("customer_email", models.CharField(blank=True, default="", max_length=254)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("advance_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("remaining_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                (
                    "order_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("partially_paid", "Partially Paid"),
                            ("ready", "Ready"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("unpaid", "Unpaid"),
                            ("advance_paid", "Advance Paid"),
                            ("partially_paid", "Partially Paid"),
                            ("full_paid", "Full Paid"),
                        ],
                        default="unpaid",
                        max_length=16,
                    ),
                ),
                ("expected_delivery_date", models.DateTimeField()),
                ("actual_delivery_date", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("is_delivered", models.BooleanField(default=False)),
                ("inventory_applied", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="orders", to="sales.customer"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["branch", "created_at"], name="order_branch_created_idx"),
                    models.Index(fields=["order_status"], name="order_status_idx"),
                    models.Index(fields=["expected_delivery_date"], name="order_expected_delivery_idx"),
                    models.Index(fields=["customer_phone"], name="order_customer_phone_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("remaining_amount__gte", 0)), name="order_remaining_non_negative"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "kind",
                    models.CharField(choices=[("catalog", "Catalog"), ("custom", "Custom")], max_length=8),
                ),
                ("name", models.CharField(max_length=255)),
                ("sku", models.CharField(blank=True, default="", max_length=64)),
                ("purity", models.CharField(blank=True, default="", max_length=16)),
                ("weight", models.DecimalField(blank=True, decimal_places=3, max_digits=10, null=True)),
                ("target_weight", models.CharField(blank=True, default="", max_length=64)),
                ("design_image", models.CharField(blank=True, default="", max_length=500)),
                ("size", models.CharField(blank=True, default="", max_length=32)),
                ("item_type", models.CharField(blank=True, default="", max_length=64)),
                ("special_instructions", models.TextField(blank=True, default="")),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("purchase_rate", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("making_charge", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("wastage", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("other_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("old_gold_adjustment", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("manual_rate", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("applied_rate", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.order"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        db_constraint=False,
                        null=True,
                        on_delete=django.db.models.deletion.DO_NOTHING,
                        related_name="+",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "ordering": ["position", "created_at"],
                "indexes": [models.Index(fields=["order", "position"], name="orderitem_order_position_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("kind", "catalog"), ("product__isnull", False)),
                            models.Q(("kind", "custom"), ("product__isnull", True)),
                            _connector="OR",
                        ),
                        name="orderitem_kind_matches_product",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gte", 1)), name="orderitem_quantity_positive"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderPayment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("card", "Card"),
                            ("upi", "UPI"),
                            ("transfer", "Transfer"),
                            ("other", "Other"),
                        ],
                        default="cash",
                        max_length=16,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[("advance", "Advance"), ("partial", "Partial"), ("final", "Final")], max_length=8
                    ),
                ),
                ("notes", models.CharField(blank=True, default="", max_length=255)),
                ("paid_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="orders.order"
                    ),
                ),
                (
                    "received_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["paid_at", "id"],
                "indexes": [models.Index(fields=["order", "paid_at"], name="orderpayment_order_paid_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)), name="orderpayment_amount_positive"
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("kind", "advance")),
                        fields=("order",),
                        name="orderpayment_single_advance",
                    ),
                ],
            },
        ),
    ]
