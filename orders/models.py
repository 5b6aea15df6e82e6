import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import Branch
from inventory.models import Product
from sales.models import Customer


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PARTIALLY_PAID = "partially_paid", "Partially Paid"
        READY = "ready", "Ready"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", "Unpaid"
        ADVANCE_PAID = "advance_paid", "Advance Paid"
        PARTIALLY_PAID = "partially_paid", "Partially Paid"
        FULL_PAID = "full_paid", "Full Paid"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    order_number = models.CharField(max_length=64, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="orders")
    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer_phone = models.CharField(max_length=64, blank=True, default="")
    customer_email = models.CharField(max_length=254, blank=True, default="")
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    advance_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    remaining_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    order_status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    expected_delivery_date = models.DateTimeField()
    actual_delivery_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    is_delivered = models.BooleanField(default=False)
    inventory_applied = models.BooleanField(default=False)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["branch", "created_at"], name="order_branch_created_idx"),
            models.Index(fields=["order_status"], name="order_status_idx"),
            models.Index(fields=["expected_delivery_date"], name="order_expected_delivery_idx"),
            models.Index(fields=["customer_phone"], name="order_customer_phone_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(remaining_amount__gte=0), name="order_remaining_non_negative"),
        ]

    def __str__(self):
        return self.order_number


class OrderItem(models.Model):
    """One order line, either a catalog piece or a fully custom piece."""

    class Kind(models.TextChoices):
        CATALOG = "catalog", "Catalog"
        CUSTOM = "custom", "Custom"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField(default=0)
    kind = models.CharField(max_length=8, choices=Kind.choices)
    # Soft link: a catalog row removed later must not break delivery.
    product = models.ForeignKey(
        Product,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name="+",
    )
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64, blank=True, default="")
    purity = models.CharField(max_length=16, blank=True, default="")
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)

    target_weight = models.CharField(max_length=64, blank=True, default="")
    design_image = models.CharField(max_length=500, blank=True, default="")
    size = models.CharField(max_length=32, blank=True, default="")
    item_type = models.CharField(max_length=64, blank=True, default="")
    special_instructions = models.TextField(blank=True, default="")

    quantity = models.PositiveIntegerField(default=1)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    purchase_rate = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    making_charge = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    wastage = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    other_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    old_gold_adjustment = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    manual_rate = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    applied_rate = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["position", "created_at"]
        indexes = [models.Index(fields=["order", "position"], name="orderitem_order_position_idx")]
        constraints = [
            models.CheckConstraint(
                condition=(Q(kind="catalog") & Q(product__isnull=False)) | (Q(kind="custom") & Q(product__isnull=True)),
                name="orderitem_kind_matches_product",
            ),
            models.CheckConstraint(condition=Q(quantity__gte=1), name="orderitem_quantity_positive"),
        ]

    @property
    def is_custom(self):
        return self.kind == self.Kind.CUSTOM


class OrderPayment(models.Model):
    class Method(models.TextChoices):
        CASH = "cash", "Cash"
        CARD = "card", "Card"
        UPI = "upi", "UPI"
        TRANSFER = "transfer", "Transfer"
        OTHER = "other", "Other"

    class Kind(models.TextChoices):
        ADVANCE = "advance", "Advance"
        PARTIAL = "partial", "Partial"
        FINAL = "final", "Final"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=Method.choices, default=Method.CASH)
    kind = models.CharField(max_length=8, choices=Kind.choices)
    notes = models.CharField(max_length=255, blank=True, default="")
    paid_at = models.DateTimeField(default=timezone.now)
    received_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)

    class Meta:
        ordering = ["paid_at", "id"]
        indexes = [models.Index(fields=["order", "paid_at"], name="orderpayment_order_paid_idx")]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="orderpayment_amount_positive"),
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(kind="advance"),
                name="orderpayment_single_advance",
            ),
        ]
