import uuid

from django.conf import settings
from django.db import models

from core.models import Branch


class Product(models.Model):
    """A catalog piece held in stock, with its default pricing rules."""

    class Metal(models.TextChoices):
        GOLD = "gold", "Gold"
        SILVER = "silver", "Silver"
        DIAMOND = "diamond", "Diamond"
        PLATINUM = "platinum", "Platinum"
        OTHER = "other", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    sku = models.CharField(max_length=64)
    barcode = models.CharField(max_length=128, null=True, blank=True)
    name = models.CharField(max_length=255)
    metal = models.CharField(max_length=16, choices=Metal.choices, default=Metal.GOLD)
    purity = models.CharField(max_length=16, help_text="e.g. 22K, 18K, 925")
    gross_weight = models.DecimalField(max_digits=10, decimal_places=3)
    net_weight = models.DecimalField(max_digits=10, decimal_places=3, default=0)
    stone_weight = models.DecimalField(max_digits=10, decimal_places=3, default=0)
    making_charge_per_gram = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    making_charge_fixed = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    wastage_percent = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    quantity = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("branch", "sku")
        indexes = [
            models.Index(fields=["branch", "is_active"], name="product_branch_active_idx"),
            models.Index(fields=["branch", "barcode"], name="product_branch_barcode_idx"),
        ]

    def __str__(self):
        return f"{self.sku} {self.name}"


class StockMove(models.Model):
    """Inventory history: one row per stock change, signed quantity."""

    class Reason(models.TextChoices):
        PURCHASE = "purchase", "Purchase"
        RESTOCK = "restock", "Restock"
        SALE = "sale", "Sale"
        RETURN = "return", "Return"
        ADJUSTMENT = "adjustment", "Adjustment"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_moves")
    quantity = models.IntegerField()
    reason = models.CharField(max_length=32, choices=Reason.choices)
    source_ref_type = models.CharField(max_length=64, null=True, blank=True)
    source_ref_id = models.UUIDField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["product", "created_at"], name="stockmove_product_created_idx"),
            models.Index(fields=["source_ref_id", "source_ref_type"], name="stockmove_source_ref_idx"),
        ]


class MetalRate(models.Model):
    """Reference price per gram by purity; the newest row is the live table."""

    class Source(models.TextChoices):
        API = "api", "API"
        MANUAL = "manual", "Manual"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    rate_24k = models.DecimalField(max_digits=12, decimal_places=2)
    rate_22k = models.DecimalField(max_digits=12, decimal_places=2)
    rate_18k = models.DecimalField(max_digits=12, decimal_places=2)
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.MANUAL)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        get_latest_by = "created_at"
        indexes = [models.Index(fields=["created_at"], name="metalrate_created_idx")]

    def as_dict(self):
        return {"rate_24k": self.rate_24k, "rate_22k": self.rate_22k, "rate_18k": self.rate_18k}
