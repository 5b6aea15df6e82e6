import uuid

from django.conf import settings
from django.db import models

from core.models import Branch


class LedgerEntry(models.Model):
    """Append-only cash book row. Never updated or deleted by the order desk."""

    class Direction(models.TextChoices):
        CREDIT = "credit", "Credit"
        DEBIT = "debit", "Debit"

    class Category(models.TextChoices):
        SALES = "sales", "Sales"
        ORDER_ADVANCE = "order_advance", "Order Advance"
        CUSTOMER_PAYMENT = "customer_payment", "Customer Payment"
        PURCHASE = "purchase", "Purchase"
        EXPENSE = "expense", "Expense"
        OTHER = "other", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, null=True, blank=True)
    direction = models.CharField(max_length=8, choices=Direction.choices)
    category = models.CharField(max_length=32, choices=Category.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16)
    description = models.CharField(max_length=255, blank=True, default="")
    related_entity_type = models.CharField(max_length=64, null=True, blank=True)
    related_entity_id = models.UUIDField(null=True, blank=True)
    performed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["branch", "created_at"], name="ledger_branch_created_idx"),
            models.Index(fields=["related_entity_type", "related_entity_id"], name="ledger_related_entity_idx"),
        ]
