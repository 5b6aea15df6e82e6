from rest_framework import serializers

from sales.models import Invoice, InvoiceLine


class InvoiceLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLine
        fields = [
            "id",
            "position",
            "product",
            "order_item",
            "description",
            "quantity",
            "weight",
            "rate",
            "purchase_rate",
            "making_charge",
            "wastage",
            "other_cost",
            "discount",
            "old_gold_adjustment",
            "line_total",
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    lines = InvoiceLineSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True, default=None)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "branch",
            "customer",
            "customer_name",
            "order",
            "order_number",
            "invoice_number",
            "status",
            "subtotal",
            "discount_total",
            "tax_total",
            "total",
            "amount_paid",
            "balance_due",
            "payment_mode",
            "metal_rates",
            "created_by",
            "created_at",
            "updated_at",
            "lines",
        ]
        read_only_fields = fields
