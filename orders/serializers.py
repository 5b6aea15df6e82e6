from rest_framework import serializers

from orders.models import Order, OrderItem, OrderPayment
from sales.serializers import InvoiceSerializer

MONEY = {"max_digits": 12, "decimal_places": 2}
WEIGHT = {"max_digits": 10, "decimal_places": 3}


class OrderItemSerializer(serializers.ModelSerializer):
    is_custom = serializers.BooleanField(read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "position",
            "kind",
            "is_custom",
            "product",
            "name",
            "sku",
            "purity",
            "weight",
            "target_weight",
            "design_image",
            "size",
            "item_type",
            "special_instructions",
            "quantity",
            "price",
            "purchase_rate",
            "making_charge",
            "wastage",
            "discount",
            "other_cost",
            "old_gold_adjustment",
            "manual_rate",
            "applied_rate",
        ]
        read_only_fields = fields


class OrderPaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderPayment
        fields = ["id", "amount", "method", "kind", "notes", "paid_at", "received_by"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    payments = OrderPaymentSerializer(many=True, read_only=True)
    invoice_number = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "branch",
            "order_number",
            "customer",
            "customer_name",
            "customer_phone",
            "customer_email",
            "items",
            "payments",
            "total_amount",
            "advance_amount",
            "remaining_amount",
            "order_status",
            "payment_status",
            "expected_delivery_date",
            "actual_delivery_date",
            "notes",
            "is_delivered",
            "inventory_applied",
            "invoice_number",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_invoice_number(self, obj):
        invoice = getattr(obj, "invoice", None) if obj.is_delivered else None
        return invoice.invoice_number if invoice else None


class OrderItemInputSerializer(serializers.Serializer):
    is_custom = serializers.BooleanField(default=False)
    product = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    purity = serializers.CharField(max_length=16, required=False, allow_blank=True)
    weight = serializers.DecimalField(required=False, allow_null=True, min_value=0, **WEIGHT)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(min_value=0, **MONEY)

    target_weight = serializers.CharField(max_length=64, required=False, allow_blank=True)
    design_image = serializers.CharField(max_length=500, required=False, allow_blank=True)
    size = serializers.CharField(max_length=32, required=False, allow_blank=True)
    item_type = serializers.CharField(max_length=64, required=False, allow_blank=True)
    special_instructions = serializers.CharField(required=False, allow_blank=True)

    purchase_rate = serializers.DecimalField(required=False, min_value=0, **MONEY)
    making_charge = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    wastage = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    discount = serializers.DecimalField(required=False, min_value=0, **MONEY)
    other_cost = serializers.DecimalField(required=False, min_value=0, **MONEY)
    old_gold_adjustment = serializers.DecimalField(required=False, min_value=0, **MONEY)
    manual_rate = serializers.DecimalField(required=False, min_value=0, **MONEY)

    def validate(self, attrs):
        if attrs.get("is_custom"):
            if attrs.get("product"):
                raise serializers.ValidationError({"product": "Custom items cannot reference a catalog product."})
            if not attrs.get("name"):
                raise serializers.ValidationError({"name": "Custom items need a name."})
        elif not attrs.get("product"):
            raise serializers.ValidationError(
                "Item must be either custom (is_custom: true) or reference a catalog product."
            )
        return attrs


class OrderCreateSerializer(serializers.Serializer):
    customer = serializers.UUIDField()
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    advance_amount = serializers.DecimalField(required=False, default=0, min_value=0, **MONEY)
    expected_delivery_date = serializers.DateTimeField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    payment_method = serializers.ChoiceField(choices=OrderPayment.Method.choices, default=OrderPayment.Method.CASH)


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY)
    method = serializers.ChoiceField(choices=OrderPayment.Method.choices, default=OrderPayment.Method.CASH)
    notes = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value


class FinalPaymentSerializer(PaymentCreateSerializer):
    pass


class DeliverSerializer(serializers.Serializer):
    final_payment = FinalPaymentSerializer(required=False, allow_null=True)


class OrderItemPatchSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    purity = serializers.CharField(max_length=16, required=False, allow_blank=True)
    weight = serializers.DecimalField(required=False, allow_null=True, min_value=0, **WEIGHT)
    quantity = serializers.IntegerField(required=False, min_value=1)
    price = serializers.DecimalField(required=False, min_value=0, **MONEY)

    target_weight = serializers.CharField(max_length=64, required=False, allow_blank=True)
    design_image = serializers.CharField(max_length=500, required=False, allow_blank=True)
    size = serializers.CharField(max_length=32, required=False, allow_blank=True)
    item_type = serializers.CharField(max_length=64, required=False, allow_blank=True)
    special_instructions = serializers.CharField(required=False, allow_blank=True)

    purchase_rate = serializers.DecimalField(required=False, min_value=0, **MONEY)
    making_charge = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    wastage = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    discount = serializers.DecimalField(required=False, min_value=0, **MONEY)
    other_cost = serializers.DecimalField(required=False, min_value=0, **MONEY)
    old_gold_adjustment = serializers.DecimalField(required=False, min_value=0, **MONEY)
    manual_rate = serializers.DecimalField(required=False, min_value=0, **MONEY)

    recalculate = serializers.BooleanField(required=False, default=False)


class DashboardMetricsSerializer(serializers.Serializer):
    orders_today = serializers.IntegerField()
    orders_this_month = serializers.IntegerField()
    total_advance_outstanding = serializers.DecimalField(**MONEY)
    total_remaining_balance = serializers.DecimalField(**MONEY)
    near_delivery_count = serializers.IntegerField()
    overdue_count = serializers.IntegerField()
    status_counts = serializers.DictField(child=serializers.IntegerField())


class DeliveryResultSerializer(serializers.Serializer):
    order = OrderSerializer()
    invoice = InvoiceSerializer()
