from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from common.exceptions import AlreadySettled, IllegalTransition
from common.utils import generate_document_number, to_json_compatible
from inventory.services import get_catalog_product, latest_metal_rates, record_order_sale
from ledger.models import LedgerEntry
from ledger.services import record_credit
from orders.models import Order, OrderItem, OrderPayment
from orders.pricing import CatalogDefaults, LineInput, price_line
from orders.rates import reference_rate, resolve_metal_rate
from sales.models import Invoice, InvoiceLine
from sales.services import get_customer

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MONEY_QUANT = Decimal("0.01")
MILLIGRAM = Decimal("0.001")

OPEN_EXCLUDED_STATUSES = (Order.Status.DELIVERED.value, Order.Status.CANCELLED.value)
TERMINAL_STATUSES = frozenset(OPEN_EXCLUDED_STATUSES)
STATUS_TRANSITIONS = {
    Order.Status.PENDING.value: {
        Order.Status.PARTIALLY_PAID.value,
        Order.Status.READY.value,
        Order.Status.CANCELLED.value,
    },
    Order.Status.PARTIALLY_PAID.value: {Order.Status.READY.value, Order.Status.CANCELLED.value},
    Order.Status.READY.value: {Order.Status.PARTIALLY_PAID.value, Order.Status.CANCELLED.value},
}


ITEM_PATCH_FIELDS = (
    "name",
    "purity",
    "weight",
    "quantity",
    "price",
    "target_weight",
    "design_image",
    "size",
    "item_type",
    "special_instructions",
    "purchase_rate",
    "making_charge",
    "wastage",
    "discount",
    "other_cost",
    "old_gold_adjustment",
    "manual_rate",
)
ITEM_OVERRIDE_FIELDS = (
    "purchase_rate",
    "making_charge",
    "wastage",
    "discount",
    "other_cost",
    "old_gold_adjustment",
    "manual_rate",
)
CUSTOM_DETAIL_FIELDS = ("target_weight", "design_image", "size", "item_type", "special_instructions")

MAX_NUMBER_ATTEMPTS = 5


def _to_money(value) -> Decimal:
    return Decimal(value or 0).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _positive_amount(value, field):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({field: "Enter a valid amount."})
    if not amount.is_finite() or amount <= 0:
        raise ValidationError({field: "Amount must be greater than zero."})
    return amount


def _parse_uuid(value, message):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFound(message)


def _unique_number(model, field, prefix):
    for _ in range(MAX_NUMBER_ATTEMPTS):
        candidate = generate_document_number(prefix)
        if not model.objects.filter(**{field: candidate}).exists():
            return candidate
    raise RuntimeError(f"Could not allocate a unique {model.__name__} number.")


def _lock_order(order_id, queryset=None):
    pk = _parse_uuid(order_id, "Order not found.")
    if queryset is None:
        queryset = Order.objects.all()
    order = queryset.select_related(None).prefetch_related(None).select_for_update().filter(pk=pk).first()
    if order is None:
        raise NotFound("Order not found.")
    return order


def _get_item(order, item_id):
    pk = _parse_uuid(item_id, "Order item not found.")
    item = order.items.filter(pk=pk).first()
    if item is None:
        raise NotFound("Order item not found.")
    return item


def _ensure_not_delivered(order):
    if order.is_delivered or order.order_status == Order.Status.DELIVERED:
        raise IllegalTransition("Items cannot be changed once the order is delivered.")


def _paid_total(order) -> Decimal:
    return order.payments.aggregate(total=Sum("amount"))["total"] or ZERO


def derive_payment_status(remaining, has_payments) -> str:
    if remaining <= 0:
        return Order.PaymentStatus.FULL_PAID
    if has_payments:
        return Order.PaymentStatus.ADVANCE_PAID
    return Order.PaymentStatus.UNPAID


def recalculate_totals(order):
    """Re-derive total, remaining and payment status from items and payments.

    Remaining is always computed against the full payment history, so the
    advance is never counted twice.
    """
    total = sum((item.price * item.quantity for item in order.items.all()), ZERO)
    paid = _paid_total(order)
    order.total_amount = _to_money(total)
    order.remaining_amount = _to_money(max(ZERO, total - paid))
    order.payment_status = derive_payment_status(order.remaining_amount, order.payments.exists())
    order.save(update_fields=["total_amount", "remaining_amount", "payment_status", "updated_at"])
    return order


def _log_missing_rates(order, rates):
    if rates is None:
        logger.warning("metal_rates_missing", extra={"order_id": order.id, "order_number": order.order_number})


def price_order_item(item, rates, *, order=None):
    """Resolve the rate and price one stored item against the given rate table.

    Returns ``(product, rate, pricing)``; ``product`` is None for custom items
    and for catalog items whose catalog record no longer exists.
    """
    product = None
    if not item.is_custom:
        product = get_catalog_product(item.product_id)
        if product is None and order is not None:
            logger.warning(
                "catalog_product_missing",
                extra={"order_id": order.id, "order_number": order.order_number, "product_id": item.product_id, "item_id": item.id},
            )
    catalog = CatalogDefaults.from_product(product)
    purity = item.purity or (catalog.purity if catalog else "")
    rate = resolve_metal_rate(purity, manual_rate=item.manual_rate, applied_rate=item.applied_rate, rates=rates)
    return product, rate, price_line(LineInput.from_item(item), rate, catalog)


def _purchase_rate(item, product, rates):
    if item.purchase_rate and item.purchase_rate > 0:
        return item.purchase_rate
    if product is not None and product.purchase_price and product.purchase_price > 0:
        return product.purchase_price
    if item.is_custom:
        return reference_rate(rates, item.purity)
    return ZERO


def synthesize_invoice_line(item, rates, *, position=0, order=None):
    """Build an unsaved invoice line re-derived from the item and current data."""
    product, rate, pricing = price_order_item(item, rates, order=order)
    return InvoiceLine(
        position=position,
        product=product,
        order_item=item,
        description=item.name[:255],
        quantity=pricing.quantity,
        weight=pricing.total_weight.quantize(MILLIGRAM),
        rate=_to_money(rate),
        purchase_rate=_to_money(_purchase_rate(item, product, rates)),
        making_charge=_to_money(pricing.making_charge),
        wastage=_to_money(pricing.wastage),
        other_cost=_to_money(pricing.other_cost),
        discount=_to_money(pricing.discount),
        old_gold_adjustment=_to_money(pricing.old_gold_adjustment),
        line_total=_to_money(pricing.line_total),
    )


def payment_mode_label(payments) -> str:
    methods = {payment.method for payment in payments}
    if not methods:
        return Invoice.PaymentMode.CREDIT
    if len(methods) == 1:
        return methods.pop()
    return Invoice.PaymentMode.SPLIT


def invoice_status(amount_paid, balance_due) -> str:
    if balance_due <= 0:
        return Invoice.Status.PAID
    if amount_paid > 0:
        return Invoice.Status.PARTIAL
    return Invoice.Status.PENDING


def _build_item(entry, position):
    quantity = int(entry.get("quantity") or 0)
    if quantity < 1:
        raise ValidationError({"items": f"Item {position + 1}: quantity must be at least 1."})
    price = Decimal(str(entry.get("price") or 0))
    overrides = {field: entry[field] for field in ITEM_OVERRIDE_FIELDS if entry.get(field) is not None}

    if entry.get("is_custom"):
        if not entry.get("name"):
            raise ValidationError({"items": f"Item {position + 1}: custom items need a name."})
        details = {field: entry.get(field) or "" for field in CUSTOM_DETAIL_FIELDS}
        return OrderItem(
            position=position,
            kind=OrderItem.Kind.CUSTOM,
            name=entry["name"],
            purity=entry.get("purity") or "",
            weight=entry.get("weight"),
            quantity=quantity,
            price=price,
            **details,
            **overrides,
        )

    product_id = entry.get("product")
    if not product_id:
        raise ValidationError(
            {"items": f"Item {position + 1} must be custom or reference a catalog product."}
        )
    product = get_catalog_product(product_id)
    if product is None:
        raise NotFound(f"Product not found for ID: {product_id}")
    return OrderItem(
        position=position,
        kind=OrderItem.Kind.CATALOG,
        product=product,
        name=product.name,
        sku=product.sku,
        purity=product.purity or "",
        weight=product.gross_weight,
        quantity=quantity,
        price=price,
        **overrides,
    )


def create_order(
    *,
    customer_id,
    items,
    expected_delivery_date,
    advance_amount=ZERO,
    notes="",
    payment_method=OrderPayment.Method.CASH,
    user=None,
    branch_id=None,
):
    if not items:
        raise ValidationError({"items": "Order must contain at least one item."})
    advance = Decimal(str(advance_amount or 0))
    if advance < 0:
        raise ValidationError({"advance_amount": "Advance cannot be negative."})

    customer = get_customer(customer_id, branch_id=branch_id)
    order_items = [_build_item(entry, position) for position, entry in enumerate(items)]

    total = sum((item.price * item.quantity for item in order_items), ZERO)
    if advance >= total:
        payment_status = Order.PaymentStatus.FULL_PAID
    elif advance > 0:
        payment_status = Order.PaymentStatus.ADVANCE_PAID
    else:
        payment_status = Order.PaymentStatus.UNPAID

    with transaction.atomic():
        order = Order.objects.create(
            branch_id=branch_id or customer.branch_id,
            order_number=_unique_number(Order, "order_number", settings.ORDER_NUMBER_PREFIX),
            customer=customer,
            customer_name=customer.name,
            customer_phone=customer.phone or "",
            customer_email=customer.email or "",
            total_amount=_to_money(total),
            advance_amount=_to_money(advance),
            remaining_amount=_to_money(max(ZERO, total - advance)),
            order_status=Order.Status.PENDING,
            payment_status=payment_status,
            expected_delivery_date=expected_delivery_date,
            notes=notes or "",
            created_by=user if user is not None and user.is_authenticated else None,
        )
        for item in order_items:
            item.order = order
        OrderItem.objects.bulk_create(order_items)

        if advance > 0:
            OrderPayment.objects.create(
                order=order,
                amount=advance,
                method=payment_method or OrderPayment.Method.CASH,
                kind=OrderPayment.Kind.ADVANCE,
                received_by=order.created_by,
            )
            record_credit(
                category=LedgerEntry.Category.ORDER_ADVANCE,
                amount=advance,
                method=payment_method or OrderPayment.Method.CASH,
                description=f"Advance for Order {order.order_number}",
                related_entity_type="orders.order",
                related_entity_id=order.id,
                performed_by=user,
                branch_id=order.branch_id,
            )

    logger.info(
        "order_created",
        extra={"order_id": order.id, "order_number": order.order_number, "amount": order.total_amount},
    )
    return order


def add_payment(order_id, *, amount, method=OrderPayment.Method.CASH, notes="", user=None, queryset=None):
    amount = _positive_amount(amount, "amount")

    with transaction.atomic():
        order = _lock_order(order_id, queryset)
        if order.remaining_amount <= 0:
            raise AlreadySettled("Order is already fully paid.")

        paid = _paid_total(order) + amount
        remaining = max(ZERO, order.total_amount - paid)
        # The payment that clears the balance is the final one.
        kind = OrderPayment.Kind.FINAL if remaining <= 0 else OrderPayment.Kind.PARTIAL
        OrderPayment.objects.create(
            order=order,
            amount=amount,
            method=method,
            kind=kind,
            notes=notes or "",
            received_by=user if user is not None and user.is_authenticated else None,
        )

        order.remaining_amount = _to_money(remaining)
        order.payment_status = (
            Order.PaymentStatus.FULL_PAID if remaining <= 0 else Order.PaymentStatus.PARTIALLY_PAID
        )
        order.save(update_fields=["remaining_amount", "payment_status", "updated_at"])

        record_credit(
            category=LedgerEntry.Category.CUSTOMER_PAYMENT,
            amount=amount,
            method=method,
            description=f"Payment for Order {order.order_number}",
            related_entity_type="orders.order",
            related_entity_id=order.id,
            performed_by=user,
            branch_id=order.branch_id,
        )

    logger.info(
        "order_payment_added",
        extra={"order_id": order.id, "order_number": order.order_number, "amount": amount},
    )
    return order


def update_order_item(order_id, item_id, patch, *, user=None, queryset=None):
    """Apply overrides to one item and reprice it when asked or when its weight moved."""
    recalculate = bool(patch.get("recalculate"))
    if "quantity" in patch and (patch["quantity"] is None or int(patch["quantity"]) < 1):
        raise ValidationError({"quantity": "Quantity must be at least 1."})

    with transaction.atomic():
        order = _lock_order(order_id, queryset)
        _ensure_not_delivered(order)
        item = _get_item(order, item_id)

        previous_weight = item.weight
        for field in ITEM_PATCH_FIELDS:
            if field in patch:
                setattr(item, field, patch[field])
        weight_changed = "weight" in patch and item.weight != previous_weight

        if recalculate or weight_changed:
            rates = latest_metal_rates()
            _log_missing_rates(order, rates)
            _, rate, pricing = price_order_item(item, rates, order=order)
            item.price = pricing.unit_price
            item.applied_rate = _to_money(rate)

        item.save()
        recalculate_totals(order)

    logger.info(
        "order_item_updated",
        extra={"order_id": order.id, "order_number": order.order_number, "item_id": item.id, "amount": item.price},
    )
    return order


def delete_order_item(order_id, item_id, *, user=None, queryset=None):
    with transaction.atomic():
        order = _lock_order(order_id, queryset)
        _ensure_not_delivered(order)
        item = _get_item(order, item_id)
        if order.items.count() <= 1:
            raise ValidationError("An order must keep at least one item.")
        item.delete()
        recalculate_totals(order)

    logger.info(
        "order_item_deleted",
        extra={"order_id": order.id, "order_number": order.order_number, "item_id": item_id},
    )
    return order


def update_order_status(order_id, status, *, user=None, queryset=None):
    if status not in Order.Status.values:
        raise ValidationError({"status": f"'{status}' is not a valid order status."})

    with transaction.atomic():
        order = _lock_order(order_id, queryset)
        current = order.order_status
        if status == current:
            return order
        if status == Order.Status.DELIVERED:
            raise IllegalTransition("Orders are marked delivered through the deliver operation.")
        if current in TERMINAL_STATUSES or status not in STATUS_TRANSITIONS.get(current, ()):
            raise IllegalTransition(f"Cannot move an order from {current} to {status}.")

        order.order_status = status
        order.save(update_fields=["order_status", "updated_at"])

    logger.info(
        "order_status_updated",
        extra={"order_id": order.id, "order_number": order.order_number},
    )
    return order


def deliver_order(order_id, *, final_payment=None, user=None, queryset=None):
    """Settle, decrement stock once, and convert the order into an invoice.

    Returns ``(order, invoice)``.
    """
    final_amount = None
    final_method = OrderPayment.Method.CASH
    if final_payment:
        final_amount = _positive_amount(final_payment.get("amount"), "final_payment")
        final_method = final_payment.get("method") or OrderPayment.Method.CASH
    actor = user if user is not None and user.is_authenticated else None

    with transaction.atomic():
        order = _lock_order(order_id, queryset)
        if order.is_delivered or order.order_status == Order.Status.DELIVERED:
            raise IllegalTransition("Order already delivered.")
        if order.order_status == Order.Status.CANCELLED:
            raise IllegalTransition("Cancelled orders cannot be delivered.")

        if final_amount is not None:
            OrderPayment.objects.create(
                order=order,
                amount=final_amount,
                method=final_method,
                kind=OrderPayment.Kind.FINAL,
                notes=final_payment.get("notes") or "",
                received_by=actor,
            )
            record_credit(
                category=LedgerEntry.Category.SALES,
                amount=final_amount,
                method=final_method,
                description=f"Final Payment for Order {order.order_number}",
                related_entity_type="orders.order",
                related_entity_id=order.id,
                performed_by=user,
                branch_id=order.branch_id,
            )

        remaining = max(ZERO, order.total_amount - _paid_total(order))
        order.remaining_amount = _to_money(remaining)
        order.payment_status = (
            Order.PaymentStatus.FULL_PAID if remaining <= 0 else Order.PaymentStatus.PARTIALLY_PAID
        )

        items = list(order.items.all())
        if not order.inventory_applied:
            # Stock rows are always locked in product-id order.
            catalog_items = sorted((item for item in items if not item.is_custom), key=lambda item: str(item.product_id))
            for item in catalog_items:
                record_order_sale(item.product_id, item.quantity, order=order)

        rates = latest_metal_rates()
        _log_missing_rates(order, rates)
        lines = [
            synthesize_invoice_line(item, rates, position=position, order=order)
            for position, item in enumerate(items)
        ]

        subtotal = sum((line.line_total for line in lines), ZERO)
        tax_total = ZERO
        discount_total = ZERO
        amount_paid = order.total_amount - order.remaining_amount
        balance_due = max(ZERO, order.remaining_amount)

        invoice = Invoice.objects.create(
            branch_id=order.branch_id,
            customer_id=order.customer_id,
            order=order,
            invoice_number=_unique_number(Invoice, "invoice_number", settings.INVOICE_NUMBER_PREFIX),
            status=invoice_status(amount_paid, balance_due),
            subtotal=_to_money(subtotal),
            discount_total=discount_total,
            tax_total=tax_total,
            total=_to_money(subtotal + tax_total - discount_total),
            amount_paid=_to_money(amount_paid),
            balance_due=_to_money(balance_due),
            payment_mode=payment_mode_label(order.payments.all()),
            metal_rates=to_json_compatible(rates.as_dict()) if rates is not None else None,
            created_by=actor,
        )
        for line in lines:
            line.invoice = invoice
        InvoiceLine.objects.bulk_create(lines)

        order.order_status = Order.Status.DELIVERED
        order.is_delivered = True
        order.actual_delivery_date = timezone.now()
        order.inventory_applied = True
        order.save(
            update_fields=[
                "remaining_amount",
                "payment_status",
                "order_status",
                "is_delivered",
                "actual_delivery_date",
                "inventory_applied",
                "updated_at",
            ]
        )

    logger.info(
        "order_delivered",
        extra={
            "order_id": order.id,
            "order_number": order.order_number,
            "invoice_number": invoice.invoice_number,
            "amount": invoice.total,
        },
    )
    return order, invoice


def _alert_horizon(now):
    return now + timedelta(hours=settings.DELIVERY_ALERT_WINDOW_HOURS)


def open_orders(queryset):
    return queryset.exclude(order_status__in=OPEN_EXCLUDED_STATUSES)


def dashboard_metrics(queryset, now=None):
    now = now or timezone.now()
    start_of_day = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_month = start_of_day.replace(day=1)
    pending = open_orders(queryset)

    status_counts = {
        row["order_status"]: row["count"]
        for row in queryset.order_by().values("order_status").annotate(count=Count("id"))
    }
    return {
        "orders_today": queryset.filter(
            created_at__gte=start_of_day, created_at__lt=start_of_day + timedelta(days=1)
        ).count(),
        "orders_this_month": queryset.filter(created_at__gte=start_of_month).count(),
        "total_advance_outstanding": queryset.exclude(order_status=Order.Status.CANCELLED).aggregate(
            total=Sum("advance_amount")
        )["total"]
        or ZERO,
        "total_remaining_balance": pending.aggregate(total=Sum("remaining_amount"))["total"] or ZERO,
        "near_delivery_count": pending.filter(
            expected_delivery_date__gte=now, expected_delivery_date__lte=_alert_horizon(now)
        ).count(),
        "overdue_count": pending.filter(expected_delivery_date__lt=now).count(),
        "status_counts": status_counts,
    }


def delivery_alerts(queryset, now=None):
    """Open orders due inside the alert window, overdue ones included."""
    now = now or timezone.now()
    return open_orders(queryset).filter(expected_delivery_date__lte=_alert_horizon(now)).order_by(
        "expected_delivery_date"
    )
