import logging
import uuid

from django.db.models import F
from django.utils import timezone

from inventory.models import MetalRate, Product, StockMove

logger = logging.getLogger(__name__)


def _parse_uuid(value):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_catalog_product(product_id):
    """Return the catalog product or None; malformed ids count as missing."""
    parsed = _parse_uuid(product_id)
    if parsed is None:
        return None
    return Product.objects.filter(pk=parsed).first()


def latest_metal_rates():
    """The live reference table, or None when no rate was ever recorded."""
    return MetalRate.objects.order_by("-created_at").first()


def decrement_stock(product, quantity):
    """Take `quantity` pieces out of stock.

    Must run inside a transaction; the row lock serializes concurrent
    deliveries of the same product.
    """
    locked = Product.objects.select_for_update().filter(pk=product.pk).first()
    if locked is None:
        return None
    Product.objects.filter(pk=locked.pk).update(quantity=F("quantity") - quantity, updated_at=timezone.now())
    locked.refresh_from_db(fields=["quantity", "updated_at"])
    return locked


def append_stock_history(product, *, quantity, reason, source_ref_type=None, source_ref_id=None, details=None):
    return StockMove.objects.create(
        branch_id=product.branch_id,
        product=product,
        quantity=quantity,
        reason=reason,
        source_ref_type=source_ref_type,
        source_ref_id=source_ref_id,
        details=details or {},
    )


def record_order_sale(product_id, quantity, *, order):
    """Decrement stock and log a sale move for one delivered order line.

    Missing catalog records are skipped so a stale link never blocks delivery.
    """
    product = get_catalog_product(product_id)
    if product is not None:
        product = decrement_stock(product, quantity)
    if product is None:
        logger.warning(
            "catalog_product_missing",
            extra={"order_id": order.id, "order_number": order.order_number, "product_id": product_id},
        )
        return None

    append_stock_history(
        product,
        quantity=-quantity,
        reason=StockMove.Reason.SALE,
        source_ref_type="orders.order",
        source_ref_id=order.id,
        details={"quantity": quantity, "order_number": order.order_number},
    )
    return product
