import uuid
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.test import TestCase
from django.utils import timezone

from core.models import Branch
from inventory.models import MetalRate, Product, StockMove
from inventory.services import (
    decrement_stock,
    get_catalog_product,
    latest_metal_rates,
    record_order_sale,
)
from orders.rates import resolve_metal_rate


class CatalogLookupTests(TestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="IN", name="Inventory")
        self.product = Product.objects.create(
            branch=self.branch,
            sku="BANGLE-01",
            name="Plain Bangle",
            purity="22K",
            gross_weight=Decimal("12.500"),
            quantity=4,
        )

    def test_lookup_by_id(self):
        self.assertEqual(get_catalog_product(self.product.id), self.product)
        self.assertEqual(get_catalog_product(str(self.product.id)), self.product)

    def test_missing_or_malformed_ids_resolve_to_none(self):
        self.assertIsNone(get_catalog_product(uuid.uuid4()))
        self.assertIsNone(get_catalog_product("not-a-uuid"))
        self.assertIsNone(get_catalog_product(None))

    def test_decrement_stock(self):
        product = decrement_stock(self.product, 3)

        self.assertEqual(product.quantity, 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 1)


class OrderSaleStockTests(TestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="IS", name="Inventory Sales")
        self.product = Product.objects.create(
            branch=self.branch,
            sku="CHAIN-01",
            name="Rope Chain",
            purity="18K",
            gross_weight=Decimal("8.000"),
            quantity=10,
        )

    def _order(self):
        return SimpleNamespace(id=uuid.uuid4(), order_number="ORD-TEST-0001")

    def test_sale_writes_history_entry(self):
        order = self._order()

        record_order_sale(self.product.id, 3, order=order)

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 7)
        move = StockMove.objects.get(product=self.product)
        self.assertEqual(move.quantity, -3)
        self.assertEqual(move.branch_id, self.branch.id)
        self.assertEqual(move.source_ref_type, "orders.order")
        self.assertEqual(move.source_ref_id, order.id)
        self.assertEqual(move.details, {"quantity": 3, "order_number": "ORD-TEST-0001"})

    def test_missing_product_is_skipped_and_logged(self):
        with self.assertLogs("inventory.services", level="WARNING") as logs:
            result = record_order_sale(uuid.uuid4(), 1, order=self._order())

        self.assertIsNone(result)
        self.assertIn("catalog_product_missing", logs.output[0])
        self.assertFalse(StockMove.objects.exists())


class ReferenceRateTests(TestCase):
    def test_no_rates_recorded(self):
        self.assertIsNone(latest_metal_rates())

    def test_newest_rate_row_is_live(self):
        older = MetalRate.objects.create(rate_24k=Decimal("7000"), rate_22k=Decimal("6500"), rate_18k=Decimal("5000"))
        MetalRate.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(hours=1))
        newest = MetalRate.objects.create(rate_24k=Decimal("7100"), rate_22k=Decimal("6600"), rate_18k=Decimal("5100"))

        live = latest_metal_rates()

        self.assertEqual(live, newest)
        self.assertEqual(resolve_metal_rate("24K", rates=live), Decimal("7100"))
        self.assertEqual(
            live.as_dict(),
            {"rate_24k": Decimal("7100"), "rate_22k": Decimal("6600"), "rate_18k": Decimal("5100")},
        )
