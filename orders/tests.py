from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.db.models import Sum
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import AuditLog, Branch
from inventory import services as inventory_services
from inventory.models import MetalRate, Product, StockMove
from ledger.models import LedgerEntry
from orders import services
from orders.models import Order, OrderItem, OrderPayment
from orders.pricing import CatalogDefaults, LineInput, parse_target_weight, price_line
from orders.rates import purity_bucket, resolve_metal_rate
from sales.models import Customer, Invoice


def rate_table(rate_18k=Decimal("0"), rate_22k=Decimal("0"), rate_24k=Decimal("0")):
    return SimpleNamespace(rate_18k=rate_18k, rate_22k=rate_22k, rate_24k=rate_24k)


class RateResolverTests(SimpleTestCase):
    def setUp(self):
        self.rates = rate_table(rate_18k=Decimal("25"), rate_22k=Decimal("30"), rate_24k=Decimal("35"))

    def test_priority_manual_then_applied_then_reference(self):
        self.assertEqual(resolve_metal_rate("22K", manual_rate=50, applied_rate=40, rates=self.rates), Decimal("50"))
        self.assertEqual(resolve_metal_rate("22K", manual_rate=None, applied_rate=40, rates=self.rates), Decimal("40"))
        self.assertEqual(resolve_metal_rate("22K", rates=self.rates), Decimal("30"))

    def test_zero_overrides_are_ignored(self):
        self.assertEqual(resolve_metal_rate("24K", manual_rate=0, applied_rate=0, rates=self.rates), Decimal("35"))

    def test_purity_is_normalized_and_unknown_values_use_22k(self):
        self.assertEqual(purity_bucket(" 18 k "), "18K")
        self.assertEqual(purity_bucket("925"), "22K")
        self.assertEqual(purity_bucket(None), "22K")
        self.assertEqual(resolve_metal_rate("18 K", rates=self.rates), Decimal("25"))

    def test_empty_bucket_falls_back_to_22k(self):
        rates = rate_table(rate_18k=Decimal("0"), rate_22k=Decimal("30"), rate_24k=Decimal("35"))

        self.assertEqual(resolve_metal_rate("18K", rates=rates), Decimal("30"))

    def test_missing_table_without_overrides_resolves_to_zero(self):
        self.assertEqual(resolve_metal_rate("22K", rates=None), Decimal("0"))
        self.assertEqual(resolve_metal_rate("22K", applied_rate="12.5", rates=None), Decimal("12.5"))


class LinePricingTests(SimpleTestCase):
    def setUp(self):
        self.catalog = CatalogDefaults(
            purity="22K",
            gross_weight=Decimal("5.000"),
            making_charge_per_gram=Decimal("100"),
            making_charge_fixed=Decimal("50"),
            wastage_percent=Decimal("2"),
            purchase_price=Decimal("4000"),
        )

    def test_catalog_line_derives_making_and_wastage(self):
        pricing = price_line(LineInput(is_custom=False, quantity=3), Decimal("6500"), self.catalog)

        self.assertEqual(pricing.total_weight, Decimal("15.000"))
        self.assertEqual(pricing.base_value, Decimal("97500"))
        self.assertEqual(pricing.making_charge, Decimal("1550"))
        self.assertEqual(pricing.wastage, Decimal("1950"))
        self.assertEqual(pricing.line_total, Decimal("101000"))

    def test_explicit_overrides_win_including_zero(self):
        line = LineInput(
            is_custom=False,
            quantity=1,
            making_charge=Decimal("0"),
            wastage=Decimal("10"),
            other_cost=Decimal("5"),
            discount=Decimal("20"),
            old_gold_adjustment=Decimal("100"),
        )

        pricing = price_line(line, Decimal("6500"), self.catalog)

        self.assertEqual(pricing.making_charge, Decimal("0"))
        self.assertEqual(pricing.wastage, Decimal("10"))
        self.assertEqual(pricing.line_total, Decimal("32395"))

    def test_custom_line_ignores_catalog_and_parses_target_weight(self):
        line = LineInput(is_custom=True, quantity=2, target_weight="8-10g", making_charge=Decimal("300"))

        pricing = price_line(line, Decimal("5000"), self.catalog)

        self.assertEqual(pricing.unit_weight, Decimal("8"))
        self.assertEqual(pricing.wastage, Decimal("0"))
        self.assertEqual(pricing.line_total, Decimal("80300"))

    def test_explicit_zero_weight_is_not_replaced_by_fallbacks(self):
        catalog_line = LineInput(is_custom=False, quantity=1, weight=Decimal("0"))
        custom_line = LineInput(is_custom=True, quantity=1, weight=Decimal("0"), target_weight="8-10g")

        catalog_pricing = price_line(catalog_line, Decimal("6500"), self.catalog)
        custom_pricing = price_line(custom_line, Decimal("5000"), None)

        self.assertEqual(catalog_pricing.unit_weight, Decimal("0"))
        self.assertEqual(catalog_pricing.base_value, Decimal("0"))
        self.assertEqual(catalog_pricing.making_charge, Decimal("50"))
        self.assertEqual(custom_pricing.unit_weight, Decimal("0"))
        self.assertEqual(custom_pricing.line_total, Decimal("0"))

    def test_rounding_happens_once_on_the_final_sum(self):
        line = LineInput(is_custom=True, quantity=1, weight=Decimal("1"), making_charge=Decimal("0.4"), wastage=Decimal("0.4"))

        pricing = price_line(line, Decimal("100"), None)

        self.assertEqual(pricing.line_total, Decimal("101"))

    def test_half_units_round_up(self):
        line = LineInput(is_custom=True, quantity=1, weight=Decimal("2"))

        self.assertEqual(price_line(line, Decimal("100.25"), None).line_total, Decimal("201"))

    def test_unit_price_spreads_adjustments_over_quantity(self):
        line = LineInput(
            is_custom=True,
            quantity=2,
            weight=Decimal("4"),
            making_charge=Decimal("300"),
            other_cost=Decimal("50"),
            discount=Decimal("10"),
        )

        pricing = price_line(line, Decimal("6500"), None)

        self.assertEqual(pricing.unit_price, Decimal("26170"))
        self.assertEqual(pricing.line_total, Decimal("52340"))

    def test_missing_catalog_degrades_to_zero(self):
        pricing = price_line(LineInput(is_custom=False, quantity=1), Decimal("6500"), None)

        self.assertEqual(pricing.line_total, Decimal("0"))

    def test_parse_target_weight(self):
        self.assertEqual(parse_target_weight("10-12g"), Decimal("10"))
        self.assertEqual(parse_target_weight("approx .5 g"), Decimal(".5"))
        self.assertEqual(parse_target_weight("about 7.25 grams"), Decimal("7.25"))
        self.assertEqual(parse_target_weight("n/a"), Decimal("0"))
        self.assertEqual(parse_target_weight(None), Decimal("0"))


class OrderTestMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.branch = Branch.objects.create(code="OR", name="Orders Branch")
        self.other_branch = Branch.objects.create(code="OX", name="Other Branch")
        self.manager = self.user_model.objects.create_user(
            username="orders-manager",
            password="pass1234",
            branch=self.branch,
            role="manager",
        )
        self.sales_user = self.user_model.objects.create_user(
            username="orders-sales",
            password="pass1234",
            branch=self.branch,
            role="sales",
        )

        self.customer = Customer.objects.create(
            branch=self.branch, name="Meera Iyer", phone="9840012345", email="meera@example.com"
        )
        self.product = Product.objects.create(
            branch=self.branch,
            sku="RING-22-001",
            name="Temple Ring",
            purity="22K",
            gross_weight=Decimal("5.000"),
            making_charge_per_gram=Decimal("100.00"),
            making_charge_fixed=Decimal("50.00"),
            wastage_percent=Decimal("2.00"),
            purchase_price=Decimal("4000.00"),
            quantity=10,
        )
        self.rates = MetalRate.objects.create(
            rate_24k=Decimal("7000.00"), rate_22k=Decimal("6500.00"), rate_18k=Decimal("5000.00")
        )
        self.client.force_authenticate(user=self.manager)

    def _due(self, **delta):
        return (timezone.now() + timedelta(**(delta or {"days": 3}))).isoformat()

    def _create(self, items, advance="0", **extra):
        payload = {
            "customer": str(self.customer.id),
            "items": items,
            "advance_amount": advance,
            "expected_delivery_date": self._due(),
            **extra,
        }
        return self.client.post("/api/v1/orders/", payload, format="json")

    def _custom_item(self, **overrides):
        item = {"is_custom": True, "name": "Bridal Necklace", "quantity": 2, "price": "1000.00"}
        item.update(overrides)
        return item

    def _catalog_item(self, **overrides):
        item = {"product": str(self.product.id), "quantity": 3, "price": "35000.00"}
        item.update(overrides)
        return item

    def _order(self, response):
        self.assertIn(response.status_code, (200, 201), response.content)
        return Order.objects.get(id=response.json()["id"])

    def assertSettlementInvariants(self, order):
        order.refresh_from_db()
        total = sum((item.price * item.quantity for item in order.items.all()), Decimal("0"))
        paid = order.payments.aggregate(total=Sum("amount"))["total"] or Decimal("0")
        self.assertEqual(order.total_amount, total)
        self.assertEqual(order.remaining_amount, max(Decimal("0"), total - paid))
        self.assertGreaterEqual(order.remaining_amount, 0)
        self.assertGreaterEqual(order.items.count(), 1)


class OrderCreationTests(OrderTestMixin, TestCase):
    def test_custom_order_with_advance(self):
        with self.captureOnCommitCallbacks(execute=True):
            response = self._create([self._custom_item()], advance="500")

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(Decimal(payload["total_amount"]), Decimal("2000"))
        self.assertEqual(Decimal(payload["remaining_amount"]), Decimal("1500"))
        self.assertEqual(payload["payment_status"], "advance_paid")
        self.assertEqual(payload["order_status"], "pending")
        self.assertTrue(payload["order_number"].startswith("ORD-"))
        self.assertEqual(payload["customer_name"], "Meera Iyer")
        self.assertEqual(payload["items"][0]["kind"], "custom")
        self.assertIsNone(payload["items"][0]["product"])

        order = Order.objects.get(id=payload["id"])
        advance = order.payments.get()
        self.assertEqual(advance.kind, OrderPayment.Kind.ADVANCE)
        self.assertEqual(advance.amount, Decimal("500"))

        entry = LedgerEntry.objects.get(related_entity_id=order.id)
        self.assertEqual(entry.category, LedgerEntry.Category.ORDER_ADVANCE)
        self.assertEqual(entry.direction, LedgerEntry.Direction.CREDIT)
        self.assertEqual(entry.amount, Decimal("500"))
        self.assertEqual(entry.performed_by_id, self.manager.id)
        self.assertSettlementInvariants(order)

    def test_catalog_item_snapshots_product_fields(self):
        order = self._order(self._create([self._catalog_item()]))

        item = order.items.get()
        self.assertEqual(item.kind, OrderItem.Kind.CATALOG)
        self.assertEqual(item.product_id, self.product.id)
        self.assertEqual(item.name, "Temple Ring")
        self.assertEqual(item.sku, "RING-22-001")
        self.assertEqual(item.purity, "22K")
        self.assertEqual(item.weight, Decimal("5.000"))
        self.assertEqual(order.total_amount, Decimal("105000"))
        self.assertEqual(order.payment_status, Order.PaymentStatus.UNPAID)
        self.assertFalse(order.payments.exists())

    def test_advance_covering_total_is_full_paid(self):
        order = self._order(self._create([self._custom_item()], advance="2500"))

        self.assertEqual(order.payment_status, Order.PaymentStatus.FULL_PAID)
        self.assertEqual(order.remaining_amount, Decimal("0"))

    def test_empty_item_list_is_rejected(self):
        response = self._create([])

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertFalse(Order.objects.exists())

    def test_item_without_custom_flag_or_product_is_rejected(self):
        response = self._create([{"name": "Loose item", "quantity": 1, "price": "10.00"}])

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_unknown_catalog_product_is_not_found(self):
        response = self._create([self._catalog_item(product="00000000-0000-0000-0000-000000000000")])

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")
        self.assertFalse(Order.objects.exists())

    def test_unknown_customer_is_not_found(self):
        response = self.client.post(
            "/api/v1/orders/",
            {
                "customer": "00000000-0000-0000-0000-000000000000",
                "items": [self._custom_item()],
                "expected_delivery_date": self._due(),
            },
            format="json",
        )

        self.assertEqual(response.status_code, 404)

    def test_customer_from_other_branch_is_not_found(self):
        stranger = Customer.objects.create(branch=self.other_branch, name="Other Customer")

        response = self._create([self._custom_item()], customer=str(stranger.id))

        self.assertEqual(response.status_code, 404)

    def test_quantity_must_be_positive(self):
        response = self._create([self._custom_item(quantity=0)])

        self.assertEqual(response.status_code, 400)

    def test_create_writes_audit_log(self):
        order = self._order(self._create([self._custom_item()]))

        log = AuditLog.objects.get(action="order.create")
        self.assertEqual(log.entity, "order")
        self.assertEqual(log.entity_id, order.id)
        self.assertEqual(log.actor_id, self.manager.id)
        self.assertEqual(log.branch_id, self.branch.id)


class OrderPaymentTests(OrderTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self._order(self._create([self._custom_item()], advance="500"))

    def _pay(self, amount, method="cash", **extra):
        return self.client.post(
            f"/api/v1/orders/{self.order.id}/pay/", {"amount": amount, "method": method, **extra}, format="json"
        )

    def test_payment_clearing_balance_is_final(self):
        with self.captureOnCommitCallbacks(execute=True):
            response = self._pay("1500", notes="balance")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(Decimal(payload["remaining_amount"]), Decimal("0"))
        self.assertEqual(payload["payment_status"], "full_paid")
        self.assertEqual(payload["payments"][-1]["kind"], "final")

        entry = LedgerEntry.objects.get(category=LedgerEntry.Category.CUSTOMER_PAYMENT)
        self.assertEqual(entry.amount, Decimal("1500"))
        self.assertSettlementInvariants(self.order)

    def test_partial_payment(self):
        response = self._pay("400", method="upi")

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.remaining_amount, Decimal("1100"))
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PARTIALLY_PAID)
        self.assertEqual(self.order.payments.last().kind, OrderPayment.Kind.PARTIAL)
        self.assertSettlementInvariants(self.order)

    def test_overpayment_clamps_remaining_at_zero(self):
        self._pay("2000")

        self.order.refresh_from_db()
        self.assertEqual(self.order.remaining_amount, Decimal("0"))
        self.assertEqual(self.order.payments.last().kind, OrderPayment.Kind.FINAL)

    def test_payment_on_settled_order_is_rejected(self):
        self._pay("1500")

        response = self._pay("10")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "already_settled")
        self.assertEqual(self.order.payments.count(), 2)

    def test_non_positive_amount_is_rejected(self):
        response = self._pay("0")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")

    def test_ledger_failure_does_not_roll_back_payment(self):
        with patch("ledger.services.LedgerEntry.objects.create", side_effect=DatabaseError("ledger down")):
            with self.assertLogs("ledger.services", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    response = self._pay("300")

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.remaining_amount, Decimal("1200"))


class OrderItemEditTests(OrderTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self._order(
            self._create(
                [
                    self._custom_item(purity="22K", making_charge="300.00", other_cost="50.00", discount="10.00"),
                    self._catalog_item(quantity=1),
                ],
                advance="500",
            )
        )
        self.custom_item = self.order.items.get(kind=OrderItem.Kind.CUSTOM)
        self.catalog_item = self.order.items.get(kind=OrderItem.Kind.CATALOG)

    def _item_url(self, item):
        return f"/api/v1/orders/{self.order.id}/items/{item.id}/"

    def test_weight_change_reprices_the_item(self):
        response = self.client.patch(self._item_url(self.custom_item), {"weight": "4.000"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.custom_item.refresh_from_db()
        self.assertEqual(self.custom_item.price, Decimal("26170"))
        self.assertEqual(self.custom_item.applied_rate, Decimal("6500"))

        self.order.refresh_from_db()
        self.assertEqual(self.order.total_amount, Decimal("87340"))
        self.assertEqual(self.order.remaining_amount, Decimal("86840"))
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.ADVANCE_PAID)
        self.assertSettlementInvariants(self.order)

    def test_override_without_recalculate_keeps_price(self):
        response = self.client.patch(self._item_url(self.custom_item), {"discount": "99.00"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.custom_item.refresh_from_db()
        self.assertEqual(self.custom_item.discount, Decimal("99.00"))
        self.assertEqual(self.custom_item.price, Decimal("1000"))

    def test_recalculate_uses_manual_rate_first(self):
        response = self.client.patch(
            self._item_url(self.catalog_item), {"manual_rate": "6000.00", "recalculate": True}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.catalog_item.refresh_from_db()
        # 6000 * 5 + (100 * 5 + 50) + 30000 * 2%
        self.assertEqual(self.catalog_item.price, Decimal("31150"))
        self.assertEqual(self.catalog_item.applied_rate, Decimal("6000"))
        self.assertSettlementInvariants(self.order)

    def test_applied_rate_sticks_when_reference_moves(self):
        self.client.patch(self._item_url(self.catalog_item), {"recalculate": True}, format="json")
        MetalRate.objects.create(rate_24k=Decimal("8000"), rate_22k=Decimal("7500"), rate_18k=Decimal("6000"))

        self.client.patch(self._item_url(self.catalog_item), {"recalculate": True}, format="json")

        self.catalog_item.refresh_from_db()
        self.assertEqual(self.catalog_item.applied_rate, Decimal("6500"))

    def test_quantity_change_updates_totals(self):
        response = self.client.patch(self._item_url(self.custom_item), {"quantity": 5}, format="json")

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.total_amount, Decimal("40000"))
        self.assertSettlementInvariants(self.order)

    def test_delete_item_recomputes_totals(self):
        response = self.client.delete(self._item_url(self.catalog_item))

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.items.count(), 1)
        self.assertEqual(self.order.total_amount, Decimal("2000"))
        self.assertEqual(self.order.remaining_amount, Decimal("1500"))
        self.assertTrue(AuditLog.objects.filter(action="order.item.delete", entity_id=self.order.id).exists())

    def test_deleting_last_item_is_rejected(self):
        self.client.delete(self._item_url(self.catalog_item))

        response = self.client.delete(self._item_url(self.custom_item))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.order.items.count(), 1)

    def test_unknown_item_is_not_found(self):
        response = self.client.patch(
            f"/api/v1/orders/{self.order.id}/items/00000000-0000-0000-0000-000000000000/",
            {"discount": "1.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 404)

    def test_delivered_order_items_are_frozen(self):
        self.client.post(f"/api/v1/orders/{self.order.id}/deliver/", {}, format="json")

        patch_response = self.client.patch(self._item_url(self.custom_item), {"discount": "1.00"}, format="json")
        delete_response = self.client.delete(self._item_url(self.catalog_item))

        self.assertEqual(patch_response.status_code, 409)
        self.assertEqual(patch_response.json()["code"], "illegal_transition")
        self.assertEqual(delete_response.status_code, 409)
        self.assertEqual(self.order.items.count(), 2)


class OrderStatusTests(OrderTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = self._order(self._create([self._custom_item()]))
        self.url = f"/api/v1/orders/{self.order.id}/status/"

    def test_pending_to_ready(self):
        response = self.client.patch(self.url, {"status": "ready"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["order_status"], "ready")
        log = AuditLog.objects.get(action="order.status.update")
        self.assertEqual(log.before_snapshot, {"order_status": "pending"})

    def test_same_status_is_a_noop(self):
        response = self.client.patch(self.url, {"status": "pending"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["order_status"], "pending")

    def test_delivered_is_only_reachable_through_deliver(self):
        response = self.client.patch(self.url, {"status": "delivered"}, format="json")

        self.assertEqual(response.status_code, 409)
        self.order.refresh_from_db()
        self.assertEqual(self.order.order_status, Order.Status.PENDING)

    def test_cancelled_is_terminal(self):
        self.client.patch(self.url, {"status": "cancelled"}, format="json")

        response = self.client.patch(self.url, {"status": "ready"}, format="json")

        self.assertEqual(response.status_code, 409)

    def test_unknown_status_is_rejected(self):
        response = self.client.patch(self.url, {"status": "shipped"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_sales_role_cannot_change_status(self):
        self.client.force_authenticate(user=self.sales_user)

        response = self.client.patch(self.url, {"status": "ready"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")


class OrderDeliveryTests(OrderTestMixin, TestCase):
    def _deliver(self, order, body=None):
        return self.client.post(f"/api/v1/orders/{order.id}/deliver/", body or {}, format="json")

    def test_delivery_decrements_stock_exactly_once(self):
        order = self._order(self._create([self._catalog_item()]))

        first = self._deliver(order)
        second = self._deliver(order)

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 409)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 7)

        move = StockMove.objects.get(product=self.product)
        self.assertEqual(move.quantity, -3)
        self.assertEqual(move.reason, StockMove.Reason.SALE)
        self.assertEqual(move.source_ref_id, order.id)
        self.assertEqual(move.details, {"quantity": 3, "order_number": order.order_number})

        order.refresh_from_db()
        self.assertTrue(order.is_delivered)
        self.assertTrue(order.inventory_applied)
        self.assertEqual(order.order_status, Order.Status.DELIVERED)
        self.assertIsNotNone(order.actual_delivery_date)
        self.assertEqual(Invoice.objects.filter(order=order).count(), 1)

    def test_stock_rows_are_locked_in_the_same_order_for_every_delivery(self):
        bangle = Product.objects.create(
            branch=self.branch,
            sku="BANGLE-22-001",
            name="Plain Bangle",
            purity="22K",
            gross_weight=Decimal("12.000"),
            purchase_price=Decimal("4000.00"),
            quantity=5,
        )
        ring_then_bangle = self._order(
            self._create([self._catalog_item(quantity=1), self._catalog_item(product=str(bangle.id), quantity=1)])
        )
        bangle_then_ring = self._order(
            self._create([self._catalog_item(product=str(bangle.id), quantity=1), self._catalog_item(quantity=1)])
        )

        lock_orders = []
        for order in (ring_then_bangle, bangle_then_ring):
            with patch(
                "inventory.services.decrement_stock", wraps=inventory_services.decrement_stock
            ) as decrement_stock:
                self.assertEqual(self._deliver(order).status_code, 200)
            lock_orders.append([call.args[0].id for call in decrement_stock.call_args_list])

        expected = sorted([self.product.id, bangle.id], key=str)
        self.assertEqual(lock_orders, [expected, expected])
        self.product.refresh_from_db()
        bangle.refresh_from_db()
        self.assertEqual(self.product.quantity, 8)
        self.assertEqual(bangle.quantity, 3)

    def test_invoice_lines_are_rederived_from_current_data(self):
        order = self._order(
            self._create(
                [
                    self._catalog_item(),
                    self._custom_item(purity="18K", target_weight="8-10g", making_charge="300.00"),
                ],
                advance="1000",
            )
        )

        response = self._deliver(order)

        self.assertEqual(response.status_code, 200)
        invoice = Invoice.objects.get(id=response.json()["invoice"]["id"])
        catalog_line, custom_line = invoice.lines.all()

        self.assertEqual(catalog_line.product_id, self.product.id)
        self.assertEqual(catalog_line.rate, Decimal("6500"))
        self.assertEqual(catalog_line.weight, Decimal("15.000"))
        self.assertEqual(catalog_line.making_charge, Decimal("1550"))
        self.assertEqual(catalog_line.wastage, Decimal("1950"))
        self.assertEqual(catalog_line.purchase_rate, Decimal("4000"))
        self.assertEqual(catalog_line.line_total, Decimal("101000"))

        self.assertIsNone(custom_line.product_id)
        self.assertEqual(custom_line.rate, Decimal("5000"))
        self.assertEqual(custom_line.weight, Decimal("16.000"))
        self.assertEqual(custom_line.purchase_rate, Decimal("5000"))
        self.assertEqual(custom_line.line_total, Decimal("80300"))

        self.assertEqual(invoice.subtotal, Decimal("181300"))
        self.assertEqual(invoice.total, Decimal("181300"))
        self.assertEqual(invoice.tax_total, Decimal("0"))
        self.assertEqual(invoice.amount_paid, Decimal("1000"))
        self.assertEqual(invoice.balance_due, Decimal("106000"))
        self.assertEqual(invoice.status, Invoice.Status.PARTIAL)
        self.assertEqual(invoice.payment_mode, Invoice.PaymentMode.CASH)
        self.assertEqual(invoice.metal_rates["rate_22k"], "6500.00")
        self.assertTrue(invoice.invoice_number.startswith("INV-"))

        order.refresh_from_db()
        self.assertEqual(order.payment_status, Order.PaymentStatus.PARTIALLY_PAID)

    def test_invoice_lines_match_a_fresh_recomputation(self):
        order = self._order(
            self._create([self._catalog_item(), self._custom_item(purity="24K", weight="3.250", discount="15.00")])
        )
        self._deliver(order)

        invoice = Invoice.objects.get(order=order)
        for line in invoice.lines.select_related("order_item"):
            recomputed = services.synthesize_invoice_line(line.order_item, self.rates)
            self.assertEqual(recomputed.line_total, line.line_total)

    def test_final_payment_settles_and_books_sales(self):
        order = self._order(self._create([self._custom_item()], advance="500"))

        with self.captureOnCommitCallbacks(execute=True):
            response = self._deliver(order, {"final_payment": {"amount": "1500.00", "method": "card"}})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["order"]["payment_status"], "full_paid")
        self.assertEqual(payload["invoice"]["status"], "paid")
        self.assertEqual(payload["invoice"]["payment_mode"], "split")
        self.assertEqual(Decimal(payload["invoice"]["balance_due"]), Decimal("0"))

        final = OrderPayment.objects.get(order=order, kind=OrderPayment.Kind.FINAL)
        self.assertEqual(final.amount, Decimal("1500"))
        self.assertTrue(LedgerEntry.objects.filter(category=LedgerEntry.Category.SALES, amount=Decimal("1500")).exists())
        self.assertSettlementInvariants(order)

    def test_unpaid_delivery_is_pending_credit_invoice(self):
        order = self._order(self._create([self._custom_item()]))

        payload = self._deliver(order).json()

        self.assertEqual(payload["invoice"]["status"], "pending")
        self.assertEqual(payload["invoice"]["payment_mode"], "credit")

    def test_final_payment_must_be_positive(self):
        order = self._order(self._create([self._custom_item()]))

        response = self._deliver(order, {"final_payment": {"amount": "0", "method": "cash"}})

        self.assertEqual(response.status_code, 400)
        order.refresh_from_db()
        self.assertFalse(order.is_delivered)

    def test_missing_catalog_record_does_not_block_delivery(self):
        order = self._order(self._create([self._catalog_item()]))
        Product.objects.filter(id=self.product.id).delete()

        with self.assertLogs("inventory.services", level="WARNING"):
            response = self._deliver(order)

        self.assertEqual(response.status_code, 200)
        line = Invoice.objects.get(order=order).lines.get()
        self.assertIsNone(line.product_id)
        self.assertEqual(line.making_charge, Decimal("0"))
        self.assertEqual(line.wastage, Decimal("0"))
        self.assertEqual(line.line_total, Decimal("97500"))

    def test_cancelled_order_cannot_be_delivered(self):
        order = self._order(self._create([self._catalog_item()]))
        services.update_order_status(order.id, Order.Status.CANCELLED)

        response = self._deliver(order)

        self.assertEqual(response.status_code, 409)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)

    def test_sales_role_cannot_deliver(self):
        order = self._order(self._create([self._catalog_item()]))
        self.client.force_authenticate(user=self.sales_user)

        response = self._deliver(order)

        self.assertEqual(response.status_code, 403)

    def test_missing_rate_table_prices_from_overrides(self):
        MetalRate.objects.all().delete()
        order = self._order(self._create([self._custom_item(weight="2.000", manual_rate="4000.00")]))

        with self.assertLogs("orders.services", level="WARNING"):
            self._deliver(order)

        line = Invoice.objects.get(order=order).lines.get()
        self.assertEqual(line.rate, Decimal("4000"))
        self.assertEqual(line.purchase_rate, Decimal("0"))
        self.assertEqual(line.line_total, Decimal("16000"))
        self.assertIsNone(Invoice.objects.get(order=order).metal_rates)


class OrderListingTests(OrderTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.first = self._order(self._create([self._custom_item()]))
        self.second = self._order(self._create([self._catalog_item()]))
        services.update_order_status(self.second.id, Order.Status.READY)

        other_customer = Customer.objects.create(branch=self.other_branch, name="Other Customer", phone="111")
        services.create_order(
            customer_id=other_customer.id,
            items=[{"is_custom": True, "name": "Anklet", "quantity": 1, "price": Decimal("10")}],
            expected_delivery_date=timezone.now(),
        )

    def test_list_is_branch_scoped_and_paginated(self):
        response = self.client.get("/api/v1/orders/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual({row["id"] for row in payload["results"]}, {str(self.first.id), str(self.second.id)})

    def test_filter_by_status(self):
        response = self.client.get("/api/v1/orders/", {"status": "ready"})

        self.assertEqual([row["id"] for row in response.json()["results"]], [str(self.second.id)])

    def test_search_matches_number_and_customer_contact(self):
        by_number = self.client.get("/api/v1/orders/", {"search": self.first.order_number.lower()})
        by_phone = self.client.get("/api/v1/orders/", {"search": "98400"})
        by_name = self.client.get("/api/v1/orders/", {"search": "meera"})

        self.assertEqual([row["id"] for row in by_number.json()["results"]], [str(self.first.id)])
        self.assertEqual(by_phone.json()["count"], 2)
        self.assertEqual(by_name.json()["count"], 2)

    def test_date_range_filter(self):
        today = timezone.localdate().isoformat()
        yesterday = (timezone.localdate() - timedelta(days=1)).isoformat()

        current = self.client.get("/api/v1/orders/", {"start_date": today, "end_date": today})
        past = self.client.get("/api/v1/orders/", {"end_date": yesterday})
        invalid = self.client.get("/api/v1/orders/", {"start_date": "last week"})

        self.assertEqual(current.json()["count"], 2)
        self.assertEqual(past.json()["count"], 0)
        self.assertEqual(invalid.status_code, 400)

    def test_retrieve_other_branch_order_is_not_found(self):
        foreign = Order.objects.exclude(branch=self.branch).get()

        response = self.client.get(f"/api/v1/orders/{foreign.id}/")

        self.assertEqual(response.status_code, 404)


class OrderDashboardTests(OrderTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        now = timezone.now()
        self.near = self._create_order(now + timedelta(hours=2), advance=Decimal("500"))
        self.overdue = self._create_order(now - timedelta(days=1), advance=Decimal("200"))
        self.later = self._create_order(now + timedelta(days=5))
        self.cancelled = self._create_order(now - timedelta(days=2), advance=Decimal("300"))
        services.update_order_status(self.cancelled.id, Order.Status.CANCELLED)

    def _create_order(self, expected, advance=Decimal("0")):
        return services.create_order(
            customer_id=self.customer.id,
            items=[{"is_custom": True, "name": "Chain", "quantity": 1, "price": Decimal("1000")}],
            advance_amount=advance,
            expected_delivery_date=expected,
            user=self.manager,
            branch_id=self.branch.id,
        )

    def test_dashboard_metrics(self):
        response = self.client.get("/api/v1/orders/metrics/dashboard/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["orders_today"], 4)
        self.assertEqual(payload["orders_this_month"], 4)
        self.assertEqual(Decimal(payload["total_advance_outstanding"]), Decimal("700"))
        self.assertEqual(Decimal(payload["total_remaining_balance"]), Decimal("2300"))
        self.assertEqual(payload["near_delivery_count"], 1)
        self.assertEqual(payload["overdue_count"], 1)
        self.assertEqual(payload["status_counts"], {"pending": 3, "cancelled": 1})

    def test_delivery_alerts_list_due_and_overdue_orders(self):
        response = self.client.get("/api/v1/orders/alerts/delivery/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()], [str(self.overdue.id), str(self.near.id)])
