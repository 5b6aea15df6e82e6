import uuid
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import NotFound
from rest_framework.test import APIClient

from core.models import Branch
from orders import services as order_services
from sales.models import Customer, Invoice
from sales.services import get_customer


class CustomerLookupTests(TestCase):
    def setUp(self):
        self.branch_a = Branch.objects.create(code="CA", name="Customers A")
        self.branch_b = Branch.objects.create(code="CB", name="Customers B")
        self.customer = Customer.objects.create(branch=self.branch_a, name="Lakshmi")

    def test_lookup_by_id(self):
        self.assertEqual(get_customer(self.customer.id), self.customer)
        self.assertEqual(get_customer(str(self.customer.id), branch_id=self.branch_a.id), self.customer)

    def test_unknown_malformed_or_foreign_customers_are_not_found(self):
        with self.assertRaises(NotFound):
            get_customer(uuid.uuid4())
        with self.assertRaises(NotFound):
            get_customer("nope")
        with self.assertRaises(NotFound):
            get_customer(self.customer.id, branch_id=self.branch_b.id)


class BranchScopedInvoiceTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.branch_a = Branch.objects.create(code="SA", name="Sales A")
        self.branch_b = Branch.objects.create(code="SB", name="Sales B")

        self.manager_a = self.user_model.objects.create_user(
            username="sales-manager-a",
            password="pass1234",
            branch=self.branch_a,
            role="manager",
        )

        self.customer_a = Customer.objects.create(branch=self.branch_a, name="Customer A")
        self.customer_b = Customer.objects.create(branch=self.branch_b, name="Customer B")

        self.invoice_a = self._delivered_invoice(self.customer_a, advance=Decimal("1000"))
        self.invoice_b = self._delivered_invoice(self.customer_b)

    def _delivered_invoice(self, customer, advance=Decimal("0")):
        order = order_services.create_order(
            customer_id=customer.id,
            items=[{"is_custom": True, "name": "Nose Pin", "quantity": 1, "price": Decimal("1000")}],
            advance_amount=advance,
            expected_delivery_date=timezone.now() + timedelta(days=1),
        )
        _, invoice = order_services.deliver_order(order.id)
        return invoice

    def test_user_cannot_read_other_branch_invoices(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get("/api/v1/invoices/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        ids = {item["id"] for item in payload["results"]}
        self.assertEqual(ids, {str(self.invoice_a.id)})

        detail = self.client.get(f"/api/v1/invoices/{self.invoice_b.id}/")
        self.assertEqual(detail.status_code, 404)

    def test_invoice_detail_links_order_and_lines(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get(f"/api/v1/invoices/{self.invoice_a.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["order_number"], self.invoice_a.order.order_number)
        self.assertEqual(payload["customer_name"], "Customer A")
        self.assertEqual(payload["status"], Invoice.Status.PAID)
        self.assertEqual(len(payload["lines"]), 1)
        self.assertEqual(payload["lines"][0]["description"], "Nose Pin")

    def test_filter_by_status_and_customer(self):
        self.client.force_authenticate(user=self.manager_a)

        paid = self.client.get("/api/v1/invoices/", {"status": "paid", "customer": str(self.customer_a.id)})
        pending = self.client.get("/api/v1/invoices/", {"status": "pending"})
        malformed = self.client.get("/api/v1/invoices/", {"customer": "not-a-uuid"})

        self.assertEqual(paid.json()["count"], 1)
        self.assertEqual(pending.json()["count"], 0)
        self.assertEqual(malformed.status_code, 400)
        self.assertEqual(malformed.json()["code"], "validation_error")
