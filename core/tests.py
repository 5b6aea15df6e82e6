import json
import logging
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient
from unittest.mock import patch

from common.logging import JsonFormatter
from common.permissions import get_user_role, user_has_capability
from core.models import AuditLog, Branch
from sales.models import Customer


class RolePermissionCoreTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="RP", name="Role Perm")
        self.sales_user = self.user_model.objects.create_user(
            username="sales-core",
            password="pass1234",
            branch=self.branch,
            role="sales",
        )
        self.manager = self.user_model.objects.create_user(
            username="manager-core",
            password="pass1234",
            branch=self.branch,
            role="manager",
        )
        self.admin = self.user_model.objects.create_user(
            username="admin-core",
            password="pass1234",
            branch=self.branch,
            role="admin",
        )

    def test_capability_matrix(self):
        self.assertTrue(user_has_capability(self.sales_user, "orders.collect_payment"))
        self.assertFalse(user_has_capability(self.sales_user, "orders.deliver"))
        self.assertTrue(user_has_capability(self.manager, "orders.deliver"))
        self.assertFalse(user_has_capability(self.manager, "admin.records.manage"))
        self.assertTrue(user_has_capability(self.admin, "admin.records.manage"))
        self.assertFalse(user_has_capability(self.admin, "unknown.capability"))

    def test_staff_without_role_is_admin(self):
        staff = self.user_model(username="staff", is_staff=True, role="")

        self.assertEqual(get_user_role(staff), "admin")

    def test_sales_user_cannot_read_audit_logs_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.sales_user)

        with self.assertLogs("security.authorization", level="WARNING") as logs:
            response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)
        self.assertIn("capability=admin.records.manage", logs.output[0])

    def test_anonymous_requests_are_rejected(self):
        response = self.client.get("/api/v1/orders/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="AL", name="Audit")
        self.other_branch = Branch.objects.create(code="AO", name="Audit Other")
        self.admin = self.user_model.objects.create_user(
            username="audit-admin",
            password="pass1234",
            branch=self.branch,
            role="admin",
        )
        self.customer = Customer.objects.create(branch=self.branch, name="Audit Customer")

    def test_order_create_writes_audit_log_with_request_id(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.post(
            "/api/v1/orders/",
            {
                "customer": str(self.customer.id),
                "items": [{"is_custom": True, "name": "Pendant", "quantity": 1, "price": "750.00"}],
                "expected_delivery_date": (timezone.now() + timedelta(days=2)).isoformat(),
            },
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(res.status_code, 201)
        log = AuditLog.objects.get(action="order.create", entity="order", request_id="req-123")
        self.assertEqual(str(log.entity_id), res.json()["id"])
        self.assertEqual(log.after_snapshot["total_amount"], "750.00")

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", branch=self.branch, actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_logs_are_branch_scoped_and_filterable(self):
        self.client.force_authenticate(user=self.admin)
        mine = AuditLog.objects.create(action="order.deliver", entity="order", branch=self.branch)
        AuditLog.objects.create(action="order.create", entity="order", branch=self.branch)
        AuditLog.objects.create(action="order.deliver", entity="order", branch=self.other_branch)

        response = self.client.get("/api/v1/admin/audit-logs/", {"action": "order.deliver"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()["results"]], [str(mine.id)])

    def test_export_returns_csv(self):
        self.client.force_authenticate(user=self.admin)
        AuditLog.objects.create(action="order.create", entity="order", branch=self.branch, actor=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/export/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0], "id,created_at,actor,branch,action,entity,entity_id,request_id")
        self.assertIn("audit-admin", lines[1])


class HealthzTests(TestCase):
    def test_healthz_reports_ok_and_echoes_request_id(self):
        response = self.client.get("/healthz/", HTTP_X_REQUEST_ID="health-1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "request_id": "health-1"})
        self.assertEqual(response["X-Request-ID"], "health-1")

    def test_healthz_reports_database_failure(self):
        with patch("core.views.connections") as mocked:
            mocked.__getitem__.return_value.cursor.side_effect = DatabaseError("db down")
            with self.assertLogs("core.views", level="ERROR"):
                response = self.client.get("/healthz/")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["status"], "error")


class JsonFormatterTests(SimpleTestCase):
    def test_structured_fields_are_serialized(self):
        record = logging.LogRecord("orders.services", logging.INFO, __file__, 1, "order_created", None, None)
        record.order_number = "ORD-1"
        record.amount = 12

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "order_created")
        self.assertEqual(payload["logger"], "orders.services")
        self.assertEqual(payload["order_number"], "ORD-1")
        self.assertEqual(payload["amount"], 12)
