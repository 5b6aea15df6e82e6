import uuid
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase

from core.models import Branch
from ledger.models import LedgerEntry
from ledger.services import LedgerEvent, ledger_sink, record_credit


class LedgerSinkTests(TestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="LG", name="Ledger")
        self.user = get_user_model().objects.create_user(username="ledger-user", password="pass1234", branch=self.branch)
        self.order_id = uuid.uuid4()

    def _credit(self, **overrides):
        kwargs = {
            "category": LedgerEntry.Category.CUSTOMER_PAYMENT,
            "amount": Decimal("250.00"),
            "method": "upi",
            "description": "Payment for Order ORD-1",
            "related_entity_type": "orders.order",
            "related_entity_id": self.order_id,
            "performed_by": self.user,
            "branch_id": self.branch.id,
        }
        kwargs.update(overrides)
        record_credit(**kwargs)

    def test_entry_is_written_after_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self._credit()

        self.assertEqual(len(callbacks), 1)
        self.assertFalse(LedgerEntry.objects.exists())

        callbacks[0]()

        entry = LedgerEntry.objects.get()
        self.assertEqual(entry.direction, LedgerEntry.Direction.CREDIT)
        self.assertEqual(entry.category, LedgerEntry.Category.CUSTOMER_PAYMENT)
        self.assertEqual(entry.amount, Decimal("250.00"))
        self.assertEqual(entry.method, "upi")
        self.assertEqual(entry.related_entity_type, "orders.order")
        self.assertEqual(entry.related_entity_id, self.order_id)
        self.assertEqual(entry.performed_by_id, self.user.id)
        self.assertEqual(entry.branch_id, self.branch.id)

    def test_anonymous_actor_is_not_recorded(self):
        with self.captureOnCommitCallbacks(execute=True):
            self._credit(performed_by=None)

        self.assertIsNone(LedgerEntry.objects.get().performed_by_id)

    def test_failed_write_is_swallowed_and_logged_each_time(self):
        event = LedgerEvent(direction="credit", category="sales", amount=Decimal("10"), method="cash")

        with patch("ledger.services.LedgerEntry.objects.create", side_effect=DatabaseError("ledger down")):
            with self.assertLogs("ledger.services", level="ERROR") as logs:
                first = ledger_sink.write(event)
                second = ledger_sink.write(event)

        self.assertIsNone(first)
        self.assertIsNone(second)
        self.assertEqual(len(logs.output), 2)
        self.assertTrue(all("ledger_entry_dropped" in line for line in logs.output))
        self.assertFalse(LedgerEntry.objects.exists())

    def test_long_descriptions_are_truncated(self):
        entry = ledger_sink.write(
            LedgerEvent(direction="credit", category="other", amount=Decimal("1"), method="cash", description="x" * 400)
        )

        self.assertEqual(len(entry.description), 255)
