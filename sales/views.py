import uuid

from rest_framework import viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated

from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user
from sales.models import Invoice
from sales.serializers import InvoiceSerializer


class InvoiceViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Invoice.objects.select_related("customer", "order").prefetch_related("lines")
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "invoices.view",
        "retrieve": "invoices.view",
    }

    def get_queryset(self):
        queryset = scoped_queryset_for_user(super().get_queryset(), self.request.user).order_by("-created_at")
        customer_id = self.request.query_params.get("customer")
        status = self.request.query_params.get("status")
        if customer_id:
            try:
                customer_id = uuid.UUID(customer_id)
            except ValueError:
                raise ValidationError({"customer": "Customer id must be a valid UUID."})
            queryset = queryset.filter(customer_id=customer_id)
        if status:
            queryset = queryset.filter(status=status)
        return queryset
