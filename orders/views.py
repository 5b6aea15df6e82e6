from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user
from orders import services
from orders.models import Order
from orders.serializers import (
    DashboardMetricsSerializer,
    DeliverSerializer,
    DeliveryResultSerializer,
    OrderCreateSerializer,
    OrderItemPatchSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    PaymentCreateSerializer,
)


def _parse_bound(value, field):
    """Return ``(bound, is_date)`` for a ``start_date``/``end_date`` value."""
    try:
        parsed_date = parse_date(value)
        parsed = None if parsed_date is not None else parse_datetime(value)
    except ValueError:
        parsed_date = parsed = None
    if parsed_date is not None:
        return parsed_date, True
    if parsed is None:
        raise ValidationError({field: "Use an ISO date or datetime."})
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed, False


class OrderViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    queryset = Order.objects.select_related("customer").prefetch_related("items", "payments")
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "orders.view",
        "retrieve": "orders.view",
        "create": "orders.manage",
        "update_status": "orders.status.update",
        "pay": "orders.collect_payment",
        "deliver": "orders.deliver",
        "item": "orders.manage",
        "dashboard": "orders.dashboard.view",
        "delivery_alerts": "orders.view",
    }

    def get_queryset(self):
        queryset = scoped_queryset_for_user(super().get_queryset(), self.request.user)
        if self.action != "list":
            return queryset

        params = self.request.query_params
        order_status = params.get("status")
        search = (params.get("search") or "").strip()
        start_date = params.get("start_date")
        end_date = params.get("end_date")

        if order_status:
            queryset = queryset.filter(order_status=order_status)
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search)
                | Q(customer_name__icontains=search)
                | Q(customer_phone__icontains=search)
            )
        if start_date:
            bound, is_date = _parse_bound(start_date, "start_date")
            queryset = queryset.filter(**{"created_at__date__gte" if is_date else "created_at__gte": bound})
        if end_date:
            bound, is_date = _parse_bound(end_date, "end_date")
            queryset = queryset.filter(**{"created_at__date__lte" if is_date else "created_at__lte": bound})
        return queryset.order_by("-created_at")

    def _writable_queryset(self):
        return scoped_queryset_for_user(Order.objects.all(), self.request.user)

    def _audit(self, *, action, order, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity="order",
            entity_id=order.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            branch=order.branch,
        )

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = request.user
        branch_id = getattr(user, "branch_id", None)
        if not branch_id and not user.is_superuser:
            raise ValidationError("Authenticated user must belong to a branch to create orders.")

        order = services.create_order(
            customer_id=data["customer"],
            items=data["items"],
            advance_amount=data["advance_amount"],
            expected_delivery_date=data["expected_delivery_date"],
            notes=data["notes"],
            payment_method=data["payment_method"],
            user=user,
            branch_id=branch_id,
        )
        payload = OrderSerializer(order).data
        self._audit(action="order.create", order=order, after_snapshot=payload)
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch"], url_path="status")
    def update_status(self, request, pk=None):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.get_object()
        before = {"order_status": order.order_status}

        order = services.update_order_status(
            order.pk, serializer.validated_data["status"], user=request.user, queryset=self._writable_queryset()
        )
        self._audit(
            action="order.status.update",
            order=order,
            before_snapshot=before,
            after_snapshot={"order_status": order.order_status},
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="pay")
    def pay(self, request, pk=None):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.get_object()
        before = {"remaining_amount": order.remaining_amount, "payment_status": order.payment_status}

        order = services.add_payment(
            order.pk,
            amount=serializer.validated_data["amount"],
            method=serializer.validated_data["method"],
            notes=serializer.validated_data["notes"],
            user=request.user,
            queryset=self._writable_queryset(),
        )
        payload = OrderSerializer(order).data
        self._audit(action="order.payment.add", order=order, before_snapshot=before, after_snapshot=payload)
        return Response(payload)

    @action(detail=True, methods=["post"], url_path="deliver")
    def deliver(self, request, pk=None):
        serializer = DeliverSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.get_object()
        before = OrderSerializer(order).data

        order, invoice = services.deliver_order(
            order.pk,
            final_payment=serializer.validated_data.get("final_payment"),
            user=request.user,
            queryset=self._writable_queryset(),
        )
        payload = DeliveryResultSerializer({"order": order, "invoice": invoice}).data
        self._audit(action="order.deliver", order=order, before_snapshot=before, after_snapshot=payload)
        return Response(payload)

    @action(detail=True, methods=["patch", "delete"], url_path=r"items/(?P<item_id>[^/.]+)")
    def item(self, request, pk=None, item_id=None):
        order = self.get_object()
        before = OrderSerializer(order).data

        if request.method == "DELETE":
            order = services.delete_order_item(
                order.pk, item_id, user=request.user, queryset=self._writable_queryset()
            )
            audit_action = "order.item.delete"
        else:
            serializer = OrderItemPatchSerializer(data=request.data, partial=True)
            serializer.is_valid(raise_exception=True)
            order = services.update_order_item(
                order.pk, item_id, serializer.validated_data, user=request.user, queryset=self._writable_queryset()
            )
            audit_action = "order.item.update"

        payload = OrderSerializer(order).data
        self._audit(action=audit_action, order=order, before_snapshot=before, after_snapshot=payload)
        return Response(payload)

    @action(detail=False, methods=["get"], url_path="metrics/dashboard")
    def dashboard(self, request):
        metrics = services.dashboard_metrics(scoped_queryset_for_user(Order.objects.all(), request.user))
        return Response(DashboardMetricsSerializer(metrics).data)

    @action(detail=False, methods=["get"], url_path="alerts/delivery", pagination_class=None)
    def delivery_alerts(self, request):
        alerts = services.delivery_alerts(self.get_queryset())
        return Response(OrderSerializer(alerts, many=True).data)
