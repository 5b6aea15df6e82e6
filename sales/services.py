import uuid

from rest_framework.exceptions import NotFound

from sales.models import Customer


def get_customer(customer_id, *, branch_id=None):
    """Resolve a customer or raise NotFound; optionally confined to a branch."""
    try:
        parsed = customer_id if isinstance(customer_id, uuid.UUID) else uuid.UUID(str(customer_id))
    except (TypeError, ValueError):
        raise NotFound("Customer not found.")

    queryset = Customer.objects.filter(pk=parsed)
    if branch_id is not None:
        queryset = queryset.filter(branch_id=branch_id)
    customer = queryset.first()
    if customer is None:
        raise NotFound("Customer not found.")
    return customer
