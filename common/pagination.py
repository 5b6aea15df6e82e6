from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page-number pagination for order and invoice listings.

    `?page_size=` is honoured up to `max_page_size`; the order desk rarely
    needs more than a day's worth of orders on one screen.
    """

    page_size_query_param = "page_size"
    max_page_size = 100
