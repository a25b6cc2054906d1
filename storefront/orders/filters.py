import django_filters
from django.db.models import Q
from .models import Order
from .status import STATUS_CHOICES


class OrderFilter(django_filters.FilterSet):
    """Filter for the order list using django-filter"""

    search = django_filters.CharFilter(method='filter_search', label='Customer name or email')
    status = django_filters.ChoiceFilter(choices=STATUS_CHOICES)
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Order
        fields = ['search', 'status', 'date_from', 'date_to']

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(Q(customer_name__icontains=value) | Q(customer_email__icontains=value))
