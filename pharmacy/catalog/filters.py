import django_filters
from django.conf import settings
from django.db.models import Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """
    Filter for Product lists.

    Stock filters expect the queryset to be annotated with
    stock_base_quantity (see inventory.services.annotate_base_stock).
    """
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(method='filter_category', label='Category (including subcategories)')
    compartment = django_filters.NumberFilter(field_name='compartment_id', lookup_expr='exact')
    usage_route = django_filters.NumberFilter(field_name='usage_route_id', lookup_expr='exact')
    unassigned = django_filters.CharFilter(method='filter_unassigned', label='Not stored in a compartment')
    in_stock = django_filters.CharFilter(method='filter_in_stock', label='In Stock')
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')
    out_of_stock = django_filters.CharFilter(method='filter_out_of_stock', label='Out of Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'compartment', 'usage_route', 'unassigned',
                  'in_stock', 'low_stock', 'out_of_stock']

    @staticmethod
    def _is_true(value):
        return str(value).lower() in ('true', '1', 'yes')

    def filter_search(self, queryset, name, value):
        """Match every word of the search against code or name"""
        words = [word for word in (value or '').split() if word]
        for word in words:
            queryset = queryset.filter(Q(code__icontains=word) | Q(name__icontains=word))
        return queryset

    def filter_category(self, queryset, name, value):
        from .models import Category
        category_ids = {int(value)}
        frontier = [int(value)]
        while frontier:
            children = list(Category.objects.filter(parent_id__in=frontier).values_list('id', flat=True))
            frontier = [child for child in children if child not in category_ids]
            category_ids.update(frontier)
        return queryset.filter(category_id__in=category_ids)

    def filter_unassigned(self, queryset, name, value):
        if self._is_true(value):
            return queryset.filter(compartment__isnull=True)
        return queryset

    def filter_in_stock(self, queryset, name, value):
        if self._is_true(value):
            return queryset.filter(stock_base_quantity__gt=0)
        return queryset

    def filter_low_stock(self, queryset, name, value):
        if self._is_true(value):
            return queryset.filter(stock_base_quantity__gt=0, stock_base_quantity__lt=settings.LOW_STOCK_THRESHOLD)
        return queryset

    def filter_out_of_stock(self, queryset, name, value):
        if self._is_true(value):
            return queryset.filter(stock_base_quantity__lte=0)
        return queryset
