import django_filters
from django.db.models import Q
from .models import Product

ORDERING_CHOICES = {
    'newest': ['-created_at', '-id'],
    'oldest': ['created_at', 'id'],
    'price_asc': ['price', '-created_at'],
    'price_desc': ['-price', '-created_at'],
    'popular': ['-popularity_score', '-like_count', '-view_count', '-created_at'],
}
DEFAULT_ORDERING = 'newest'


class ProductFilter(django_filters.FilterSet):
    """Browse filters for active listings"""
    search = django_filters.CharFilter(method='filter_search')
    category = django_filters.CharFilter(method='filter_category')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    condition = django_filters.ChoiceFilter(choices=Product.CONDITION_CHOICES)
    brand = django_filters.CharFilter(field_name='brand', lookup_expr='iexact')
    scale = django_filters.CharFilter(field_name='scale', lookup_expr='iexact')
    seller = django_filters.NumberFilter(field_name='seller_id')
    trade_only = django_filters.BooleanFilter(method='filter_trade_only')
    ordering = django_filters.ChoiceFilter(
        method='filter_ordering',
        choices=[(key, key) for key in ORDERING_CHOICES],
    )

    class Meta:
        model = Product
        fields = ['search', 'category', 'min_price', 'max_price', 'condition', 'brand', 'scale', 'seller', 'trade_only']

    def filter_search(self, queryset, name, value):
        """Search in title, description and brand"""
        if not value:
            return queryset
        return queryset.filter(
            Q(title__icontains=value) |
            Q(description__icontains=value) |
            Q(brand__icontains=value)
        )

    def filter_category(self, queryset, name, value):
        """Category by id or slug, including direct subcategories"""
        if not value:
            return queryset
        if value.isdigit():
            return queryset.filter(Q(category_id=int(value)) | Q(category__parent_id=int(value)))
        return queryset.filter(Q(category__slug=value) | Q(category__parent__slug=value))

    def filter_trade_only(self, queryset, name, value):
        if value:
            return queryset.filter(is_trade_enabled=True)
        return queryset

    def filter_ordering(self, queryset, name, value):
        return queryset.order_by(*ORDERING_CHOICES.get(value, ORDERING_CHOICES[DEFAULT_ORDERING]))
