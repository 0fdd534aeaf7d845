from django.urls import path
from .views import (
    category_list_create, product_list, product_create, product_detail, my_products,
    my_listing_stats, product_view, product_like, pending_products, product_approve, product_reject,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),

    # Listing endpoints
    path('products/', product_list, name='product-list'),
    path('products/create/', product_create, name='product-create'),
    path('products/mine/', my_products, name='product-mine'),
    path('products/mine/stats/', my_listing_stats, name='product-mine-stats'),
    path('products/pending/', pending_products, name='product-pending'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/view/', product_view, name='product-view'),
    path('products/<int:pk>/like/', product_like, name='product-like'),
    path('products/<int:pk>/approve/', product_approve, name='product-approve'),
    path('products/<int:pk>/reject/', product_reject, name='product-reject'),
]
