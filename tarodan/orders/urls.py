from django.urls import path
from .views import order_list_create, order_detail, order_ship, order_deliver, order_complete, order_cancel

urlpatterns = [
    path('orders/', order_list_create, name='order-list-create'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/ship/', order_ship, name='order-ship'),
    path('orders/<int:pk>/deliver/', order_deliver, name='order-deliver'),
    path('orders/<int:pk>/complete/', order_complete, name='order-complete'),
    path('orders/<int:pk>/cancel/', order_cancel, name='order-cancel'),
]
