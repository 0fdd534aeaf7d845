from django.urls import path
from .views import (
    payment_initiate, payment_list, payment_detail, payment_status, payment_retry,
    payment_cancel, payment_refund, payment_holds, iyzico_callback, paytr_callback,
)

urlpatterns = [
    path('payments/', payment_list, name='payment-list'),
    path('payments/initiate/', payment_initiate, name='payment-initiate'),
    path('payments/holds/', payment_holds, name='payment-holds'),
    path('payments/callback/iyzico/', iyzico_callback, name='payment-callback-iyzico'),
    path('payments/callback/paytr/', paytr_callback, name='payment-callback-paytr'),
    path('payments/orders/<int:order_id>/refund/', payment_refund, name='payment-refund'),
    path('payments/<int:pk>/', payment_detail, name='payment-detail'),
    path('payments/<int:pk>/status/', payment_status, name='payment-status'),
    path('payments/<int:pk>/retry/', payment_retry, name='payment-retry'),
    path('payments/<int:pk>/cancel/', payment_cancel, name='payment-cancel'),
]
