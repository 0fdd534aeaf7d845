from django.urls import path
from .views import trade_list_create, trade_detail, trade_accept, trade_reject, trade_counter, trade_cancel, trade_confirm

urlpatterns = [
    path('trades/', trade_list_create, name='trade-list-create'),
    path('trades/<int:pk>/', trade_detail, name='trade-detail'),
    path('trades/<int:pk>/accept/', trade_accept, name='trade-accept'),
    path('trades/<int:pk>/reject/', trade_reject, name='trade-reject'),
    path('trades/<int:pk>/counter/', trade_counter, name='trade-counter'),
    path('trades/<int:pk>/cancel/', trade_cancel, name='trade-cancel'),
    path('trades/<int:pk>/confirm/', trade_confirm, name='trade-confirm'),
]
