from django.urls import path
from .views import offer_list_create, offer_detail, offer_accept, offer_reject, offer_counter, offer_cancel

urlpatterns = [
    path('offers/', offer_list_create, name='offer-list-create'),
    path('offers/<int:pk>/', offer_detail, name='offer-detail'),
    path('offers/<int:pk>/accept/', offer_accept, name='offer-accept'),
    path('offers/<int:pk>/reject/', offer_reject, name='offer-reject'),
    path('offers/<int:pk>/counter/', offer_counter, name='offer-counter'),
    path('offers/<int:pk>/cancel/', offer_cancel, name='offer-cancel'),
]
