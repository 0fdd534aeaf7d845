from django.urls import path
from .views import tier_list, my_membership, my_limits, subscribe, cancel

urlpatterns = [
    path('membership/tiers/', tier_list, name='membership-tiers'),
    path('membership/me/', my_membership, name='membership-me'),
    path('membership/limits/', my_limits, name='membership-limits'),
    path('membership/subscribe/', subscribe, name='membership-subscribe'),
    path('membership/cancel/', cancel, name='membership-cancel'),
]
