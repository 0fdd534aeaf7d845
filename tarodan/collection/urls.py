from django.urls import path
from .views import (
    collection_list_create, collection_browse, collection_liked, collection_detail,
    collection_add_item, collection_remove_item, collection_reorder, collection_like,
)

urlpatterns = [
    path('collections/', collection_list_create, name='collection-list-create'),
    path('collections/browse/', collection_browse, name='collection-browse'),
    path('collections/liked/', collection_liked, name='collection-liked'),
    path('collections/<int:pk>/', collection_detail, name='collection-detail'),
    path('collections/<int:pk>/items/', collection_add_item, name='collection-add-item'),
    path('collections/<int:pk>/items/<int:item_id>/', collection_remove_item, name='collection-remove-item'),
    path('collections/<int:pk>/reorder/', collection_reorder, name='collection-reorder'),
    path('collections/<int:pk>/like/', collection_like, name='collection-like'),
]
