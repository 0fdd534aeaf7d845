from django.db import models
from tarodan.core.models import User
from tarodan.catalog.models import Product


class Collection(models.Model):
    """A user's showcase of models ("Digital Garage")"""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='collections')
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=120)
    description = models.TextField(blank=True)
    cover_image_url = models.URLField(max_length=500, blank=True)
    is_public = models.BooleanField(default=True, db_index=True)
    view_count = models.PositiveIntegerField(default=0)
    like_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'collections'
        ordering = ['-created_at']
        unique_together = ['user', 'slug']


class CollectionItem(models.Model):
    collection = models.ForeignKey(Collection, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='collection_items')
    sort_order = models.IntegerField(default=0)
    note = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.collection_id}: {self.product_id}"

    class Meta:
        db_table = 'collection_items'
        ordering = ['sort_order', 'id']
        unique_together = ['collection', 'product']


class CollectionLike(models.Model):
    collection = models.ForeignKey(Collection, on_delete=models.CASCADE, related_name='likes')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='collection_likes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'collection_likes'
        unique_together = ['collection', 'user']
