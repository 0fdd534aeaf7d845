from django.apps import AppConfig


class CollectionConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tarodan.collection'
    verbose_name = 'Digital Garage'
