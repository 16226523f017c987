"""
apps.values_store.apps
"""
from django.apps import AppConfig


class ValuesStoreConfig(AppConfig):
    name = "apps.values_store"
    label = "values_store"
    verbose_name = "Values Store"
