from django.apps import AppConfig


class StorefrontAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "storefront"
    verbose_name = "Template Store"  # Admin section name

    def ready(self):
        from django.core import checks

        from .config import check_config

        checks.register(check_config, checks.Tags.compatibility)
