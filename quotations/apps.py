from django.apps import AppConfig


class QuotationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "quotations"
    verbose_name = "Freight quotations"

    def ready(self):
        from . import checks  # noqa: F401
