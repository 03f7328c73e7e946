from django.apps import AppConfig


class ElectionConfig(AppConfig):
    name = "election"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self) -> None:
        from election import checks  # noqa: F401
