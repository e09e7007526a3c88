from django.apps import AppConfig


class ImpactEngineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'impact_engine'
    verbose_name = "Impact Engine"

    def ready(self):
        # Implicitly connect signal handlers decorated with @receiver.
        import impact_engine.signals  # noqa
