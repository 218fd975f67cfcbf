# apps/domains/attempts/apps.py
from django.apps import AppConfig


class AttemptsDomainConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.domains.attempts"
    label = "attempts_domain"
