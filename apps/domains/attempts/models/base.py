# apps/domains/attempts/models/base.py
from django.db import models


class TimestampedModel(models.Model):
    """
    created_at / updated_at 자동 기록.
    QuerySet.update() 경로는 auto_now가 동작하지 않으므로 updated_at을 직접 넘긴다.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
