# apps/domains/attempts/models/answer.py
from django.db import models

from .base import TimestampedModel


class Answer(TimestampedModel):
    """
    문항 응답. (attempt, question_id) 유일 → 재제출은 update.
    is_correct는 외부 채점 패스가 채운다.
    """
    attempt = models.ForeignKey(
        "attempts_domain.Attempt",
        on_delete=models.CASCADE,
        related_name="answers",
    )
    question_id = models.PositiveIntegerField()

    answer = models.TextField()
    question_type = models.CharField(max_length=50, default="MULTIPLE_CHOICE")
    question_points = models.PositiveIntegerField(default=1)
    time_spent_on_question = models.PositiveIntegerField(default=0)

    is_correct = models.BooleanField(null=True, blank=True)
    answered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "assessment_answer"
        constraints = [
            models.UniqueConstraint(
                fields=["attempt", "question_id"],
                name="unique_answer_per_attempt_question",
            )
        ]
        ordering = ["answered_at", "question_id"]
