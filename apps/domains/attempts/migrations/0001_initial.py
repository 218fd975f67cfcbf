from django.db import migrations, models
import django.db.models.deletion


ATTEMPT_STATUS_CHOICES = [
    ("REGISTERED", "등록"),
    ("PAYMENT_PENDING", "결제 대기"),
    ("PAYMENT_VERIFIED", "결제 확인"),
    ("IN_PROGRESS", "응시 중"),
    ("PAUSED", "일시 정지"),
    ("COMPLETED", "제출 완료"),
    ("AUTO_SUBMITTED", "자동 제출"),
    ("GRADED", "채점 완료"),
    ("UNDER_REVIEW", "검토 중"),
    ("DISQUALIFIED", "실격"),
    ("CANCELLED", "취소"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="TestDefinition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=255)),
                ("category", models.CharField(blank=True, max_length=100)),
                ("duration_minutes", models.PositiveIntegerField()),
                ("fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("passing_score", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("start_time", models.DateTimeField(blank=True, null=True)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                ("registration_deadline", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "db_table": "assessment_test",
            },
        ),
        migrations.CreateModel(
            name="OutboundEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("NOTIFICATION", "알림"),
                            ("AUDIT", "감사"),
                            ("PROFILE_RESULT", "프로필 반영"),
                        ],
                        db_index=True,
                        max_length=32,
                    ),
                ),
                ("payload", models.JSONField(default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("dispatched_at", models.DateTimeField(blank=True, db_index=True, null=True)),
            ],
            options={
                "db_table": "assessment_outbound_event",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="Attempt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("candidate_id", models.PositiveIntegerField(db_index=True)),
                (
                    "status",
                    models.CharField(
                        choices=ATTEMPT_STATUS_CHOICES,
                        db_index=True,
                        default="REGISTERED",
                        max_length=32,
                    ),
                ),
                ("score", models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("time_spent_seconds", models.PositiveIntegerField(blank=True, null=True)),
                ("tab_switch_count", models.PositiveIntegerField(default=0)),
                ("fullscreen_exit_count", models.PositiveIntegerField(default=0)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.CharField(blank=True, max_length=500)),
                ("current_question_index", models.PositiveIntegerField(default=0)),
                ("payment_reference_id", models.CharField(blank=True, max_length=128, null=True)),
                ("payment_verified", models.BooleanField(default=False)),
                ("payment_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("submission_reason", models.CharField(blank=True, max_length=50)),
                ("review_notes", models.TextField(blank=True)),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "test",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="attempts",
                        to="attempts_domain.testdefinition",
                    ),
                ),
            ],
            options={
                "db_table": "assessment_attempt",
            },
        ),
        migrations.CreateModel(
            name="Answer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("question_id", models.PositiveIntegerField()),
                ("answer", models.TextField()),
                ("question_type", models.CharField(default="MULTIPLE_CHOICE", max_length=50)),
                ("question_points", models.PositiveIntegerField(default=1)),
                ("time_spent_on_question", models.PositiveIntegerField(default=0)),
                ("is_correct", models.BooleanField(blank=True, null=True)),
                ("answered_at", models.DateTimeField(blank=True, null=True)),
                (
                    "attempt",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="answers",
                        to="attempts_domain.attempt",
                    ),
                ),
            ],
            options={
                "db_table": "assessment_answer",
                "ordering": ["answered_at", "question_id"],
            },
        ),
        migrations.AddIndex(
            model_name="attempt",
            index=models.Index(fields=["status", "started_at"], name="attempt_status_started_idx"),
        ),
        migrations.AddConstraint(
            model_name="attempt",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status__in", ["REGISTERED", "IN_PROGRESS"])),
                fields=("test", "candidate_id"),
                name="unique_active_attempt_per_candidate_test",
            ),
        ),
        migrations.AddConstraint(
            model_name="answer",
            constraint=models.UniqueConstraint(
                fields=("attempt", "question_id"),
                name="unique_answer_per_attempt_question",
            ),
        ),
    ]
