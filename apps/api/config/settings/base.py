# apps/api/config/settings/base.py

from pathlib import Path
import os

# ==================================================
# BASE
# ==================================================

BASE_DIR = Path(__file__).resolve().parents[4]

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret-key")
DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = ["*"]

# ==================================================
# INSTALLED APPS
# ==================================================

INSTALLED_APPS = [
    # Django
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Domain Apps
    "apps.domains.attempts.apps.AttemptsDomainConfig",
]

# 이 프로젝트는 HTTP 계층을 갖지 않는다 (엔진 / 워커 / 관리 명령만)
ROOT_URLCONF = None

# ==================================================
# DATABASE
# ==================================================

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME"),
        "USER": os.getenv("DB_USER"),
        "PASSWORD": os.getenv("DB_PASSWORD"),
        "HOST": os.getenv("DB_HOST"),
        "PORT": os.getenv("DB_PORT", "5432"),
    }
}

# ==================================================
# GLOBAL
# ==================================================

LANGUAGE_CODE = "ko-kr"
TIME_ZONE = "Asia/Seoul"

USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ==================================================
# CELERY / REDIS
# ==================================================

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"

CELERY_TASK_DEFAULT_QUEUE = "default"

CELERY_TIMEZONE = TIME_ZONE

CELERY_TASK_ACKS_LATE = True
CELERY_TASK_REJECT_ON_WORKER_LOST = True
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# 만료 attempt 자동 제출 (기본 60초)
CELERY_BEAT_SCHEDULE = {
    "sweep-expired-attempts": {
        "task": "apps.domains.attempts.tasks.sweep_expired_attempts_task",
        "schedule": float(os.getenv("ATTEMPT_SWEEP_INTERVAL_SECONDS", "60")),
    },
}

# ==================================================
# ATTEMPT ENGINE
# ==================================================

# 비어 있으면 MockPaymentGateway (항상 verified)
PAYMENT_API_URL = os.getenv("PAYMENT_API_URL", "")
PAYMENT_API_KEY = os.getenv("PAYMENT_API_KEY", "")
PAYMENT_API_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_API_TIMEOUT_SECONDS", "10"))

# high performer 알림 수신 auth Group
ATTEMPT_INTERESTED_PARTY_GROUP = os.getenv("ATTEMPT_INTERESTED_PARTY_GROUP", "talent_scouts")

# ==================================================
# LOGGING
# ==================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(levelname)s] %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "assessment": {
            "handlers": ["console"],
            "level": os.getenv("ATTEMPT_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "libs.redis": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
