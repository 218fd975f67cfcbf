# apps/api/config/settings/worker.py

from .base import *

# ==================================================
# Celery worker / beat (브로커 필수)
# ==================================================

CELERY_BROKER_URL = os.environ["CELERY_BROKER_URL"]
CELERY_RESULT_BACKEND = os.environ["CELERY_RESULT_BACKEND"]

# sweep 리포트만 저장. 오래 보관하지 않음
CELERY_RESULT_EXPIRES = int(os.getenv("CELERY_RESULT_EXPIRES", "3600"))

# sweep는 attempt 행 락으로 직렬화되므로 동시성 1이면 충분
CELERY_WORKER_CONCURRENCY = int(os.getenv("CELERY_WORKER_CONCURRENCY", "1"))

# ==================================================
# Attempt engine
# ==================================================

# 워커는 실결제 게이트웨이 호출하지 않음 (auto_submit 경로만)
PAYMENT_API_URL = ""

LOGGING["loggers"]["celery"] = {
    "handlers": ["console"],
    "level": os.getenv("CELERY_LOG_LEVEL", "INFO"),
    "propagate": False,
}
