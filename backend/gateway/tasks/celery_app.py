from __future__ import annotations

from celery import Celery
from kombu import Queue

from gateway.core.settings import get_settings
from gateway.db.redis_client import get_redis_client

settings = get_settings()


def create_celery_app() -> Celery:
    is_test_env = settings.app_env.lower() == "test"
    if not is_test_env:
        # Fail fast when Redis is unavailable in non-test environments.
        get_redis_client()

    if is_test_env:
        broker = "memory://"
        backend = "cache+memory://"
        task_always_eager = True
        task_eager_propagates = True
    else:
        broker = settings.celery_broker_url
        backend = settings.celery_result_backend
        task_always_eager = settings.celery_task_always_eager
        task_eager_propagates = settings.celery_task_eager_propagates

    celery = Celery("gateway", broker=broker, backend=backend)
    celery.conf.task_always_eager = task_always_eager
    celery.conf.task_eager_propagates = task_eager_propagates
    celery.conf.worker_prefetch_multiplier = 1

    celery.conf.task_default_queue = "default_queue"
    celery.conf.task_queues = (
        Queue("health_queue"),
        Queue("default_queue"),
    )
    celery.conf.task_routes = {
        "providers.health.*": {"queue": "health_queue"},
        "*": {"queue": "default_queue"},
    }
    celery.conf.beat_schedule = {
        "providers-health-probe-all": {
            "task": "providers.health.probe_all",
            "schedule": float(settings.health_check_interval_seconds),
        },
    }
    celery.conf.timezone = "UTC"
    celery.autodiscover_tasks(["gateway.tasks"])
    return celery


celery_app = create_celery_app()
