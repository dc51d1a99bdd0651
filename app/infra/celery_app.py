"""Celery application used for background sync runs."""

from __future__ import annotations

from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown

from app.config import get_settings
from app.db import db_manager

settings = get_settings()

celery_app = Celery(
    "conversync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.sync_task"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_always_eager=settings.is_test,
)


@worker_process_init.connect
def _open_database(**_kwargs) -> None:
    db_manager.open()


@worker_process_shutdown.connect
def _close_database(**_kwargs) -> None:
    db_manager.close()
