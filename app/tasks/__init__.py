# Import celery app first
from app.infra.celery_app import celery_app

# Initialize logging configuration for Celery workers
from app.infra.logging_config import LoggingConfig
from app.tasks.sync_task import run_sync_task

LoggingConfig()  # Initialize logging

__all__ = [
    "celery_app",
    "run_sync_task",
]
