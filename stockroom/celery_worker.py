"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Order management enqueues ingredient deduction/restoration here so the
order response never waits on stock locks; beat drives the periodic
product availability sync.
"""

from celery import Celery

from stockroom.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'stockroom_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['stockroom.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=4,  # Number of worker processes

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,

    # Periodic jobs
    beat_schedule={
        'sync-product-availability': {
            'task': 'stockroom.tasks.sync_product_availability',
            'schedule': float(settings.availability_sync_interval_seconds),
            'kwargs': {'since_minutes': settings.availability_sync_lookback_minutes},
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
