"""
Celery worker entry point
Runs the reminder sweeps scheduled by celery beat
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from booking_engine.config.celery_config import celery_app
from booking_engine.utils.my_logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    logger.info("Booking engine worker ready")
    logger.info(f"Registered tasks: {sorted(name for name in celery_app.tasks.keys() if not name.startswith('celery.'))}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("Booking engine worker shutting down...")


if __name__ == "__main__":
    # Run worker with embedded beat for single-node deployments
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=4',
        '--max-tasks-per-child=1000'
    ])
