"""
Celery Tasks
Background tasks that append orders and reservations to the Excel ledgers.
"""

import logging
import time
from datetime import datetime

from gestro.celery_worker import celery_app
from gestro.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def export_order_to_excel(self, order_data: dict) -> dict:
    """
    Append an order to the order ledger.

    A lock timeout is retried; other failures are reported in the result.

    Args:
        order_data: Flattened order (order_id, customer_*, items, totals, statuses)

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    order_id = order_data.get('order_id', 'unknown')

    logger.info(f"Task {task_id}: exporting order #{order_id}")
    start_time = time.time()

    result = ExcelManager.export_order(order_data)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: order #{order_id} exported in {elapsed}s")
    elif result.get('retryable'):
        logger.warning(f"Task {task_id}: order #{order_id} - {result['message']}, retrying")
        raise self.retry()
    else:
        logger.warning(f"Task {task_id}: order #{order_id} failed - {result['message']}")

    return result


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def export_reservation_to_excel(self, reservation_data: dict) -> dict:
    """Append a reservation to the reservation ledger."""
    task_id = self.request.id
    result = ExcelManager.export_reservation(reservation_data)
    result['task_id'] = task_id

    if result.get('retryable'):
        raise self.retry()
    if not result['success']:
        logger.warning(
            f"Task {task_id}: reservation {reservation_data.get('reservation_id')} failed - {result['message']}"
        )
    return result


@celery_app.task
def health_check() -> dict:
    """Simple health check task to verify Celery is working."""
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
