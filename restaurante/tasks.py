"""
Celery Tasks
Background tasks for processing orders asynchronously.
"""

import logging
import time
from typing import Any

from restaurante.celery_worker import celery_app
from restaurante.models import Order
from restaurante.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def export_order_to_excel(self, order_data: dict) -> dict:
    """
    Append an order to the Excel ledger.
    Runs on the Celery worker; retried with backoff on failure.

    Args:
        order_data: Serialized order (see order_export_payload)
    """
    task_id = self.request.id
    order_id = order_data.get('order_id', 'unknown')

    logger.info(f"Task {task_id}: exporting order #{order_id}")
    start_time = time.time()

    result = ExcelManager.export_order(order_data)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed
    logger.info(f"Task {task_id}: order #{order_id} exported in {elapsed}s")
    return result


def order_export_payload(order: Order, lines: list[tuple[str, int]]) -> dict[str, Any]:
    """Build the JSON-serializable task argument for an order."""
    return {
        "order_id": order.id,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "user_id": order.user_id,
        "client_ref": order.client_ref,
        "payment_method": order.payment_method,
        "total": float(order.total),
        "status": order.status.value,
        "items": ", ".join(f"{qty}x {name}" for name, qty in lines),
        "has_receipt": order.receipt is not None,
    }
