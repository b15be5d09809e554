import logging

from bluelena_connect.events import handle_order_event, resync_orders
from bluelena_connect.sync_queue import DRAIN_TASK_NAME
from bluelena_connect.worker import celery_app, get_services, run_async

logger = logging.getLogger(__name__)


@celery_app.task(name=DRAIN_TASK_NAME)
def process_sync_queue():
    """Delivers every queued order to the webhook."""
    outcomes = run_async(get_services().queue.drain())
    delivered = sum(1 for o in outcomes if o.success)
    return {"attempted": len(outcomes), "delivered": delivered, "failed": len(outcomes) - delivered}


@celery_app.task(name="handle_order_event")
def handle_order_event_task(event: str, order_id, request_url: str | None = None):
    return run_async(handle_order_event(get_services().queue, event, order_id, request_url))


@celery_app.task(name="resync_orders")
def resync_orders_task(order_ids: list):
    return run_async(resync_orders(get_services().queue, order_ids))
