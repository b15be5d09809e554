import logging
from collections.abc import Iterable

from bluelena_connect.models import OrderId
from bluelena_connect.payload import query_params_from_url
from bluelena_connect.sync_queue import SyncQueue

logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"

# order.updated is not listened to: annotating an order after delivery fires it again
ORDER_EVENTS = frozenset({ORDER_CREATED, ORDER_STATUS_CHANGED})


async def handle_order_event(queue: SyncQueue, event: str, order_id: OrderId, request_url: str | None = None) -> bool:
    """Queues an order for sync in response to an order event.

    Never raises: the caller is the order-creation path, which must not fail because of the sync.
    """
    if event not in ORDER_EVENTS:
        logger.debug(f"Ignoring event '{event}' for order {order_id}")
        return False
    try:
        await queue.enqueue(order_id, query_params_from_url(request_url))
    except Exception as e:
        logger.exception(f"Failed to queue order {order_id} for sync on '{event}': {e}")
        return False
    return True


async def resync_orders(queue: SyncQueue, order_ids: Iterable[OrderId]) -> int:
    """Manual resync of selected orders. Returns how many were queued."""
    queued = await queue.enqueue_many(order_ids)
    logger.info(f"{queued} order(s) queued for resync")
    return queued
