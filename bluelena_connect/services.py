import logging
from dataclasses import dataclass

from bluelena_connect.db import PostgresQueueState, PostgresSettingsStore
from bluelena_connect.dispatcher import WebhookDispatcher
from bluelena_connect.scheduler import CeleryScheduler, DelayedTaskScheduler
from bluelena_connect.settings import SettingsStore
from bluelena_connect.sync_queue import SyncQueue
from bluelena_connect.utils.woocommerce import WooCommerceOrderStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings_store: SettingsStore
    order_store: WooCommerceOrderStore
    scheduler: DelayedTaskScheduler
    dispatcher: WebhookDispatcher
    queue: SyncQueue


def build_services(pool, celery_app, order_store: WooCommerceOrderStore | None = None) -> Services:
    """Wires the queue, dispatcher and stores for one worker process.

    Worker processes share queue state and settings only through PostgreSQL,
    so a missing pool is fatal.
    """
    if pool is None:
        logger.error("Database pool is not initialized. Cannot build BlueLena Connect services.")
        raise RuntimeError("Database pool not available")

    settings_store = PostgresSettingsStore(pool)
    order_store = order_store or WooCommerceOrderStore()
    scheduler = CeleryScheduler(celery_app)
    dispatcher = WebhookDispatcher(settings_store, order_store)
    queue = SyncQueue(PostgresQueueState(pool), scheduler, dispatcher)
    return Services(
        settings_store=settings_store,
        order_store=order_store,
        scheduler=scheduler,
        dispatcher=dispatcher,
        queue=queue,
    )
