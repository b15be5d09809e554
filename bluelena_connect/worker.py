import asyncio
import logging
from celery import Celery
from celery.signals import setup_logging, worker_process_init, worker_process_shutdown

from bluelena_connect import db
from bluelena_connect.config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, LOG_FILE, LOG_LEVEL
from bluelena_connect.services import Services, build_services

logger = logging.getLogger(__name__)

celery_app = Celery(
    'bluelena_connect',
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=['bluelena_connect.tasks.orders'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)

_loop: asyncio.AbstractEventLoop | None = None
_services: Services | None = None


@setup_logging.connect
def configure_logging(**kwargs):
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(),
        ]
    )


def run_async(coro):
    """Runs a coroutine on this process's event loop (the DB pool is bound to it)."""
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop.run_until_complete(coro)


def configure(services: Services | None) -> None:
    global _services
    _services = services


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("BlueLena Connect services are not initialized in this process")
    return _services


@worker_process_init.connect
def on_worker_init(**kwargs):
    logger.info("Worker process initializing... Setting up DB pool and services.")
    pool = run_async(db.init_db_pool())
    configure(build_services(pool, celery_app))


@worker_process_shutdown.connect
def on_worker_shutdown(**kwargs):
    logger.info("Worker process shutting down... Closing DB pool.")
    run_async(db.close_db_pool())
    configure(None)


if __name__ == '__main__':
    celery_app.start()
