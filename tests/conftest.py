from collections import defaultdict
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from bluelena_connect.dispatcher import WebhookDispatcher
from bluelena_connect.models import (
    OPTION_ENABLED,
    OPTION_SECRET_TOKEN,
    OPTION_WEBHOOK_URL,
    LineItem,
    OrderRecord,
)
from bluelena_connect.scheduler import InProcessScheduler
from bluelena_connect.settings import MemorySettingsStore
from bluelena_connect.sync_queue import MemoryQueueState, SyncQueue

WEBHOOK_URL = "https://hooks.example.com/orders"
SECRET_TOKEN = "s3cret"


def make_order(order_id, items=(("Blue Mug", 11),), **fields) -> OrderRecord:
    data = {"id": order_id, "status": "processing", "total": "19.99", **fields}
    return OrderRecord(
        order_id=order_id,
        data=data,
        items=[LineItem(name=name, product_id=product_id) for name, product_id in items],
    )


class FakeOrderStore:
    """In-memory order store recording annotations."""

    def __init__(self, orders=()):
        self.orders = {o.order_id: o for o in orders}
        self.meta = defaultdict(dict)
        self.lookups = []

    async def get_order(self, order_id):
        self.lookups.append(order_id)
        return self.orders.get(order_id)

    async def annotate(self, order_id, key, value):
        self.meta[order_id][key] = value


class FrozenClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings_store():
    return MemorySettingsStore({
        OPTION_WEBHOOK_URL: WEBHOOK_URL,
        OPTION_SECRET_TOKEN: SECRET_TOKEN,
        OPTION_ENABLED: 1,
    })


@pytest.fixture
def order_store():
    return FakeOrderStore([make_order(1), make_order(2), make_order(3), make_order(1001), make_order(1002)])


@pytest.fixture
def scheduler(clock):
    return InProcessScheduler(clock=clock)


@pytest.fixture
def make_dispatcher(settings_store, order_store):
    """Builds a WebhookDispatcher whose HTTP traffic goes to ``handler``."""
    def factory(handler):
        return WebhookDispatcher(settings_store, order_store, transport=httpx.MockTransport(handler))
    return factory


@pytest.fixture
def make_queue(scheduler, clock):
    def factory(dispatcher, **kwargs):
        kwargs.setdefault("base_delay", 0)
        kwargs.setdefault("stagger_interval", 10)
        kwargs.setdefault("max_delay", 300)
        return SyncQueue(MemoryQueueState(), scheduler, dispatcher, clock=clock, **kwargs)
    return factory
