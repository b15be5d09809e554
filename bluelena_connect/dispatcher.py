import asyncio
import logging
from collections.abc import Mapping

import httpx

from bluelena_connect.config import WEBHOOK_MAX_REDIRECTS, WEBHOOK_TIMEOUT
from bluelena_connect.models import META_ERROR, META_RESPONSE_BODY, META_RESPONSE_CODE, DeliveryOutcome, OrderId
from bluelena_connect.payload import PayloadBuilder
from bluelena_connect.settings import SettingsStore, load_settings

logger = logging.getLogger(__name__)

ORDER_NOT_FOUND = "Order not found"


class WebhookDispatcher:
    """Performs one webhook delivery attempt per order and records the outcome on it.

    Any completed HTTP exchange counts as delivered, whatever the status code;
    only transport failures (connection, timeout, redirects) are failures.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        order_store,
        payload_builder: PayloadBuilder | None = None,
        timeout: float = WEBHOOK_TIMEOUT,
        max_redirects: int = WEBHOOK_MAX_REDIRECTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings_store = settings_store
        self.order_store = order_store
        self.payload_builder = payload_builder or PayloadBuilder()
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            transport=self._transport,
        )

    async def deliver(self, order_id: OrderId, query_params: Mapping[str, str] | None = None) -> DeliveryOutcome | None:
        settings = await load_settings(self.settings_store)
        if not settings.delivery_enabled:
            logger.debug(f"Webhook delivery disabled or not configured, skipping order {order_id}.")
            return None

        order = await self.order_store.get_order(order_id)
        if order is None:
            logger.warning(f"Order {order_id} not found, skipping webhook delivery.")
            return DeliveryOutcome(order_id=order_id, success=False, error_message=ORDER_NOT_FOUND)

        payload = self.payload_builder.build(order, query_params)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.secret_token}",
        }

        try:
            async with self._client() as client:
                logger.info(f"Sending order {order_id} to webhook...")
                # httpx timeouts apply per phase; this bounds the whole exchange
                response = await asyncio.wait_for(
                    client.post(settings.webhook_url, content=self.payload_builder.encode(payload), headers=headers),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError:
            error_msg = f"Request timed out after {self.timeout:g}s"
            logger.error(f"Webhook request failed for order {order_id}: {error_msg}")
            outcome = DeliveryOutcome(order_id=order_id, success=False, error_message=error_msg)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            error_msg = str(e) or e.__class__.__name__
            logger.error(f"Webhook request failed for order {order_id}: {error_msg}")
            outcome = DeliveryOutcome(order_id=order_id, success=False, error_message=error_msg)
        else:
            logger.info(f"Webhook responded {response.status_code} for order {order_id}")
            outcome = DeliveryOutcome(
                order_id=order_id,
                success=True,
                status_code=response.status_code,
                response_body=response.text,
            )

        await self.record(outcome)
        return outcome

    async def record(self, outcome: DeliveryOutcome) -> None:
        """Writes the delivery outcome onto the order as meta fields.

        A failure here is logged only; the outcome of the attempt already happened.
        """
        try:
            if outcome.success:
                await self.order_store.annotate(outcome.order_id, META_RESPONSE_CODE, outcome.status_code)
                await self.order_store.annotate(outcome.order_id, META_RESPONSE_BODY, outcome.response_body)
            else:
                await self.order_store.annotate(outcome.order_id, META_ERROR, outcome.error_message)
        except Exception as e:
            logger.exception(f"Failed to record webhook outcome for order {outcome.order_id}: {e}")
