import httpx
import logging
from typing import Any

from bluelena_connect.config import WC_API_URL, WC_CONSUMER_KEY, WC_CONSUMER_SECRET, WC_HTTP_TIMEOUT
from bluelena_connect.models import LineItem, OrderId, OrderRecord

logger = logging.getLogger(__name__)


def order_record_from_wc(data: dict[str, Any]) -> OrderRecord:
    """Builds an OrderRecord from a WooCommerce REST order object."""
    items = [
        LineItem(name=item.get("name") or "", product_id=item.get("product_id"))
        for item in data.get("line_items") or []
    ]
    return OrderRecord(order_id=data["id"], data=data, items=items)


class WooCommerceOrderStore:
    """Order store backed by the WooCommerce REST API (v3)."""

    def __init__(
        self,
        api_url: str | None = WC_API_URL,
        consumer_key: str | None = WC_CONSUMER_KEY,
        consumer_secret: str | None = WC_CONSUMER_SECRET,
        timeout: float = WC_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = (api_url or "").rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not all([self.api_url, self.consumer_key, self.consumer_secret]):
            logger.error("WC API credentials missing.")
            raise ValueError("Missing WC API configuration.")
        return httpx.AsyncClient(
            auth=(self.consumer_key, self.consumer_secret),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def get_order(self, order_id: OrderId) -> OrderRecord | None:
        """Fetches an order; returns None when WooCommerce does not know it."""
        url = f"{self.api_url}/orders/{order_id}"
        async with self._client() as client:
            response = await client.get(url)

        if response.status_code == 404:
            logger.warning(f"WC order {order_id} not found.")
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching WC order {order_id}: {e.response.status_code} - {e.response.text}")
            raise
        return order_record_from_wc(response.json())

    async def annotate(self, order_id: OrderId, key: str, value: Any) -> None:
        """Stores a meta field on the order."""
        url = f"{self.api_url}/orders/{order_id}"
        payload = {"meta_data": [{"key": key, "value": value}]}

        async with self._client() as client:
            response = await client.put(url, json=payload)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error updating WC order {order_id} meta '{key}': {e.response.status_code} - {e.response.text}")
            raise
        logger.debug(f"WC order {order_id} meta '{key}' updated")
