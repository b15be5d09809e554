import json
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from bluelena_connect.models import OrderRecord

UTM_PARAMS = ("utm_campaign", "utm_source", "utm_medium", "utm_term")


def query_params_from_url(url: str | None) -> dict[str, str]:
    """Extracts query parameters from a request URL. Repeated keys keep the last value."""
    if not url:
        return {}
    query = urlsplit(url).query
    return dict(parse_qsl(query, keep_blank_values=True))


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class PayloadBuilder:
    """Turns an order record into the JSON body posted to the webhook.

    The payload is the order's native field set with two keys merged in:
    ``utm`` (attribution params, empty string when missing) and ``products``
    (one ``{name, id}`` entry per line item, in store order).
    """

    def attribution(self, query_params: Mapping[str, str] | None) -> dict[str, str]:
        params = query_params or {}
        return {key: str(params.get(key, "")) for key in UTM_PARAMS}

    def products(self, order: OrderRecord) -> list[dict[str, Any]]:
        return [{"name": item.name, "id": item.product_id} for item in order.line_items()]

    def build(self, order: OrderRecord, query_params: Mapping[str, str] | None = None) -> dict[str, Any]:
        payload = order.fields()
        payload["utm"] = self.attribution(query_params)
        payload["products"] = self.products(order)
        return payload

    def encode(self, payload: Mapping[str, Any]) -> bytes:
        return json.dumps(payload, default=_json_default, ensure_ascii=False).encode("utf-8")
