from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

OrderId = int | str

# Option keys in the settings store
OPTION_WEBHOOK_URL = "bluelena_connect_webhook_url"
OPTION_SECRET_TOKEN = "bluelena_connect_secret_token"
OPTION_ENABLED = "bluelena_connect_enabled"

# Order meta keys written after a delivery attempt
META_ERROR = "bluelena_connect_error"
META_RESPONSE_CODE = "bluelena_connect_response_code"
META_RESPONSE_BODY = "bluelena_connect_response_body"


class SyncRequest(BaseModel):
    """One pending delivery obligation."""
    order_id: OrderId
    # Attribution params captured from the request that triggered the sync
    query_params: dict[str, str] = Field(default_factory=dict)


class DrainSchedule(BaseModel):
    next_drain_at: datetime | None = None
    handle: str | None = None
    burst_count: int = 0
    burst_started_at: datetime | None = None


class Settings(BaseModel):
    webhook_url: str = ""
    secret_token: str = ""
    enabled: bool = True

    @field_validator("enabled", mode="before")
    @classmethod
    def _empty_means_disabled(cls, value: Any) -> Any:
        if value is None or value == "":
            return False
        return value

    @property
    def delivery_enabled(self) -> bool:
        return self.enabled and bool(self.webhook_url)


class LineItem(BaseModel):
    name: str = ""
    product_id: int | str | None = None


class OrderRecord(BaseModel):
    """Order as returned by the order store."""
    order_id: OrderId
    data: dict[str, Any] = Field(default_factory=dict)
    items: list[LineItem] = Field(default_factory=list)

    def fields(self) -> dict[str, Any]:
        return dict(self.data)

    def line_items(self) -> list[LineItem]:
        return list(self.items)


class DeliveryOutcome(BaseModel):
    order_id: OrderId
    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None


class QueueStatus(BaseModel):
    pending: int
    next_drain_at: datetime | None = None
    scheduled_drains: int = 0
