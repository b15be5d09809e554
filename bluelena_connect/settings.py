import logging
import threading
from typing import Any, Protocol

from bluelena_connect.config import DEFAULT_ENABLED, DEFAULT_SECRET_TOKEN, DEFAULT_WEBHOOK_URL
from bluelena_connect.models import OPTION_ENABLED, OPTION_SECRET_TOKEN, OPTION_WEBHOOK_URL, Settings

logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...


class MemorySettingsStore:
    """Key/value option store kept in process memory."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._lock = threading.Lock()
        self._options: dict[str, Any] = dict(initial or {})

    async def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._options.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._options[key] = value


async def load_settings(store: SettingsStore) -> Settings:
    """Reads the current webhook settings from the store."""
    return Settings(
        webhook_url=await store.get(OPTION_WEBHOOK_URL, DEFAULT_WEBHOOK_URL) or "",
        secret_token=await store.get(OPTION_SECRET_TOKEN, DEFAULT_SECRET_TOKEN) or "",
        enabled=await store.get(OPTION_ENABLED, DEFAULT_ENABLED),
    )


async def save_settings(store: SettingsStore, webhook_url: str, secret_token: str, enabled: bool) -> Settings:
    """Persists webhook settings, trimming surrounding whitespace from text values."""
    settings = Settings(
        webhook_url=(webhook_url or "").strip(),
        secret_token=(secret_token or "").strip(),
        enabled=enabled,
    )
    await store.set(OPTION_WEBHOOK_URL, settings.webhook_url)
    await store.set(OPTION_SECRET_TOKEN, settings.secret_token)
    await store.set(OPTION_ENABLED, settings.enabled)
    logger.info(f"BlueLena Connect settings saved (enabled={settings.enabled}, webhook configured={bool(settings.webhook_url)})")
    return settings
