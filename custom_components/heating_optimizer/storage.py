from __future__ import annotations

from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import DOMAIN

_STORAGE_VERSION = 1


class LearnedStore:
    """Key-value state persisted across restarts.

    Holds everything the optimizer learns or recommends (performance factor,
    stability, curve recommendations, heating period accumulators). Values
    must be JSON serializable.
    """

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        self._store = Store(hass, _STORAGE_VERSION, f"{DOMAIN}.{entry_id}")
        self._data: dict[str, Any] = {}

    async def async_load(self) -> None:
        data = await self._store.async_load()
        if isinstance(data, dict):
            self._data = data
        else:
            self._data = {}

    async def async_save(self) -> None:
        await self._store.async_save(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_float(self, key: str, default: float) -> float:
        v = self._data.get(key)
        try:
            if v is None:
                return default
            return float(v)
        except (ValueError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
