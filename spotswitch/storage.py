from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import json
import logging
import os
from typing import Any

from .shelly import ShellyRpcClient, ShellyRpcError

logger = logging.getLogger("spotswitch")

# Error code the Shelly KVS reports for unknown keys
SHELLY_KVS_NOT_FOUND = -105
SHELLY_KVS_MAX_KEY_BYTES = 42
SHELLY_KVS_MAX_VALUE_BYTES = 253


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Shorten ``text`` to at most ``max_bytes`` of UTF-8, ending with an ellipsis when cut."""
    raw = text.encode("utf-8")
    if len(raw) <= max_bytes:
        return text
    suffix = "..."
    return raw[: max_bytes - len(suffix)].decode("utf-8", errors="ignore") + suffix


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value or None when the key does not exist."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Overwrite ``key`` with ``value``."""


@dataclass
class FileKeyValueStore(KeyValueStore):
    """JSON file backed store for running without a device."""

    data_dir: str
    filename: str = "kvs.json"

    @property
    def path(self) -> str:
        return os.path.join(self.data_dir, self.filename)

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    async def get(self, key: str) -> Any | None:
        return self._load().get(key)

    async def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        os.makedirs(self.data_dir, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp, self.path)


@dataclass
class ShellyKeyValueStore(KeyValueStore):
    """Device KVS; string values are cut to the length the firmware accepts."""

    rpc: ShellyRpcClient

    async def get(self, key: str) -> Any | None:
        try:
            result = await self.rpc.call("KVS.Get", {"key": key})
        except ShellyRpcError as exc:
            if exc.code == SHELLY_KVS_NOT_FOUND:
                return None
            raise
        return (result or {}).get("value")

    async def set(self, key: str, value: Any) -> None:
        if len(key.encode("utf-8")) > SHELLY_KVS_MAX_KEY_BYTES:
            raise ValueError(f"KVS key {key!r} exceeds {SHELLY_KVS_MAX_KEY_BYTES} bytes")
        if isinstance(value, str):
            value = truncate_utf8(value, SHELLY_KVS_MAX_VALUE_BYTES)
        await self.rpc.call("KVS.Set", {"key": key, "value": value})
