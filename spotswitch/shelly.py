from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import logging
from typing import Any

import httpx

logger = logging.getLogger("spotswitch")


class ShellyRpcError(Exception):
    """An RPC call failed on the transport or was rejected by the device."""

    def __init__(self, code: int, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


@dataclass
class ShellyRpcClient:
    """Minimal client for the Shelly Gen2 JSON-RPC endpoint (``POST /rpc``)."""

    host: str
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    @property
    def url(self) -> str:
        host = self.host if "://" in self.host else f"http://{self.host}"
        return host.rstrip("/") + "/rpc"

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        request = {"id": next(self._ids), "method": method, "params": params or {}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=request)
                resp.raise_for_status()
                reply = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("Shelly RPC %s transport failure: %s", method, exc)
            raise ShellyRpcError(-1, str(exc)) from exc
        error = reply.get("error")
        if error:
            raise ShellyRpcError(int(error.get("code", -1)), str(error.get("message", "")))
        return reply.get("result")
