from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

from .shelly import ShellyRpcClient, ShellyRpcError

logger = logging.getLogger("spotswitch")


@dataclass(frozen=True)
class RelayResult:
    code: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0


class Relay(ABC):
    @abstractmethod
    async def set_output(self, on: bool) -> RelayResult:
        """Switch the output once and report the device's error code (0 = success)."""


@dataclass
class NoOpRelay(Relay):
    def __post_init__(self) -> None:
        self.last_output: bool | None = None

    async def set_output(self, on: bool) -> RelayResult:
        logger.info("NoOpRelay switching output %s", "on" if on else "off")
        self.last_output = on
        return RelayResult()


@dataclass
class ShellyRelay(Relay):
    rpc: ShellyRpcClient
    switch_id: int = 0

    async def set_output(self, on: bool) -> RelayResult:
        try:
            await self.rpc.call("Switch.Set", {"id": self.switch_id, "on": on})
        except ShellyRpcError as exc:
            logger.error("Switch.Set id=%s on=%s failed: %s", self.switch_id, on, exc)
            return RelayResult(code=exc.code, message=exc.message)
        logger.info("Switch.Set id=%s on=%s", self.switch_id, on)
        return RelayResult()
