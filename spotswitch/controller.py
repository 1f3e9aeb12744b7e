from __future__ import annotations

from .errors import ControlError
from .metrics import relay_set_seconds
from .notifier import Notifier
from .relay import Relay


class PowerController:
    def __init__(
        self,
        relay: Relay,
        notifier: Notifier,
        send_power_on: bool = True,
        send_power_off: bool = True,
    ) -> None:
        self.relay = relay
        self.notifier = notifier
        self.send_power_on = send_power_on
        self.send_power_off = send_power_off

    async def set_power(self, on: bool) -> None:
        """Switch the relay once; raise ControlError if the device reports failure.

        The outcome is taken from the relay's reply only, the output state is
        never read back.
        """
        switch_text = "switched on" if on else "switched off"
        send = self.send_power_on if on else self.send_power_off
        with relay_set_seconds.time():
            result = await self.relay.set_output(on)
        if not result.ok:
            await self.notifier.notify(f"Power could not be {switch_text}.", send)
            raise ControlError(result.code, result.message)
        await self.notifier.notify(f"Power has been {switch_text}.", send)
