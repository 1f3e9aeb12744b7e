from __future__ import annotations

from typing import Literal

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class SpotSwitchSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SPOTSWITCH_",
        frozen=True,
    )

    # Market data
    awattar_country: Literal["at", "de"] = Field(default="at")
    price_api_timeout_seconds: float = Field(default=15.0, gt=0)
    price_provider: str = Field(default="awattar")  # options: awattar, stub

    # Recurrence: mongoose-style "sec min hour dom month dow"
    schedule_timespec: str = Field(default="0 0 15 * * *")
    scheduler_backend: str = Field(default="shelly")  # options: shelly, local
    timezone: str = Field(default="Europe/Vienna")

    # Window search
    switch_on_duration: int = Field(default=4, ge=1, le=24)
    time_window_start_hour: int = Field(default=7, ge=0, le=23)
    time_window_end_hour: int = Field(default=19, ge=0, le=23)
    # Ceiling for the average price in cent/kWh; None disables the check
    price_limit: float | None = Field(default=None)
    cancel_stale_actions: bool = Field(default=True)

    # Device
    shelly_host: str | None = None
    shelly_timeout_seconds: float = Field(default=10.0, gt=0)
    switch_id: int = Field(default=0, ge=0)
    relay_backend: str = Field(default="shelly")  # options: shelly, noop
    # Keeps "spotswitch-schedule-<id>" within the 42 byte device KVS key limit
    instance_id: str = Field(default="spotswitch", min_length=1, max_length=22)
    device_name: str = Field(default="Shelly")
    # Base URL under which the device schedule reaches this service
    callback_url: str = Field(default="http://127.0.0.1:8000")

    # Notifications
    telegram_active: bool = False
    telegram_token: str | None = None
    telegram_chat_id: str | None = None
    send_schedule: bool = True
    send_power_on: bool = True
    send_power_off: bool = True

    # Service
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = Field(default="INFO")
    data_dir: str = Field(default="/data/spotswitch")

    @property
    def window_hours(self) -> int:
        """Nominal length of the daily search window in hours."""
        span = (self.time_window_end_hour - self.time_window_start_hour) % 24
        return span or 24

    def to_public_dict(self) -> dict:
        data = self.model_dump()
        # remove secret material; expose presence booleans instead
        data["telegram_token_present"] = bool(data.get("telegram_token"))
        data.pop("telegram_token", None)
        return data

    @model_validator(mode="after")
    def _validate_invariants(self) -> SpotSwitchSettings:
        if self.telegram_active and not (self.telegram_token and self.telegram_chat_id):
            raise ValueError("telegram_token and telegram_chat_id are required when telegram_active")
        if self.switch_on_duration > self.window_hours:
            raise ValueError(
                f"switch_on_duration ({self.switch_on_duration}h) does not fit into the "
                f"{self.window_hours}h time window"
            )
        uses_device = (
            self.scheduler_backend == "shelly"
            or self.relay_backend == "shelly"
        )
        if uses_device and not self.shelly_host:
            raise ValueError("shelly_host is required for the shelly backends")
        return self


def load_settings(**overrides) -> SpotSwitchSettings:
    """Build settings from the environment, reporting problems as ConfigurationError."""
    try:
        return SpotSwitchSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
