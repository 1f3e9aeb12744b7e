from __future__ import annotations


class SpotSwitchError(Exception):
    """Base class for spotswitch errors."""


class ConfigurationError(SpotSwitchError):
    """Invalid settings or window bounds that cannot be resolved."""


class InsufficientDataError(SpotSwitchError):
    """The fetched price series is shorter than the requested duration."""


class FetchError(SpotSwitchError):
    """The price API could not be reached or answered with an error."""


class ControlError(SpotSwitchError):
    """The relay reported a non-zero error code."""

    def __init__(self, code: int, message: str):
        super().__init__(f"relay error {code}: {message}")
        self.code = code
        self.message = message


class SchedulerError(SpotSwitchError):
    """A call against the recurring job scheduler failed."""
