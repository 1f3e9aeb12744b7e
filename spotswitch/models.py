from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PriceSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    cost: float = Field(description="Market price in tenths of a cent per kWh (Eur/MWh)")

    @model_validator(mode="after")
    def _check_span(self) -> PriceSlot:
        if self.end <= self.start:
            raise ValueError(f"slot end {self.end} must be after start {self.start}")
        return self


class PriceSeries(BaseModel):
    model_config = ConfigDict(frozen=True)

    slots: tuple[PriceSlot, ...] = ()

    @model_validator(mode="after")
    def _check_contiguous(self) -> PriceSeries:
        for prev, cur in zip(self.slots, self.slots[1:]):
            if cur.start != prev.end:
                raise ValueError(
                    f"slots must be contiguous: {prev.end.isoformat()} != {cur.start.isoformat()}"
                )
        return self

    def __len__(self) -> int:
        return len(self.slots)

    def costs(self) -> list[float]:
        return [s.cost for s in self.slots]


class CheapestWindow(BaseModel):
    start: datetime
    end: datetime
    total_cost: float
    slot_count: int


class ActionKind(str, Enum):
    ON = "on"
    OFF = "off"


@dataclass(order=True)
class DeferredAction:
    fire_at: datetime
    seq: int
    kind: ActionKind = field(compare=False)
    # ON and OFF armed together share a cycle number
    cycle: int = field(default=0, compare=False)
    cancelled: bool = field(default=False, compare=False)


class JobMarker(BaseModel):
    """Identifies the recurring job owned by one spotswitch instance."""

    model_config = ConfigDict(frozen=True)

    instance: str
    entrypoint: str = "recompute"


class RecurrenceRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    timespec: str
    marker: JobMarker


class JobCall(BaseModel):
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class ScheduledJob(BaseModel):
    id: int | None = None
    enable: bool = True
    timespec: str
    calls: list[JobCall] = Field(default_factory=list)


class OutcomeStatus(str, Enum):
    SCHEDULED = "scheduled"
    ABOVE_LIMIT = "above_limit"
    FAILED = "failed"


class RecomputeOutcome(BaseModel):
    status: OutcomeStatus
    computed_at: datetime
    query_start: datetime | None = None
    query_end: datetime | None = None
    window: CheapestWindow | None = None
    average_price: float | None = Field(default=None, description="cent/kWh")
    message: str | None = None


class PendingAction(BaseModel):
    kind: ActionKind
    fire_at: datetime


class StatusResponse(BaseModel):
    instance_id: str
    last_outcome: RecomputeOutcome | None
    pending_actions: list[PendingAction] = Field(default_factory=list)


class ConfigResponse(BaseModel):
    data: dict
