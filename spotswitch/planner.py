from __future__ import annotations

from .errors import InsufficientDataError
from .models import CheapestWindow, PriceSeries

# Eur/MWh -> cent/kWh
PRICE_UNIT_DIVISOR = 10.0


def find_cheapest_window(series: PriceSeries, slot_count: int) -> CheapestWindow:
    """Return the contiguous run of ``slot_count`` slots with the lowest total cost.

    Every candidate run is summed in full; with at most a couple of days of
    hourly slots this stays trivial and is easy to audit. Ties go to the
    earliest run because only a strictly lower sum replaces the current best.
    """
    if slot_count < 1:
        raise InsufficientDataError(f"slot_count must be at least 1, got {slot_count}")
    if len(series) < slot_count:
        raise InsufficientDataError(
            f"price series has {len(series)} slots, {slot_count} required"
        )

    slots = series.slots
    best_start = 0
    best_total = sum(s.cost for s in slots[:slot_count])
    for i in range(1, len(slots) - slot_count + 1):
        total = sum(s.cost for s in slots[i : i + slot_count])
        if total < best_total:
            best_start, best_total = i, total
    run = slots[best_start : best_start + slot_count]
    return CheapestWindow(
        start=run[0].start,
        end=run[-1].end,
        total_cost=best_total,
        slot_count=slot_count,
    )


def average_price(window: CheapestWindow) -> float:
    """Average price of the window in cent/kWh."""
    return window.total_cost / PRICE_UNIT_DIVISOR / window.slot_count


def exceeds_price_limit(window: CheapestWindow, price_limit: float | None) -> bool:
    if price_limit is None:
        return False
    return average_price(window) > price_limit
