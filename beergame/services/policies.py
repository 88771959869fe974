"""Ordering heuristics for computer-controlled roles.

Each computer role follows one of three behaviour profiles.  A profile is a
small set of weights fed into a single order-up-to heuristic:

* ``cover_weeks`` – weeks of forecast demand the role wants on hand.
* ``backlog_weight`` – how strongly outstanding backorders inflate that target.
* ``inv_adjust_weight`` – share of the inventory gap corrected in one week.
* ``smoothing`` – weight kept from the previous order (exponential smoothing).
* ``noise_level`` – symmetric multiplicative noise, e.g. ``0.15`` is ±15%.

:func:`decide_order` is a pure function of the role's ledger, the observed
demand, the historical average and the profile parameters; the only source of
non-determinism is the random generator passed in for the noise term.
"""

from __future__ import annotations

import math
import random
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .role_state import RoleState

FALLBACK_DEMAND = 4.0


@dataclass(frozen=True)
class ProfileParams:
    cover_weeks: float
    backlog_weight: float
    inv_adjust_weight: float
    smoothing: float
    noise_level: float

    def merged(self, updates: Optional[Mapping[str, float]]) -> "ProfileParams":
        """Return a copy with ``updates`` applied per parameter."""
        if not updates:
            return self
        unknown = set(updates) - set(asdict(self))
        if unknown:
            raise ValueError(f"Unknown profile parameters: {sorted(unknown)}")
        return replace(self, **{key: float(value) for key, value in updates.items()})

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


class BehaviorProfile(str, Enum):
    PANIC = "panic"  # Over-reacts to backlog and demand swings
    SAFE = "safe"  # Holds a comfortable safety stock
    CALM = "calm"  # Lean stock, sticks to previous orders

    @property
    def defaults(self) -> ProfileParams:
        return DEFAULT_PROFILES[self]


DEFAULT_PROFILES: Dict[BehaviorProfile, ProfileParams] = {
    BehaviorProfile.PANIC: ProfileParams(
        cover_weeks=3.0,
        backlog_weight=1.6,
        inv_adjust_weight=0.9,
        smoothing=0.3,
        noise_level=0.25,
    ),
    BehaviorProfile.SAFE: ProfileParams(
        cover_weeks=2.0,
        backlog_weight=1.2,
        inv_adjust_weight=0.7,
        smoothing=0.6,
        noise_level=0.15,
    ),
    BehaviorProfile.CALM: ProfileParams(
        cover_weeks=1.2,
        backlog_weight=0.7,
        inv_adjust_weight=0.5,
        smoothing=0.8,
        noise_level=0.07,
    ),
}


def _valid_number(value: Any, default: float = FALLBACK_DEMAND) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def order_bounds(last_order: float, demand: float) -> tuple[float, float]:
    """Week-over-week band an order is clamped into before noise."""
    previous = last_order or demand
    return previous * 0.5, previous * 1.5


def unclamped_order(state: "RoleState", demand: float, average_demand: float, params: ProfileParams) -> float:
    """Smoothed order before the volatility clamp and noise are applied."""
    forecast = 0.6 * demand + 0.4 * average_demand
    # Never below what is visible now, never above 1.5x the running average
    forecast = max(demand, min(forecast, average_demand * 1.5))

    target_stock = forecast * params.cover_weeks
    capped_backlog = min(state.backorder, average_demand * 2)
    gap = target_stock + params.backlog_weight * capped_backlog - state.inventory

    order_base = demand + params.inv_adjust_weight * max(gap, -demand)
    return params.smoothing * state.last_order + (1 - params.smoothing) * order_base


def decide_order(
    state: "RoleState",
    demand: Any,
    average_demand: Any,
    params: ProfileParams,
    rng: Optional[random.Random] = None,
) -> int:
    """Return the non-negative whole-unit order for this week."""
    demand = _valid_number(demand)
    average_demand = _valid_number(average_demand)

    order = unclamped_order(state, demand, average_demand, params)

    lower, upper = order_bounds(state.last_order, demand)
    order = max(lower, min(order, upper))

    if params.noise_level:
        rng = rng or random.Random()
        order *= 1 + (rng.random() * 2 - 1) * params.noise_level

    # Halves round up
    return max(0, int(math.floor(order + 0.5)))
