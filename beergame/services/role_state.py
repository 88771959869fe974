"""Per-role ledger for the Beer Game supply chain."""

from __future__ import annotations

from collections import deque
from enum import Enum
from typing import Deque, Iterable, Iterator, List, Optional, Tuple

from beergame.schemas.game import RoleSnapshot

from .policies import BehaviorProfile

DEFAULT_AVERAGE_DEMAND = 4.0


class Role(str, Enum):
    RETAILER = "retailer"
    SECONDARY_SUPPLIER = "secondary_supplier"
    PRIMARY_SUPPLIER = "primary_supplier"
    FACTORY = "factory"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def downstream(self) -> Optional["Role"]:
        """Role that receives this role's shipments (``None`` for the retailer)."""
        chain = CHAIN_UPSTREAM_TO_DOWNSTREAM
        idx = chain.index(self)
        return chain[idx + 1] if idx + 1 < len(chain) else None

    @property
    def upstream(self) -> Optional["Role"]:
        """Role that fills this role's orders (``None`` for the factory)."""
        chain = CHAIN_UPSTREAM_TO_DOWNSTREAM
        idx = chain.index(self)
        return chain[idx - 1] if idx > 0 else None

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


#: Material flows left to right; orders travel the opposite way.
CHAIN_UPSTREAM_TO_DOWNSTREAM: Tuple[Role, ...] = (
    Role.FACTORY,
    Role.PRIMARY_SUPPLIER,
    Role.SECONDARY_SUPPLIER,
    Role.RETAILER,
)


class PipelineQueue:
    """Ordered queue of quantities moving through a delay stage."""

    def __init__(self, items: Iterable[int] | None = None) -> None:
        self._items: Deque[int] = deque(int(x) for x in (items or ()))

    def push(self, amount: int) -> None:
        """Append a quantity at the tail."""
        self._items.append(int(amount))

    def pop(self) -> int:
        """Remove and return the head quantity, or 0 when the stage is empty."""
        if not self._items:
            return 0
        return self._items.popleft()

    def peek(self) -> int:
        return self._items[0] if self._items else 0

    @property
    def total(self) -> int:
        return sum(self._items)

    def snapshot(self) -> Tuple[int, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[int]:
        return iter(tuple(self._items))

    def __repr__(self) -> str:
        return f"PipelineQueue({list(self._items)!r})"


class RoleState:
    """Mutable ledger for one role: stock, backorder, pipelines and costs."""

    def __init__(
        self,
        role: Role,
        *,
        inventory: int = 12,
        backorder: int = 0,
        receiving_queue: Iterable[int] | None = None,
        transit_queue: Iterable[int] | None = None,
        profile: Optional[BehaviorProfile] = None,
    ) -> None:
        self.role = role
        self.name = role.display_name
        self.inventory = max(0, int(inventory))
        self.backorder = max(0, int(backorder))
        self.receiving_queue = PipelineQueue(receiving_queue)
        self.transit_queue = PipelineQueue(transit_queue)

        self.current_demand = 0
        self.last_order = 0
        self.order_history: List[int] = []
        self.total_cost = 0.0

        # ``None`` marks the player-controlled role
        self.profile = profile

        self.received_this_round = 0
        self.shipped_this_round = 0
        self.cost_this_round = 0.0

    @property
    def is_player(self) -> bool:
        return self.profile is None

    @property
    def has_receiving_stage(self) -> bool:
        return self.role is not Role.FACTORY

    @property
    def pipeline_on_order(self) -> int:
        """Units already moving towards this role's inventory."""
        return self.receiving_queue.total + self.transit_queue.total

    # ------------------------------------------------------------------
    # State transition helpers
    # ------------------------------------------------------------------
    def receive(self, amount: int) -> None:
        self.inventory += int(amount)

    @property
    def total_need(self) -> int:
        """This week's demand plus the backorder carried from earlier weeks."""
        return self.current_demand + self.backorder

    def fulfill(self, requested: int, limit: Optional[int] = None) -> int:
        """Ship up to ``requested`` from stock; the shortfall joins the backorder.

        ``limit`` caps the shipment below what stock allows (a player may
        choose to hold units back); the withheld units are backordered too.
        """
        requested = int(requested)
        shipped = min(requested, self.inventory)
        if limit is not None:
            shipped = min(shipped, int(limit))
        self.inventory -= shipped
        self.backorder += requested - shipped
        self.shipped_this_round = shipped
        return shipped

    def accrue_cost(self, unit_holding_cost: float, unit_backorder_cost: float) -> float:
        """Accrue this week's holding and backorder costs."""
        cost = self.inventory * unit_holding_cost + self.backorder * unit_backorder_cost
        self.total_cost += cost
        self.cost_this_round = cost
        return cost

    def record_order(self, amount: int) -> int:
        self.last_order = int(amount)
        self.order_history.append(self.last_order)
        return self.last_order

    def average_order(self, default: float = DEFAULT_AVERAGE_DEMAND) -> float:
        if not self.order_history:
            return default
        return sum(self.order_history) / len(self.order_history)

    def reset_round_counters(self) -> None:
        self.received_this_round = 0
        self.shipped_this_round = 0
        self.cost_this_round = 0.0

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------
    def snapshot(self) -> RoleSnapshot:
        return RoleSnapshot(
            role=self.role.value,
            name=self.name,
            is_player=self.is_player,
            profile=None if self.profile is None else self.profile.value,
            inventory=self.inventory,
            backorder=self.backorder,
            receiving_queue=list(self.receiving_queue),
            transit_queue=list(self.transit_queue),
            current_demand=self.current_demand,
            last_order=self.last_order,
            total_cost=self.total_cost,
            received_this_round=self.received_this_round,
            shipped_this_round=self.shipped_this_round,
            cost_this_round=self.cost_this_round,
        )

    def __repr__(self) -> str:
        return (
            f"RoleState({self.role.value}, inventory={self.inventory}, "
            f"backorder={self.backorder}, last_order={self.last_order})"
        )
