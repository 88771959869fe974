"""Round history and end-of-game scoring."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from beergame.schemas.metrics import (
    CostMetrics,
    FinalScore,
    InventoryMetrics,
    OrderMetrics,
    RolePerformance,
)

from .role_state import CHAIN_UPSTREAM_TO_DOWNSTREAM, Role, RoleState


@dataclass(frozen=True)
class RoundRecord:
    round: int
    role: Role
    received: int
    shipped: int
    ordered: int
    demand: int
    inventory: int
    backorder: int
    cost: float
    total_cost: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        return data


class Scoreboard:
    """Append-only log of settled rounds plus derived scores."""

    def __init__(
        self,
        roles: Mapping[Role, RoleState],
        *,
        player_role: Optional[Role] = None,
        customer_demand: Sequence[int] = (),
        unit_holding_cost: float = 1.0,
        unit_backorder_cost: float = 2.0,
    ) -> None:
        self._roles = roles
        self.player_role = player_role
        self.customer_demand: Tuple[int, ...] = tuple(customer_demand)
        self.unit_holding_cost = unit_holding_cost
        self.unit_backorder_cost = unit_backorder_cost
        self._records: List[RoundRecord] = []

    def record_round(self, round_number: int) -> List[RoundRecord]:
        """Freeze every role's figures for ``round_number``."""
        settled = []
        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
            state = self._roles[role]
            record = RoundRecord(
                round=round_number,
                role=role,
                received=state.received_this_round,
                shipped=state.shipped_this_round,
                ordered=state.last_order,
                demand=state.current_demand,
                inventory=state.inventory,
                backorder=state.backorder,
                cost=state.cost_this_round,
                total_cost=state.total_cost,
            )
            self._records.append(record)
            settled.append(record)
        return settled

    @property
    def records(self) -> Tuple[RoundRecord, ...]:
        return tuple(self._records)

    def role_history(self, role: Role | str) -> Tuple[RoundRecord, ...]:
        role = Role.parse(role)
        return tuple(record for record in self._records if record.role is role)

    def player_history(self) -> Tuple[RoundRecord, ...]:
        if self.player_role is None:
            return ()
        return self.role_history(self.player_role)

    def final_scores(self) -> List[FinalScore]:
        """Roles ordered from lowest (best) to highest total cost."""
        scores = [
            FinalScore(
                role=role.value,
                name=state.name,
                total_cost=state.total_cost,
                backorder=state.backorder,
                is_player=state.is_player,
            )
            for role, state in self._roles.items()
        ]
        return sorted(scores, key=lambda score: score.total_cost)

    def performance(self, role: Role | str) -> RolePerformance:
        role = Role.parse(role)
        history = self.role_history(role)
        state = self._roles[role]
        rounds = len(history)

        inventory = np.asarray([r.inventory for r in history], dtype=float)
        backorder = np.asarray([r.backorder for r in history], dtype=float)
        orders = np.asarray([r.ordered for r in history], dtype=float)
        shipped = np.asarray([r.shipped for r in history], dtype=float)
        demand = np.asarray([r.demand for r in history], dtype=float)

        holding_cost = float(inventory.sum() * self.unit_holding_cost)
        backorder_cost = float(backorder.sum() * self.unit_backorder_cost)
        total_cost = float(state.total_cost)

        total_demand = float(demand.sum())
        # Catch-up shipments of old backorder do not count towards a later week
        on_time = float(np.minimum(shipped, demand).sum())
        service_level = 1.0 if total_demand == 0 else on_time / total_demand

        return RolePerformance(
            role=role.value,
            name=state.name,
            rounds_played=rounds,
            cost_metrics=CostMetrics(
                total_cost=total_cost,
                holding_cost=holding_cost,
                backorder_cost=backorder_cost,
                average_weekly_cost=total_cost / rounds if rounds else 0.0,
            ),
            inventory_metrics=InventoryMetrics(
                average_inventory=float(inventory.mean()) if rounds else 0.0,
                average_backorder=float(backorder.mean()) if rounds else 0.0,
                stockout_weeks=int((backorder > 0).sum()),
                service_level=service_level,
            ),
            order_metrics=OrderMetrics(
                average_order=float(orders.mean()) if rounds else 0.0,
                order_variability=self._coefficient_of_variation(orders),
                bullwhip_effect=self._bullwhip(orders, rounds),
            ),
            orders=[int(x) for x in orders],
        )

    @staticmethod
    def _coefficient_of_variation(values: np.ndarray) -> Optional[float]:
        if values.size == 0:
            return None
        mean = float(values.mean())
        if mean == 0:
            return None
        return float(values.std()) / mean

    def _bullwhip(self, orders: np.ndarray, rounds: int) -> Optional[float]:
        """Variance of the role's orders relative to customer demand variance."""
        if rounds < 2:
            return None
        customer = np.asarray(self.customer_demand[:rounds], dtype=float)
        if customer.size < 2:
            return None
        demand_var = float(customer.var())
        if demand_var == 0:
            return None
        return float(orders.var()) / demand_var
