"""Round engine for the Beer Distribution Game.

A round moves through a fixed sequence of phases, each triggered by an
explicit command:

1. :meth:`SupplyChainSimulator.start_round` – goods move one stage along every
   pipeline and each role observes this week's demand.
2. :meth:`SupplyChainSimulator.confirm_shipping` – every role ships against
   demand plus backorder.
3. :meth:`SupplyChainSimulator.confirm_ordering` – every role places its
   replenishment order (the factory starts a production run).
4. :meth:`SupplyChainSimulator.finish_round` – costs accrue and the round is
   written to the scoreboard.

Only one role may be player-controlled; the rest follow a behaviour profile.
"""

from __future__ import annotations

import logging
import numbers
import random
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from beergame.core.config import Settings, settings
from beergame.core.demand_patterns import generate_demand
from beergame.schemas.game import GameConfig, GameStateSnapshot, RoleSnapshot
from beergame.schemas.metrics import FinalScore

from .policies import FALLBACK_DEMAND, BehaviorProfile, ProfileParams, decide_order
from .policy_factory import parse_profile, resolve_params
from .role_state import CHAIN_UPSTREAM_TO_DOWNSTREAM, Role, RoleState
from .scoreboard import RoundRecord, Scoreboard

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = BehaviorProfile.SAFE


class GamePhase(str, Enum):
    NOT_STARTED = "not_started"
    SHIPPING = "shipping"
    ORDERING = "ordering"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    SETTLED = "settled"
    GAME_OVER = "game_over"


class InvalidQuantityError(ValueError):
    """A ship or order quantity supplied by the player was rejected."""


class GamePhaseError(RuntimeError):
    """A command was issued out of the round's phase sequence."""


def _validate_quantity(value: Any, label: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidQuantityError(f"{label} is required")

    quantity = value
    if isinstance(value, str):
        try:
            quantity = int(value.strip())
        except ValueError:
            raise InvalidQuantityError(f"{label} must be a whole number, got {value!r}") from None
    elif isinstance(value, float) and value.is_integer():
        quantity = int(value)

    if isinstance(quantity, bool) or not isinstance(quantity, numbers.Integral):
        raise InvalidQuantityError(f"{label} must be a whole number, got {value!r}")
    if quantity < 0:
        raise InvalidQuantityError(f"{label} cannot be negative")
    return int(quantity)


class SupplyChainSimulator:
    """Four-role Beer Game driven one command at a time."""

    def __init__(self, config: Optional[GameConfig] = None, *, rng: Optional[random.Random] = None) -> None:
        self.config = config or GameConfig()
        self._rng_injected = rng is not None
        self.rng = rng or random.Random(self.config.seed)

        self.roles: Dict[Role, RoleState] = {}
        self.player_role: Optional[Role] = None
        self.customer_demand: List[int] = []
        self.current_round = 0
        self.phase = GamePhase.NOT_STARTED
        self.shipping_confirmed = False
        self.ordering_confirmed = False
        self.scoreboard: Optional[Scoreboard] = None
        self._params: Dict[Role, ProfileParams] = {}

    @classmethod
    def from_settings(cls, app_settings: Optional[Settings] = None, **overrides: Any) -> "SupplyChainSimulator":
        """Build a simulator whose configuration comes from environment settings."""
        app_settings = app_settings or settings
        return cls(app_settings.game_config(**overrides))

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    @property
    def total_rounds(self) -> int:
        return self.config.total_rounds

    @property
    def is_game_over(self) -> bool:
        return self.phase is GamePhase.GAME_OVER

    def initialize(
        self,
        player_role: Optional[Role | str],
        ai_profiles: Optional[Mapping[Role | str, BehaviorProfile | str]] = None,
        config: Optional[GameConfig] = None,
    ) -> None:
        """Set up all roles and begin round 1.

        ``player_role`` may be ``None`` to let every role play itself.  Roles
        missing from ``ai_profiles`` use the ``safe`` profile.
        """
        if config is not None:
            self.config = config
            if not self._rng_injected:
                self.rng = random.Random(config.seed)
        cfg = self.config

        self.player_role = None if player_role is None else Role.parse(player_role)
        profiles = {Role.parse(role): parse_profile(kind) for role, kind in (ai_profiles or {}).items()}

        self.roles = {}
        self._params = {}
        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
            profile = None if role is self.player_role else profiles.get(role, DEFAULT_PROFILE)
            if role is Role.FACTORY:
                # Production lands straight in stock, so there is no intake stage
                state = RoleState(
                    role,
                    inventory=cfg.factory_initial_inventory,
                    receiving_queue=[],
                    transit_queue=[cfg.initial_pipeline] * cfg.production_time,
                    profile=profile,
                )
            else:
                state = RoleState(
                    role,
                    inventory=cfg.initial_inventory,
                    receiving_queue=[cfg.initial_pipeline] * cfg.receiving_time,
                    transit_queue=[cfg.initial_pipeline] * cfg.transport_delay,
                    profile=profile,
                )
            if profile is not None:
                self._params[role] = resolve_params(profile, role.value, cfg.ai_parameter_overrides)
            self.roles[role] = state

        self.customer_demand = generate_demand(
            cfg.demand_pattern,
            num_rounds=cfg.total_rounds,
            rng=self.rng,
        )
        self.scoreboard = Scoreboard(
            self.roles,
            player_role=self.player_role,
            customer_demand=self.customer_demand,
            unit_holding_cost=cfg.unit_holding_cost,
            unit_backorder_cost=cfg.unit_backorder_cost,
        )

        logger.info(
            "Initialized game: player=%s, rounds=%s, profiles=%s",
            self.player_role.value if self.player_role else None,
            cfg.total_rounds,
            {role.value: state.profile.value for role, state in self.roles.items() if state.profile},
        )

        self.current_round = 1
        self._begin_round()

    def profile_params(self, role: Role | str) -> Optional[ProfileParams]:
        """Resolved ordering parameters for a computer role (``None`` for the player)."""
        return self._params.get(Role.parse(role))

    # ------------------------------------------------------------------
    # Round phases
    # ------------------------------------------------------------------
    def start_round(self) -> None:
        """Begin the next round after the previous one has been settled."""
        if self.phase is not GamePhase.SETTLED:
            raise GamePhaseError(f"Cannot start a round while the game is in phase '{self.phase.value}'")
        self._begin_round()

    def _begin_round(self) -> None:
        self.shipping_confirmed = False
        self.ordering_confirmed = False
        for state in self.roles.values():
            state.reset_round_counters()

        logger.info("Week %s started", self.current_round)
        self._receive_goods()
        self._update_demand()
        self.phase = GamePhase.SHIPPING

    def _receive_goods(self) -> None:
        # Intake queue empties into stock before the next transit arrival joins it
        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
            state = self.roles[role]
            received = 0
            if state.has_receiving_stage:
                received = state.receiving_queue.pop()
                state.receive(received)

            arrived = state.transit_queue.pop()
            if state.has_receiving_stage:
                state.receiving_queue.push(arrived)
            else:
                state.receive(arrived)
                received += arrived

            state.received_this_round = received
            logger.debug(
                "%s received %s into stock (inventory %s), %s arrived from transit",
                state.name,
                received,
                state.inventory,
                arrived,
            )

    def _update_demand(self) -> None:
        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
            state = self.roles[role]
            if role is Role.RETAILER:
                state.current_demand = self.demand_for_round(self.current_round)
            elif self.current_round > 1:
                state.current_demand = self.roles[role.downstream].last_order
            else:
                state.current_demand = 0

    def demand_for_round(self, round_number: int) -> int:
        """Customer demand seen by the retailer in ``round_number`` (1-based)."""
        if 1 <= round_number <= len(self.customer_demand):
            return int(self.customer_demand[round_number - 1])
        return 0

    def confirm_shipping(self, ship_amount: Any = None) -> bool:
        """Ship for every role; ``ship_amount`` is the player's shipment.

        Returns ``False`` when shipping was already confirmed this round or the
        game is not in its shipping phase.
        """
        if self.phase is not GamePhase.SHIPPING or self.shipping_confirmed:
            logger.warning("Shipping rejected in week %s (phase %s)", self.current_round, self.phase.value)
            return False

        player_amount: Optional[int] = None
        if self.player_role is not None:
            player = self.roles[self.player_role]
            player_amount = _validate_quantity(ship_amount, "Shipping quantity")
            if player_amount > player.inventory:
                raise InvalidQuantityError(
                    f"Shipping quantity {player_amount} exceeds inventory {player.inventory}"
                )

        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
            state = self.roles[role]
            limit = player_amount if state.is_player else None
            self._ship(state, limit)

        self.shipping_confirmed = True
        self.phase = GamePhase.ORDERING
        return True

    def _ship(self, state: RoleState, limit: Optional[int]) -> int:
        need = state.total_need
        # The carried backorder is part of this week's need
        state.backorder = 0
        shipped = state.fulfill(need, limit=limit)

        downstream = state.role.downstream
        if downstream is not None:
            self.roles[downstream].transit_queue.push(shipped)
            logger.debug("%s shipped %s to %s", state.name, shipped, self.roles[downstream].name)
        else:
            logger.debug("%s sold %s to customers", state.name, shipped)
        return shipped

    def confirm_ordering(self, order_amount: Any = None) -> bool:
        """Place every role's order; ``order_amount`` is the player's order.

        Returns ``False`` when ordering was already confirmed this round or
        shipping has not been confirmed yet.
        """
        if self.phase is not GamePhase.ORDERING or self.ordering_confirmed:
            logger.warning("Ordering rejected in week %s (phase %s)", self.current_round, self.phase.value)
            return False

        player_amount: Optional[int] = None
        if self.player_role is not None:
            label = "Production quantity" if self.player_role is Role.FACTORY else "Order quantity"
            player_amount = _validate_quantity(order_amount, label)

        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
            state = self.roles[role]
            quantity = player_amount if state.is_player else self._decide_ai_order(state)
            state.record_order(quantity)
            if role is Role.FACTORY:
                # Factory orders start production immediately
                state.transit_queue.push(quantity)
            logger.debug("%s ordered %s", state.name, quantity)

        self.ordering_confirmed = True
        self.phase = GamePhase.AWAITING_SETTLEMENT
        return True

    def _decide_ai_order(self, state: RoleState) -> int:
        demand = state.current_demand
        if demand == 0 and state.role is not Role.RETAILER:
            demand = FALLBACK_DEMAND
        return decide_order(state, demand, state.average_order(), self._params[state.role], self.rng)

    def finish_round(self) -> bool:
        """Accrue costs, record the round and report whether the game is over."""
        if self.phase is not GamePhase.AWAITING_SETTLEMENT:
            raise GamePhaseError(
                f"Cannot finish week {self.current_round} in phase '{self.phase.value}'"
            )

        for state in self.roles.values():
            state.accrue_cost(self.config.unit_holding_cost, self.config.unit_backorder_cost)
        self.scoreboard.record_round(self.current_round)

        logger.info(
            "Week %s settled: %s",
            self.current_round,
            ", ".join(f"{s.name} cost {s.cost_this_round:g}" for s in self.roles.values()),
        )

        if self.current_round >= self.total_rounds:
            self.phase = GamePhase.GAME_OVER
            logger.info("Game over after %s weeks", self.current_round)
            return True

        self.current_round += 1
        self.phase = GamePhase.SETTLED
        return False

    def play_round(self, ship_amount: Any = None, order_amount: Any = None) -> bool:
        """Run all commands for the current round and start the next one."""
        if not self.confirm_shipping(ship_amount):
            raise GamePhaseError(f"Shipping already handled in week {self.current_round}")
        if not self.confirm_ordering(order_amount):
            raise GamePhaseError(f"Ordering already handled in week {self.current_round}")
        game_over = self.finish_round()
        if not game_over:
            self.start_round()
        return game_over

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------
    def role_state(self, role: Role | str) -> RoleState:
        return self.roles[Role.parse(role)]

    def role_snapshot(self, role: Role | str) -> RoleSnapshot:
        return self.role_state(role).snapshot()

    def snapshot(self) -> GameStateSnapshot:
        return GameStateSnapshot(
            current_round=self.current_round,
            total_rounds=self.total_rounds,
            phase=self.phase.value,
            player_role=self.player_role.value if self.player_role else None,
            shipping_confirmed=self.shipping_confirmed,
            ordering_confirmed=self.ordering_confirmed,
            customer_demand=self.demand_for_round(self.current_round),
            roles={role.value: state.snapshot() for role, state in self.roles.items()},
        )

    @property
    def history(self) -> Tuple[RoundRecord, ...]:
        """Settled rounds of the player's role."""
        if self.scoreboard is None:
            return ()
        return self.scoreboard.player_history()

    @property
    def records(self) -> Tuple[RoundRecord, ...]:
        """Settled rounds of every role, in settlement order."""
        if self.scoreboard is None:
            return ()
        return self.scoreboard.records

    def final_scores(self) -> List[FinalScore]:
        if self.scoreboard is None:
            return []
        return self.scoreboard.final_scores()
