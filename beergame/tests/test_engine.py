import dataclasses
from collections import defaultdict

import pytest

from beergame.schemas.game import GameConfig
from beergame.services.engine import (
    GamePhase,
    GamePhaseError,
    InvalidQuantityError,
    SupplyChainSimulator,
)
from beergame.services.policies import BehaviorProfile
from beergame.services.role_state import CHAIN_UPSTREAM_TO_DOWNSTREAM, Role

ALL_SAFE = {role: "safe" for role in ("retailer", "secondary_supplier", "primary_supplier", "factory")}
QUIET = {profile.value: {"noise_level": 0.0} for profile in BehaviorProfile}


def _config(**kwargs):
    values = {"total_rounds": 4, "unit_holding_cost": 1.0, "unit_backorder_cost": 2.0, "seed": 11}
    values.update(kwargs)
    return GameConfig(**values)


def _assert_non_negative(sim):
    for state in sim.roles.values():
        assert state.inventory >= 0, state
        assert state.backorder >= 0, state


@pytest.fixture
def ai_game():
    sim = SupplyChainSimulator(_config(total_rounds=30, ai_parameter_overrides=QUIET))
    sim.initialize(None, ALL_SAFE)
    return sim


def test_initialize_sets_up_roles_and_runs_first_receive():
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)

    assert sim.current_round == 1
    assert sim.phase is GamePhase.SHIPPING
    assert sim.customer_demand == [4, 4, 4, 4]

    retailer = sim.roles[Role.RETAILER]
    # 12 on hand plus the 4 finishing intake; the 4 in transit moves to intake
    assert retailer.inventory == 16
    assert retailer.received_this_round == 4
    assert list(retailer.receiving_queue) == [4]
    assert list(retailer.transit_queue) == []
    assert retailer.is_player

    factory = sim.roles[Role.FACTORY]
    assert factory.inventory == 8
    assert list(factory.receiving_queue) == []
    assert list(factory.transit_queue) == []

    for role in (Role.SECONDARY_SUPPLIER, Role.PRIMARY_SUPPLIER, Role.FACTORY):
        assert sim.roles[role].current_demand == 0
    assert retailer.current_demand == 4


def test_scenario_player_retailer_ships_first_week_demand():
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)
    retailer = sim.roles[Role.RETAILER]
    # Round 1 already received 4 from intake, so stock starts at 16 rather than 12
    before = retailer.inventory

    assert sim.confirm_shipping(4) is True

    assert retailer.shipped_this_round == 4
    assert retailer.backorder == 0
    assert retailer.inventory == before - 4 == 12


def test_scenario_factory_production_skips_intake():
    sim = SupplyChainSimulator(_config())
    sim.initialize("factory", ALL_SAFE)
    factory = sim.roles[Role.FACTORY]

    assert factory.received_this_round == 4
    assert sim.confirm_shipping(0)
    assert sim.confirm_ordering(4)
    assert list(factory.transit_queue) == [4]
    inventory_before = factory.inventory

    assert sim.finish_round() is False
    sim.start_round()

    assert sim.current_round == 2
    assert factory.received_this_round == 4
    assert factory.inventory == inventory_before + 4
    assert list(factory.receiving_queue) == []


def test_scenario_short_stock_ships_partially_and_backorders():
    sim = SupplyChainSimulator(_config())
    sim.initialize(None, ALL_SAFE)
    retailer = sim.roles[Role.RETAILER]
    retailer.inventory = 3
    retailer.current_demand = 8
    retailer.backorder = 0

    assert sim.confirm_shipping()

    assert retailer.shipped_this_round == 3
    assert retailer.inventory == 0
    assert retailer.backorder == 5


def test_scenario_final_scores_sorted_by_cost():
    sim = SupplyChainSimulator(_config())
    sim.initialize("primary_supplier", ALL_SAFE)
    costs = {Role.RETAILER: 40.0, Role.SECONDARY_SUPPLIER: 12.5, Role.PRIMARY_SUPPLIER: 77.0, Role.FACTORY: 3.0}
    for role, cost in costs.items():
        sim.roles[role].total_cost = cost

    scores = sim.final_scores()

    assert [score.role for score in scores] == ["factory", "secondary_supplier", "retailer", "primary_supplier"]
    assert [score.total_cost for score in scores] == sorted(costs.values())
    assert [score.is_player for score in scores] == [False, False, False, True]


def test_player_shipment_is_bounded_by_need():
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)

    assert sim.confirm_shipping(10)

    retailer = sim.roles[Role.RETAILER]
    assert retailer.shipped_this_round == 4
    assert retailer.inventory == 12


def test_player_withholding_stock_creates_backorder():
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)

    assert sim.confirm_shipping(1)

    retailer = sim.roles[Role.RETAILER]
    assert retailer.shipped_this_round == 1
    assert retailer.backorder == 3


def test_first_round_ai_orders_use_fallback_demand():
    sim = SupplyChainSimulator(_config(ai_parameter_overrides=QUIET))
    sim.initialize(None, ALL_SAFE)
    sim.confirm_shipping()
    sim.confirm_ordering()

    # Every role sits on more stock than the safe target, so the
    # smoothed order is pulled down to half of the 4-unit reference.
    for role in CHAIN_UPSTREAM_TO_DOWNSTREAM:
        assert sim.roles[role].last_order == 2
        assert sim.roles[role].order_history == [2]
    assert list(sim.roles[Role.FACTORY].transit_queue) == [2]


def test_first_round_costs():
    sim = SupplyChainSimulator(_config(ai_parameter_overrides=QUIET))
    sim.initialize(None, ALL_SAFE)
    sim.play_round()

    costs = {record.role: record.cost for record in sim.records if record.round == 1}
    assert costs == {
        Role.FACTORY: 8.0,
        Role.PRIMARY_SUPPLIER: 16.0,
        Role.SECONDARY_SUPPLIER: 16.0,
        Role.RETAILER: 12.0,
    }


def test_commands_out_of_sequence_are_refused():
    sim = SupplyChainSimulator(_config())
    assert sim.confirm_shipping(1) is False

    sim.initialize("retailer", ALL_SAFE)
    assert sim.confirm_ordering(4) is False
    with pytest.raises(GamePhaseError):
        sim.finish_round()
    with pytest.raises(GamePhaseError):
        sim.start_round()

    assert sim.confirm_shipping(4) is True
    assert sim.confirm_shipping(4) is False
    assert sim.confirm_ordering(4) is True
    assert sim.confirm_ordering(4) is False
    assert sim.finish_round() is False
    assert sim.confirm_shipping(4) is False


@pytest.mark.parametrize("amount", [-1, None, "", "abc", 2.5, True])
def test_invalid_shipping_input_is_rejected_without_side_effects(amount):
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)
    before = sim.snapshot()

    with pytest.raises(InvalidQuantityError):
        sim.confirm_shipping(amount)

    assert sim.snapshot() == before
    assert sim.phase is GamePhase.SHIPPING


def test_shipping_more_than_inventory_is_rejected():
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)

    with pytest.raises(InvalidQuantityError, match="exceeds inventory"):
        sim.confirm_shipping(17)


def test_missing_production_quantity_names_the_factory_input():
    sim = SupplyChainSimulator(_config())
    sim.initialize("factory", ALL_SAFE)
    sim.confirm_shipping(0)

    with pytest.raises(InvalidQuantityError, match="Production quantity"):
        sim.confirm_ordering(None)
    with pytest.raises(InvalidQuantityError, match="negative"):
        sim.confirm_ordering(-3)

    assert sim.confirm_ordering("6")
    assert sim.roles[Role.FACTORY].last_order == 6


def test_demand_is_previous_round_downstream_order():
    sim = SupplyChainSimulator(_config(total_rounds=10))
    sim.initialize(None, {"retailer": "panic", "secondary_supplier": "calm", "factory": "panic"})
    while not sim.play_round():
        pass

    by_round = {(record.round, record.role): record for record in sim.records}
    for round_number in range(2, 11):
        for role in CHAIN_UPSTREAM_TO_DOWNSTREAM[:-1]:
            observed = by_round[(round_number, role)].demand
            placed = by_round[(round_number - 1, role.downstream)].ordered
            assert observed == placed
        assert by_round[(round_number, Role.RETAILER)].demand == sim.customer_demand[round_number - 1]


def test_invariants_hold_after_every_phase():
    sim = SupplyChainSimulator(_config(total_rounds=30, seed=3))
    sim.initialize(None, {"retailer": "panic", "secondary_supplier": "panic", "primary_supplier": "calm"})
    _assert_non_negative(sim)

    while True:
        before = {role: (state.inventory, state.total_need) for role, state in sim.roles.items()}
        sim.confirm_shipping()
        _assert_non_negative(sim)
        for role, state in sim.roles.items():
            inventory_before, need = before[role]
            assert state.shipped_this_round <= inventory_before
            assert state.backorder == max(0, need - state.shipped_this_round)

        sim.confirm_ordering()
        _assert_non_negative(sim)
        if sim.finish_round():
            break
        _assert_non_negative(sim)
        sim.start_round()
        _assert_non_negative(sim)


@pytest.mark.parametrize("transport_delay,receiving_time,production_time", [(1, 1, 1), (2, 3, 2), (3, 1, 4)])
def test_lead_times_are_exact(transport_delay, receiving_time, production_time):
    sim = SupplyChainSimulator(
        _config(
            total_rounds=16,
            transport_delay=transport_delay,
            receiving_time=receiving_time,
            production_time=production_time,
        )
    )
    sim.initialize(None, {"retailer": "panic", "primary_supplier": "panic"})
    while not sim.play_round():
        pass

    received = defaultdict(dict)
    shipped = defaultdict(dict)
    ordered = defaultdict(dict)
    for record in sim.records:
        received[record.role][record.round] = record.received
        shipped[record.role][record.round] = record.shipped
        ordered[record.role][record.round] = record.ordered

    lead = transport_delay + receiving_time
    for role in (Role.PRIMARY_SUPPLIER, Role.SECONDARY_SUPPLIER, Role.RETAILER):
        for round_number in range(1, lead + 1):
            assert received[role][round_number] == 4
        for round_number in range(1, 17 - lead):
            assert received[role][round_number + lead] == shipped[role.upstream][round_number]

    for round_number in range(1, production_time + 1):
        assert received[Role.FACTORY][round_number] == 4
    for round_number in range(1, 17 - production_time):
        assert received[Role.FACTORY][round_number + production_time] == ordered[Role.FACTORY][round_number]


def test_pipeline_lengths_stay_at_configured_lead_time():
    sim = SupplyChainSimulator(_config(total_rounds=12, transport_delay=2, receiving_time=2, production_time=3))
    sim.initialize(None, ALL_SAFE)

    for _ in range(11):
        sim.confirm_shipping()
        sim.confirm_ordering()
        for role in (Role.PRIMARY_SUPPLIER, Role.SECONDARY_SUPPLIER, Role.RETAILER):
            assert len(sim.roles[role].transit_queue) == 2
            assert len(sim.roles[role].receiving_queue) == 2
        assert len(sim.roles[Role.FACTORY].transit_queue) == 3
        assert len(sim.roles[Role.FACTORY].receiving_queue) == 0
        sim.finish_round()
        sim.start_round()


def test_units_are_conserved_across_the_chain(ai_game):
    sim = ai_game

    def units_in_system():
        return sum(state.inventory + state.pipeline_on_order for state in sim.roles.values())

    for _ in range(29):
        start = units_in_system()
        sim.confirm_shipping()
        sold = sim.roles[Role.RETAILER].shipped_this_round
        sim.confirm_ordering()
        produced = sim.roles[Role.FACTORY].last_order
        assert units_in_system() == start - sold + produced
        sim.finish_round()
        sim.start_round()


def test_full_game_reaches_game_over(ai_game):
    sim = ai_game
    results = [sim.play_round() for _ in range(30)]

    assert results == [False] * 29 + [True]
    assert sim.is_game_over
    assert sim.current_round == 30
    assert len(sim.records) == 30 * 4
    assert sim.history == ()
    with pytest.raises(GamePhaseError):
        sim.start_round()
    with pytest.raises(GamePhaseError):
        sim.play_round()


def test_history_is_read_only_player_log():
    sim = SupplyChainSimulator(_config())
    sim.initialize("secondary_supplier", ALL_SAFE)
    sim.play_round(0, 4)
    sim.play_round(2, 4)

    history = sim.history
    assert isinstance(history, tuple)
    assert [record.round for record in history] == [1, 2]
    assert all(record.role is Role.SECONDARY_SUPPLIER for record in history)
    assert history[0].ordered == 4

    with pytest.raises(dataclasses.FrozenInstanceError):
        history[0].cost = 0


def test_snapshot_exposes_round_state():
    sim = SupplyChainSimulator(_config())
    sim.initialize("retailer", ALL_SAFE)

    snap = sim.snapshot()
    assert snap.current_round == 1
    assert snap.phase == "shipping"
    assert snap.player_role == "retailer"
    assert snap.customer_demand == 4
    assert snap.roles["retailer"].inventory == 16
    assert snap.roles["factory"].profile == "safe"
    assert sim.role_snapshot("retailer") == snap.roles["retailer"]


def test_same_seed_gives_same_game_and_instances_are_independent():
    first = SupplyChainSimulator(_config(total_rounds=20, seed=42))
    second = SupplyChainSimulator(_config(total_rounds=20, seed=42))
    first.initialize(None, {"retailer": "panic"})
    second.initialize(None, {"retailer": "panic"})

    while not first.play_round():
        pass
    assert second.current_round == 1

    while not second.play_round():
        pass
    assert first.records == second.records


def test_role_overrides_reach_the_policy():
    config = _config(ai_parameter_overrides={"panic": {"noise_level": 0.0}, "factory": {"smoothing": 1.0}})
    sim = SupplyChainSimulator(config)
    sim.initialize("retailer", {"factory": "panic", "primary_supplier": "aggressive"})

    assert sim.profile_params("factory").smoothing == 1.0
    assert sim.profile_params("factory").noise_level == 0.0
    assert sim.roles[Role.PRIMARY_SUPPLIER].profile is BehaviorProfile.CALM
    assert sim.roles[Role.SECONDARY_SUPPLIER].profile is BehaviorProfile.SAFE
    assert sim.profile_params("retailer") is None
