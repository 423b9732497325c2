import json

import pytest

from dispatch_app.services.optimization.solver_bridge import parse_solver_output, serialize_instance
from dispatch_app.solver import solve_loads
from dispatch_app.solver.__main__ import main

from conftest import make_instance, make_order, make_vehicle


def _solve(instance):
    return solve_loads(serialize_instance(instance), time_limit_seconds=1)


def test_loads_respect_vehicle_capacity():
    instance = make_instance(
        [make_vehicle("V1", capacity_weight=1000), make_vehicle("V2", capacity_weight=1000)],
        [
            make_order("O1", 43.70, -79.40, weight=600, pallets=2),
            make_order("O2", 43.66, -79.35, weight=600, pallets=2),
            make_order("O3", 43.62, -79.45, weight=600, pallets=2),
        ],
    )
    loads = _solve(instance)

    assigned = [order["id"] for load in loads for order in load["orders"]]
    assert len(assigned) == 2
    assert len(set(assigned)) == 2
    for load in loads:
        assert load["totalWeight"] <= 1000
    # output satisfies the result contract
    assert len(parse_solver_output(json.dumps(loads), instance)) == len(loads)


def test_pallet_capacity_is_enforced():
    instance = make_instance(
        [make_vehicle("V1", capacity_weight=10_000, capacity_pallets=4)],
        [make_order(f"O{i}", 43.6 + i / 100, -79.4, weight=10, pallets=2) for i in range(3)],
    )
    loads = _solve(instance)

    assert len(loads) == 1
    assert loads[0]["totalPallets"] == 4


def test_max_stops_limits_orders_per_vehicle():
    instance = make_instance(
        [make_vehicle("V1", capacity_weight=10_000, capacity_pallets=100)],
        [make_order(f"O{i}", 43.6 + i / 100, -79.4 - i / 100) for i in range(4)],
        max_stops=2,
    )
    loads = _solve(instance)

    assert len(loads) == 1
    assert len(loads[0]["orders"]) == 2


def test_priority_orders_are_kept_when_space_is_short():
    instance = make_instance(
        [make_vehicle("V1", capacity_weight=1000)],
        [
            make_order("HEAVY", 43.70, -79.40, weight=700),
            make_order("VIP", 43.90, -79.90, weight=600, priority=True),
        ],
    )
    loads = _solve(instance)

    assert [order["id"] for order in loads[0]["orders"]] == ["VIP"]


def test_no_vehicles_yields_no_loads():
    instance = make_instance([], [make_order("O1", 43.70, -79.40)])
    assert _solve(instance) == []


def test_round_trip_route_and_efficiency_score():
    instance = make_instance(
        [make_vehicle("V1", capacity_weight=1000, capacity_pallets=10)],
        [make_order("O1", 43.70, -79.40, weight=500, pallets=2)],
    )
    loads = _solve(instance)
    one_way = instance.distance_matrix.distance(0, 1)

    load = loads[0]
    assert load["route"][0] == load["route"][-1] == {"lat": 43.6532, "lng": -79.3832}
    assert len(load["route"]) == 3
    assert load["totalDistance"] == pytest.approx(2 * one_way, abs=1e-3)
    # half full, perfectly direct
    assert load["efficiencyScore"] == pytest.approx(65.0)


def test_open_route_ends_at_last_stop():
    instance = make_instance(
        [make_vehicle("V1")],
        [make_order("O1", 43.70, -79.40)],
        return_to_depot=False,
    )
    load = _solve(instance)[0]

    assert load["route"][-1] == {"lat": 43.70, "lng": -79.40}
    assert load["totalDistance"] == pytest.approx(instance.distance_matrix.distance(0, 1), abs=1e-3)


def test_unlocated_order_rides_with_the_warehouse():
    instance = make_instance([make_vehicle("V1")], [make_order("O1", weight=250)])
    load = _solve(instance)[0]

    assert load["totalDistance"] == 0
    assert load["route"] == [{"lat": 43.6532, "lng": -79.3832}] * 2
    assert load["orders"][0]["id"] == "O1"


def test_command_line_prints_loads(capsys):
    instance = make_instance([make_vehicle("V1")], [make_order("O1", 43.70, -79.40)])
    exit_code = main(["--json", json.dumps(serialize_instance(instance)), "--time-limit", "1"])

    assert exit_code == 0
    loads = json.loads(capsys.readouterr().out)
    assert loads[0]["vehicleId"] == "V1"


def test_command_line_rejects_bad_input(capsys):
    assert main(["--json", "{not json"]) == 1
    assert "Invalid instance JSON" in capsys.readouterr().err
