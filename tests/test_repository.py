import pytest

from dispatch_app.errors import DataIntegrityError, PersistenceError
from dispatch_app.persistence.repository import DispatchRepository, order_from_row, vehicle_from_row, warehouse_from_row

from conftest import order_row, vehicle_row, warehouse_row


def test_get_warehouse_returns_domain_model(fake_supabase):
    repository = DispatchRepository(fake_supabase)
    warehouse = repository.get_warehouse("WH1")

    assert warehouse is not None
    assert warehouse.id == "WH1"
    assert warehouse.location.lat == pytest.approx(43.6532)
    assert repository.get_warehouse("missing") is None


def test_get_vehicles_filters_by_home_warehouse(fake_supabase):
    fake_supabase.tables["vehicles"].append(vehicle_row("V9", status="maintenance"))
    vehicles = DispatchRepository(fake_supabase).get_vehicles("WH1")

    assert [vehicle.id for vehicle in vehicles] == ["V1", "V2"]


def test_get_vehicles_with_explicit_vehicle(fake_supabase):
    vehicles = DispatchRepository(fake_supabase).get_vehicles("WH1", vehicle_id="V3")

    assert [vehicle.id for vehicle in vehicles] == ["V3"]
    query = fake_supabase.executed[-1]
    assert ("eq", "id", "V3") in query.filters
    assert not any(column == "home_warehouse_id" for _, column, _ in query.filters)


def test_get_pending_orders_filters_by_date_and_ids(fake_supabase):
    repository = DispatchRepository(fake_supabase)

    orders = repository.get_pending_orders("WH1", "2024-05-01")
    assert [order.id for order in orders] == ["O1", "O2", "O3"]
    assert orders[0].customer_name == "Customer O1"
    assert orders[2].location is None

    subset = repository.get_pending_orders("WH1", "2024-05-01", order_ids=["O2"])
    assert [order.id for order in subset] == ["O2"]


def test_repository_without_client_raises():
    with pytest.raises(PersistenceError):
        DispatchRepository(None).get_warehouse("WH1")


def test_query_failure_becomes_persistence_error(fake_supabase):
    fake_supabase.failing_tables.add("orders")
    with pytest.raises(PersistenceError, match="pending orders"):
        DispatchRepository(fake_supabase).get_pending_orders("WH1", "2024-05-01")


def test_numeric_text_is_coerced():
    order = order_from_row(order_row("O1", "43.7", "-79.4", weight="1,250.5", pallets="3"))

    assert order.total_weight == pytest.approx(1250.5)
    assert order.pallets == 3
    assert order.location.lng == pytest.approx(-79.4)


@pytest.mark.parametrize("weight", ["heavy", None, True, float("inf")])
def test_non_numeric_weight_is_a_data_error(weight):
    with pytest.raises(DataIntegrityError):
        order_from_row(order_row("O1", 43.7, -79.4, weight=weight))


def test_fractional_pallet_capacity_is_a_data_error():
    with pytest.raises(DataIntegrityError):
        vehicle_from_row(vehicle_row("V1", capacity_pallets=2.5))


def test_out_of_range_customer_coordinate_means_no_location():
    order = order_from_row(order_row("O1", 143.0, -79.4))
    assert order.location is None


def test_customer_embed_may_be_a_list():
    row = order_row("O1", 43.7, -79.4)
    row["customers"] = [row["customers"]]
    assert order_from_row(row).customer_name == "Customer O1"


def test_warehouse_without_coordinates_is_a_data_error():
    with pytest.raises(DataIntegrityError):
        warehouse_from_row(warehouse_row(latitude=None, longitude=None))
