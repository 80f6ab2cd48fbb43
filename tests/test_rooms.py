from frontdesk.dates import ymd
from frontdesk.rooms import (
    STATUS_OCCUPIED,
    STATUS_RESERVED,
    available_rooms,
    empty_state,
    find_room,
    generate_default,
    is_valid_room_number,
    make_empty_floors,
    normalize_server_state,
    occupancy_stats,
    parse_rooms,
    preserve_rates,
    room_grid,
    rooms_key,
)


def test_empty_floors_layout():
    floors = make_empty_floors()
    assert sorted(floors) == ["1", "2", "3", "4", "5"]
    numbers = [r["number"] for rooms in floors.values() for r in rooms]
    assert len(numbers) == 20
    assert numbers[0] == 101 and numbers[-1] == 504
    assert all(r["status"] == "free" and r["rate"] == 2500 for rooms in floors.values() for r in rooms)


def test_generate_default_samples():
    state = generate_default()
    assert find_room(state, 102)["status"] == STATUS_RESERVED
    assert find_room(state, 202)["guest"]["name"] == "Ravi"
    assert find_room(state, 301)["guest"]["name"] == "Priya"
    assert state["reservations"][0]["room"] == 102

    bare = generate_default(samples=False)
    assert all(r["guest"] is None for rooms in bare["floors"].values() for r in rooms)


def test_is_valid_room_number():
    assert is_valid_room_number("101") == (True, "101")
    assert is_valid_room_number(504) == (True, "504")
    assert is_valid_room_number("105")[0] is False
    assert is_valid_room_number("601")[0] is False
    assert is_valid_room_number("10.5") == (False, "Room number cannot have decimals. Use whole numbers only")
    assert is_valid_room_number("")[0] is False
    assert is_valid_room_number("abc")[0] is False


def test_parse_rooms_and_key():
    assert parse_rooms("102, 101") == [101, 102]
    assert parse_rooms([301, "302"]) == [301, 302]
    assert parse_rooms(201) == [201]
    assert parse_rooms("x, 0") == []
    assert parse_rooms(None) == []
    assert rooms_key("102,101") == "101_102"


def test_room_grid_overlays_todays_reservation_on_free_rooms_only():
    state = empty_state()
    today = ymd()
    find_room(state, 201)["status"] = STATUS_OCCUPIED
    state["reservations"] = [
        {"name": "Asha", "place": "Pune", "room": 103, "date": today},
        {"name": "Late", "place": "Goa", "room": 201, "date": today},
        {"name": "Later", "place": "Goa", "room": 104, "date": "2099-01-01"},
    ]
    grid = room_grid(state, today)
    assert grid["1"][2]["status"] == STATUS_RESERVED
    assert grid["1"][2]["reservedFor"]["name"] == "Asha"
    assert grid["2"][0]["status"] == STATUS_OCCUPIED
    assert grid["1"][3]["status"] == "free"


def test_occupancy_and_availability_of_default_state():
    state = generate_default()
    today = ymd()
    assert occupancy_stats(state, today) == {"total": 20, "free": 17, "reserved": 1, "occupied": 2}
    free = available_rooms(state, today)
    assert 102 not in free and 202 not in free and 301 not in free
    assert len(free) == 17
    assert available_rooms(state, "") == []


def test_preserve_rates_keeps_old_rates_without_mutating_input():
    old = empty_state()
    find_room(old, 101)["rate"] = 999
    new = empty_state()
    merged = preserve_rates(new, old)
    assert find_room(merged, 101)["rate"] == 999
    assert find_room(new, 101)["rate"] == 2500
    assert preserve_rates(new, None) is new


def test_normalize_server_state():
    assert len(normalize_server_state(None)["floors"]) == 5

    out = normalize_server_state({"floors": {}, "rent_payments": [{"amount": 1}]})
    assert len(out["floors"]) == 5
    assert out["rentPayments"] == [{"amount": 1}]
    assert out["expenses"] == []

    keyed = normalize_server_state({"floors": {1: [{"number": 101}]}})
    assert list(keyed["floors"]) == ["1"]
