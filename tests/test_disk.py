import json
from datetime import datetime

import pytest

from frontdesk.disk import CHECKINS, EXPENSES, RENT, DiskError, DiskStore, read_json
from frontdesk.rooms import empty_state, find_room

GUEST = {
    "name": "Ravi Kumar",
    "room": 201,
    "contact": "9876543210",
    "id": "ID123",
    "checkIn": "2025-01-01T10:00:00",
    "checkInDate": "2025-01-01",
    "rate": 1000,
}


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")


def test_init_tree_and_connection(tmp_path, disk):
    for name in ["Reservations", "Checkins", "Checkouts", "RentCollections", "Expenses", "ScannedDocuments", "Shared"]:
        assert (disk.base / name).is_dir()
    assert disk.is_connected()
    assert not DiskStore(None).is_connected()
    assert not DiskStore(tmp_path / "missing").is_connected()


def test_hydrate_state_from_checkins_and_reservations(disk):
    path = disk.write_checkin(GUEST)
    assert path.name == "checkin-Ravi_Kumar-201-2025-01-01.json"
    disk.write_reservation({"name": "Asha", "place": "Pune", "room": 103, "date": "2025-01-02"})
    _write(disk.base / CHECKINS / "2025-01-01" / "group.json", {"name": "Group", "room": [301, "302"]})
    _write(disk.base / CHECKINS / "2025-01-01" / "broken.json", "{not json")
    _write(disk.base / "Reservations" / "2025-01-05" / "nodate.json", {"name": "Bala", "room": "104"})

    current = empty_state()
    find_room(current, 101)["rate"] = 999
    current["rentPayments"] = [{"amount": 1}]

    state = disk.hydrate_state(current)
    assert find_room(state, 201)["status"] == "occupied"
    assert find_room(state, 201)["guest"]["name"] == "Ravi Kumar"
    assert find_room(state, 301)["status"] == "occupied"
    assert find_room(state, 302)["guest"]["name"] == "Group"
    assert find_room(state, 101)["rate"] == 999
    assert state["rentPayments"] == [{"amount": 1}]
    assert sorted((g["room"], g["name"]) for g in state["guests"]) == [
        (201, "Ravi Kumar"), (301, "Group"), (302, "Group"),
    ]

    by_name = {r["name"]: r for r in state["reservations"]}
    assert by_name["Asha"]["room"] == 103
    assert by_name["Bala"]["date"] == "2025-01-05"


def test_hydrate_state_without_base_folder():
    assert DiskStore(None).hydrate_state(empty_state()) is None


def test_find_checkin_file_matches_loosely_and_on_neighbouring_days(disk):
    written = disk.write_checkin(GUEST)
    assert disk.find_checkin_file("2025-01-01", 201, "Ravi Kumar") == written
    assert disk.find_checkin_file("2025-01-01", 201, "ravi   kumar") == written
    assert disk.find_checkin_file("2025-01-02", 201, "Ravi Kumar") == written
    with pytest.raises(DiskError):
        disk.find_checkin_file("2025-01-01", 202, "Ravi Kumar")
    with pytest.raises(DiskError):
        disk.find_checkin_file("2025-01-05", 201, "Ravi Kumar")


def test_total_payments_within_range_for_guest_and_room(disk):
    disk.write_rent({"name": "Ravi Kumar", "room": 201, "amount": 1000}, now=datetime(2025, 1, 1, 12, 0))
    disk.write_rent({"name": "Ravi Kumar", "room": 202, "amount": 700}, now=datetime(2025, 1, 1, 12, 0))
    disk.write_rent({"name": "Priya", "room": 201, "amount": 300}, now=datetime(2025, 1, 2, 12, 0))
    disk.write_rent({"name": "Ravi Kumar", "room": 201, "amount": 900}, now=datetime(2025, 1, 9, 12, 0))
    # older trees use DD-MM-YYYY folders
    _write(disk.base / RENT / "02-01-2025" / "rent-old.json", {"name": " ravi kumar ", "room": "201", "amount": 500})

    assert disk.total_payments("2025-01-01", 201, "Ravi Kumar", "2025-01-03") == 1500


def test_move_checkin_to_checkout(disk):
    src = disk.write_checkin(GUEST)
    disk.write_rent({"name": "Ravi Kumar", "room": 201, "amount": 2000}, now=datetime(2025, 1, 1, 12, 0))

    record = disk.move_checkin_to_checkout("2025-01-01", 201, "Ravi Kumar", now=datetime(2025, 1, 3, 9, 0))
    assert record["daysStayed"] == 2
    assert record["totalRent"] == 2000
    assert record["totalPaid"] == 2000
    assert record["paymentTallyStatus"] == "tallied"
    assert record["checkOutDate"] == "2025-01-03"

    assert not src.exists()
    dest = disk.base / "Checkouts" / "2025-01-03" / "checkout-Ravi_Kumar-201-2025-01-01.json"
    assert read_json(dest)["name"] == "Ravi Kumar"
    assert [c["name"] for c in disk.list_checkouts()] == ["Ravi Kumar"]


def test_punctuated_names_round_trip_through_checkout(disk):
    guest = {**GUEST, "name": "A. Kumar", "room": 102}
    written = disk.write_checkin(guest)
    assert written.name == "checkin-A_Kumar-102-2025-01-01.json"
    assert disk.find_checkin_file("2025-01-01", 102, "A. Kumar") == written

    disk.move_checkin_to_checkout("2025-01-01", 102, "A. Kumar", now=datetime(2025, 1, 2, 9, 0))
    assert not written.exists()
    assert find_room(disk.hydrate_state(), 102)["status"] == "free"


def test_move_checkout_back_to_checkin(disk):
    disk.write_checkin(GUEST)
    disk.move_checkin_to_checkout("2025-01-01", 201, "Ravi Kumar", now=datetime(2025, 1, 3, 9, 0))

    restored = disk.move_checkout_to_checkin("2025-01-01", 201, "Ravi Kumar")
    assert restored == disk.base / CHECKINS / "2025-01-01" / "checkin-Ravi_Kumar-201-2025-01-01.json"
    data = read_json(restored)
    assert data["name"] == "Ravi Kumar"
    assert "checkOutDate" not in data and "paymentTallyStatus" not in data
    assert disk.list_checkouts() == []
    assert find_room(disk.hydrate_state(), 201)["status"] == "occupied"
    with pytest.raises(DiskError):
        disk.move_checkout_to_checkin("2025-01-01", 201, "Ravi Kumar")


def test_reservation_files(disk):
    path = disk.write_reservation({"name": "A. Kumar", "place": "Chennai", "room": 102, "date": "2025-02-01"})
    assert path.name == "reservation-102-A_Kumar.json"
    assert disk.delete_reservation("2025-02-01", 102, "A. Kumar") is True
    assert disk.delete_reservation("2025-02-01", 102, "A. Kumar") is False


def test_ledger_listing_update_and_delete(disk):
    disk.write_expense({"description": "Tea", "amount": 50}, now=datetime(2025, 1, 1, 9, 0))
    disk.write_expense({"description": "Soap", "amount": 120}, now=datetime(2025, 1, 2, 9, 0))

    rows = disk.list_ledger(EXPENSES)
    assert len(rows) == 2
    assert {r["_dateFolder"] for r in rows} == {"2025-01-01", "2025-01-02"}
    assert all(r["_fileName"].startswith("expense-") for r in rows)

    tea = disk.ledger_for_day(EXPENSES, "2025-01-01")[0]
    assert tea["description"] == "Tea"
    assert disk.update_ledger_entry(EXPENSES, tea, {"amount": 60})["amount"] == 60
    assert disk.ledger_for_day(EXPENSES, "2025-01-01")[0]["amount"] == 60

    disk.delete_ledger_entry(EXPENSES, tea)
    assert len(disk.list_ledger(EXPENSES)) == 1
    with pytest.raises(DiskError):
        disk.delete_ledger_entry(EXPENSES, tea)
    with pytest.raises(ValueError):
        disk.list_ledger("Checkins")


def test_scans_and_guest_search(disk):
    now = datetime(2025, 1, 1, 10, 0)
    path = disk.save_scan("Ravi Kumar", 201, b"img", "png", now)
    assert path.relative_to(disk.base).as_posix() == "ScannedDocuments/2025/jan/01-01-2025/Ravi_Kumar-201-2025-01-01.png"

    disk.write_checkin(GUEST)
    disk.move_checkin_to_checkout("2025-01-01", 201, "Ravi Kumar", now=datetime(2025, 1, 2, 9, 0))

    matches = disk.search_guest_matches("ravi")
    sources = {m["source"] for m in matches}
    assert sources == {"checkout", "scanfile"}
    from_checkout = next(m for m in matches if m["source"] == "checkout")
    assert from_checkout["scan"] == path
    assert disk.search_guest_matches("r") == []

    copy = disk.reuse_scan(path, "Ravi Kumar", 202, datetime(2025, 2, 1, 10, 0))
    assert copy.read_bytes() == b"img"
    assert "feb" in copy.parts


def test_shared_snapshot(disk):
    disk.write_checkin(GUEST)
    disk.write_rent({"name": "Ravi Kumar", "room": 201, "amount": 1000, "mode": "Cash"})
    disk.write_expense({"description": "Tea", "amount": 50})

    path = disk.write_shared_snapshot(empty_state())
    snap = read_json(path)
    assert path.name == "sharedSnapshot.json"
    assert len(snap["floors"]) == 5
    assert snap["checkins"][0]["name"] == "Ravi Kumar"
    assert snap["rentPayments"][0]["amount"] == 1000
    assert snap["expenses"][0]["description"] == "Tea"
    assert DiskStore(None).write_shared_snapshot(empty_state()) is None
