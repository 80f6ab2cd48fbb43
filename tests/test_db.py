from datetime import date, datetime

import pytest

from frontdesk.db import FrontDeskDB, ledger_total
from frontdesk.rooms import find_room, generate_default


def test_fresh_store_has_seeded_empty_hotel(db):
    state = db.load_state()
    assert sorted(state["floors"]) == ["1", "2", "3", "4", "5"]
    assert sum(len(rooms) for rooms in state["floors"].values()) == 20
    assert state["guests"] == []
    assert db.state_exists() is False


def test_seeding_is_idempotent(tmp_path):
    path = str(tmp_path / "desk.db")
    FrontDeskDB(path)
    again = FrontDeskDB(path)
    assert len(again.read_table("rooms")) == 20


def test_check_in_marks_room_occupied(db):
    ok, msg, removed = db.check_in(101, "Ravi", "9876543210", 1800, "ID123")
    assert ok is True
    assert msg == "Room 101 checked in successfully"
    assert removed is None

    room = find_room(db.load_state(), 101)
    assert room["status"] == "occupied"
    assert room["guest"]["name"] == "Ravi"
    assert room["guest"]["rate"] == 1800
    assert db.state_exists() is True


def test_check_in_rate_falls_back_to_room_rate(db):
    db.set_room_rate(102, 3000)
    db.check_in(102, "Priya")
    assert db.get_active_stay(102)["rate"] == 3000


def test_check_in_rejections(db):
    db.check_in(101, "Ravi")
    ok, msg, _ = db.check_in(101, "Priya")
    assert ok is False
    assert msg.startswith("Room 101 occupied by Ravi since")

    ok, msg, _ = db.check_in(999, "Priya")
    assert ok is False

    ok, msg, _ = db.check_in(102, "   ")
    assert (ok, msg) == (False, "Guest name required")


def test_check_in_consumes_todays_reservation(db):
    ok, _, res = db.add_reservation("Asha", "Pune", 103, date.today())
    assert ok and res["room"] == 103

    ok, _, removed = db.check_in(103, "Asha")
    assert ok is True
    assert removed["name"] == "Asha"
    assert db.list_reservations() == []


def test_reservation_rules(db):
    assert db.add_reservation("", "Pune", 103, "2099-01-01")[:2] == (False, "Please fill all fields")

    db.check_in(101, "Ravi")
    ok, msg, _ = db.add_reservation("Asha", "Pune", 101, "2099-01-01")
    assert ok is False and "occupied" in msg

    assert db.add_reservation("Asha", "Pune", 102, "2099-01-01")[0] is True
    ok, msg, _ = db.add_reservation("Bala", "Goa", 102, "2099-01-01")
    assert ok is False and "already reserved" in msg
    assert db.add_reservation("Bala", "Goa", 102, "2099-01-02")[0] is True

    assert [r["name"] for r in db.search_reservations("goa")] == ["Bala"]
    assert len(db.reservations_for_date("2099-01-01")) == 1


def test_delete_reservation(db):
    _, _, res = db.add_reservation("Asha", "Pune", 102, "2099-01-01")
    ok, _, deleted = db.delete_reservation(res["id"])
    assert ok and deleted["name"] == "Asha"
    assert db.delete_reservation(res["id"])[:2] == (False, "Reservation not found")


def test_check_out_tallies_rent_against_payments(db):
    db.check_in(101, "Ravi", rate=2500, now=datetime(2025, 1, 1, 10, 0))
    db.add_rent("Ravi", 101, 1, 2500, "Cash", now=datetime(2025, 1, 1, 12, 0))

    ok, msg, record = db.check_out(101, now=datetime(2025, 1, 3, 9, 0))
    assert ok is True
    assert msg == "Check-Out completed successfully"
    assert record["daysStayed"] == 2
    assert record["totalRent"] == 5000
    assert record["totalPaid"] == 2500
    assert record["paymentTallyStatus"] == "not-tallied"
    assert find_room(db.load_state(), 101)["status"] == "free"

    history = db.checkout_history()
    assert len(history) == 1
    assert history[0]["checkOutDate"] == "2025-01-03"
    assert db.checkout_history(tally="tallied") == []


def test_check_out_with_explicit_payment_is_tallied(db):
    db.check_in(201, "Priya", rate=1000, now=datetime(2025, 1, 1, 10, 0))
    ok, _, record = db.check_out(201, total_paid=1000, now=datetime(2025, 1, 1, 20, 0))
    assert ok and record["paymentTallyStatus"] == "tallied"


def test_check_out_empty_room(db):
    assert db.check_out(101)[:2] == (False, "Room 101 has no guest checked in")


def test_cancel_checkout_restores_guest(db):
    db.check_in(101, "Ravi")
    db.check_out(101)
    stay_id = db.checkout_history()[0]["stayId"]

    ok, _ = db.cancel_checkout(stay_id)
    assert ok is True
    assert find_room(db.load_state(), 101)["guest"]["name"] == "Ravi"
    assert db.cancel_checkout(stay_id) == (False, "This guest is not checked out")


def test_rent_ledger(db):
    assert db.add_rent("", 101, 1, 100)[:2] == (False, "Please fill all Rent Collection fields.")
    ok, _, entry = db.add_rent("Ravi", 101, 2, 5000, "GPay", "2025-01-01")
    assert ok and entry["checkInYmd"] == "2025-01-01"
    db.add_rent("Priya", 301, 1, 2000, "Cash")

    assert len(db.list_rent()) == 2
    assert [r["name"] for r in db.list_rent(mode="GPay")] == ["Ravi"]
    assert [r["name"] for r in db.list_rent(q="pri")] == ["Priya"]
    assert db.rent_total() == 7000

    assert db.update_rent(entry["id"], 3, 7500, "Cash")[0] is True
    assert db.rent_total(mode="Cash") == 9500
    assert db.delete_rent(entry["id"]) == (True, "Entry deleted successfully")
    assert db.delete_rent(entry["id"]) == (False, "Rent entry not found")
    assert db.update_rent(entry["id"], 1, 1, "Cash") == (False, "Rent entry not found")


def test_expense_ledger(db):
    assert db.add_expense("Tea", -5)[:2] == (False, "Enter a valid amount")
    assert db.add_expense("Tea", "abc")[:2] == (False, "Enter a valid amount")
    ok, _, entry = db.add_expense("Tea", 50)
    db.add_expense("Soap", 120)
    assert ok and entry["description"] == "Tea"
    assert ledger_total(db.list_expenses()) == 170
    assert [e["description"] for e in db.list_expenses(q="soap")] == ["Soap"]
    assert db.delete_expense(entry["id"])[0] is True
    assert db.delete_expense(entry["id"]) == (False, "Expense not found")


def test_outbox_keeps_only_latest_state(db):
    assert db.read_outbox() is None
    db.write_outbox({"n": 1})
    db.write_outbox({"n": 2})
    assert db.read_outbox()["state"] == {"n": 2}
    db.clear_outbox()
    assert db.read_outbox() is None


def test_save_state_replaces_rooms_and_reservations(db):
    db.add_rent("Old", 101, 1, 100)
    db.save_state(generate_default())

    state = db.load_state()
    assert find_room(state, 202)["guest"]["name"] == "Ravi"
    assert find_room(state, 202)["guest"]["rate"] == 1500
    assert find_room(state, 301)["status"] == "occupied"
    assert [r["name"] for r in state["reservations"]] == ["A. Kumar"]
    assert len(state["rentPayments"]) == 1


def test_read_table_rejects_unknown_names(db):
    with pytest.raises(ValueError):
        db.read_table("sqlite_master")


def test_export_ledger_excel(db):
    assert db.export_ledger_excel() is None
    db.add_rent("Ravi", 101, 1, 2500)
    out = db.export_ledger_excel()
    assert out.getvalue()[:2] == b"PK"
