import json
import logging
from contextlib import closing
from datetime import date, datetime
from io import BytesIO

import pandas as pd
import sqlite3

from . import config
from .dates import days_between, normalize_checkin_ymd, parse_iso, ymd
from .rooms import STATUS_FREE, STATUS_OCCUPIED, is_valid_room_number

log = logging.getLogger(__name__)

OUTBOX_KEY = "remote_outbox_state"

TABLES = ["rooms", "stays", "reservations", "rent_payments", "expenses", "kv"]


def _now_iso(now: datetime | None = None) -> str:
    return (now or datetime.now()).isoformat(timespec="seconds")


# =========================
# Local store
# =========================

class FrontDeskDB:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()
        self.seed_rooms_from_layout()

    # ---- internal helpers ----

    def _get_conn(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()

            # rooms – floor grid, one row per room
            c.execute("""
            CREATE TABLE IF NOT EXISTS rooms (
                room_number INTEGER PRIMARY KEY,
                floor INTEGER,
                status TEXT DEFAULT 'free',
                rate REAL,
                reserved_for TEXT
            )
            """)

            # stays – check-ins, closed on check-out
            c.execute("""
            CREATE TABLE IF NOT EXISTS stays (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                room_number INTEGER,
                guest_name TEXT,
                contact TEXT,
                id_number TEXT,
                rate REAL,
                status TEXT DEFAULT 'CHECKED_IN',
                check_in TEXT,
                check_in_date TEXT,
                check_in_time TEXT,
                check_out TEXT,
                days_stayed INTEGER,
                total_rent REAL,
                total_paid REAL,
                payment_tally_status TEXT,
                edited INTEGER DEFAULT 0,
                created_at TEXT DEFAULT (datetime('now'))
            )
            """)

            c.execute("""
            CREATE TABLE IF NOT EXISTS reservations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT,
                place TEXT,
                room_number INTEGER,
                res_date TEXT,
                created_at TEXT DEFAULT (datetime('now'))
            )
            """)

            # rent collections
            c.execute("""
            CREATE TABLE IF NOT EXISTS rent_payments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT,
                room TEXT,
                days INTEGER,
                amount REAL,
                mode TEXT DEFAULT 'Cash',
                check_in_ymd TEXT,
                pay_date TEXT,
                created_at TEXT
            )
            """)

            c.execute("""
            CREATE TABLE IF NOT EXISTS expenses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                description TEXT,
                amount REAL,
                exp_date TEXT,
                created_at TEXT
            )
            """)

            # key/value blobs (remote outbox)
            c.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT
            )
            """)

    def seed_rooms_from_layout(self):
        """Create the room inventory from the floor layout."""
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            for f in range(1, config.FLOORS + 1):
                for r in range(1, config.ROOMS_PER_FLOOR + 1):
                    c.execute(
                        "INSERT OR IGNORE INTO rooms (room_number, floor, status, rate) VALUES (?, ?, 'free', ?)",
                        (f * 100 + r, f, config.DEFAULT_RATE),
                    )

    # ---- state snapshot ----

    def state_exists(self) -> bool:
        """True once anything beyond the seeded empty hotel has been stored."""
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("""
            SELECT
                (SELECT COUNT(*) FROM stays) +
                (SELECT COUNT(*) FROM reservations) +
                (SELECT COUNT(*) FROM rooms WHERE status != 'free' OR rate != ?) AS cnt
            """, (config.DEFAULT_RATE,))
            return c.fetchone()["cnt"] > 0

    def load_state(self) -> dict:
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("SELECT * FROM rooms ORDER BY room_number")
            rooms = c.fetchall()
            c.execute("SELECT * FROM stays WHERE status = 'CHECKED_IN' ORDER BY check_in")
            active = {s["room_number"]: s for s in c.fetchall()}
            c.execute("SELECT * FROM reservations ORDER BY res_date, room_number")
            reservations = c.fetchall()

        floors = {}
        guests = []
        for r in rooms:
            stay = active.get(r["room_number"])
            room = {
                "number": r["room_number"],
                "status": r["status"] or STATUS_FREE,
                "rate": r["rate"],
                "guest": None,
                "reservedFor": json.loads(r["reserved_for"]) if r["reserved_for"] else None,
            }
            if stay:
                room["status"] = STATUS_OCCUPIED
                room["guest"] = self.guest_from_stay(stay)
                guests.append({"room": r["room_number"], **room["guest"]})
            floors.setdefault(str(r["floor"]), []).append(room)

        return {
            "floors": floors,
            "guests": guests,
            "reservations": [self._reservation_dict(x) for x in reservations],
            "checkouts": self.checkout_history(),
            "rentPayments": self.list_rent(),
            "expenses": self.list_expenses(),
        }

    def save_state(self, state: dict):
        """Replace rooms, active stays and reservations with those of `state`.

        Ledgers and closed stays are local history and are left alone.
        """
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("DELETE FROM stays WHERE status = 'CHECKED_IN'")
            c.execute("DELETE FROM reservations")
            for fnum, rooms in (state.get("floors") or {}).items():
                for r in rooms:
                    guest = r.get("guest")
                    status = r.get("status") or STATUS_FREE
                    if status == STATUS_OCCUPIED and not guest:
                        status = STATUS_FREE
                    reserved_for = r.get("reservedFor")
                    c.execute("""
                    INSERT INTO rooms (room_number, floor, status, rate, reserved_for)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(room_number) DO UPDATE SET
                        floor=excluded.floor,
                        status=excluded.status,
                        rate=excluded.rate,
                        reserved_for=excluded.reserved_for
                    """, (
                        int(r["number"]),
                        int(fnum),
                        status,
                        r.get("rate", config.DEFAULT_RATE),
                        json.dumps(reserved_for) if reserved_for else None,
                    ))
                    if status == STATUS_OCCUPIED:
                        check_in = guest.get("checkIn") or _now_iso()
                        dt = parse_iso(check_in) or datetime.now()
                        c.execute("""
                        INSERT INTO stays (room_number, guest_name, contact, id_number, rate, status,
                                           check_in, check_in_date, check_in_time, edited)
                        VALUES (?, ?, ?, ?, ?, 'CHECKED_IN', ?, ?, ?, ?)
                        """, (
                            int(r["number"]),
                            guest.get("name") or "Guest",
                            guest.get("contact") or "",
                            guest.get("id") or "",
                            guest.get("rate", r.get("rate")) or 0,
                            check_in,
                            guest.get("checkInDate") or normalize_checkin_ymd(guest) or dt.strftime("%Y-%m-%d"),
                            guest.get("checkInTime") or dt.strftime("%H:%M:%S"),
                            int(bool(guest.get("edited"))),
                        ))
            for res in state.get("reservations") or []:
                try:
                    rn = int(res.get("room"))
                except (TypeError, ValueError):
                    continue
                c.execute(
                    "INSERT INTO reservations (name, place, room_number, res_date) VALUES (?, ?, ?, ?)",
                    (res.get("name") or "Guest", res.get("place") or "", rn, res.get("date")),
                )

    @staticmethod
    def guest_from_stay(stay) -> dict:
        return {
            "name": stay["guest_name"],
            "contact": stay["contact"] or "",
            "id": stay["id_number"] or "",
            "checkIn": stay["check_in"],
            "checkInDate": stay["check_in_date"],
            "checkInTime": stay["check_in_time"],
            "rate": stay["rate"],
            "edited": bool(stay["edited"]),
        }

    @staticmethod
    def _reservation_dict(row) -> dict:
        return {
            "id": row["id"],
            "name": row["name"],
            "place": row["place"] or "",
            "room": row["room_number"],
            "date": row["res_date"],
        }

    # ---- rooms / stays ----

    def get_room(self, room_number: int):
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("SELECT * FROM rooms WHERE room_number = ?", (room_number,))
            return c.fetchone()

    def get_stay(self, stay_id: int):
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("SELECT * FROM stays WHERE id = ?", (stay_id,))
            return c.fetchone()

    def get_active_stay(self, room_number: int):
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute(
                "SELECT * FROM stays WHERE room_number = ? AND status = 'CHECKED_IN' ORDER BY id DESC",
                (room_number,),
            )
            return c.fetchone()

    def set_room_rate(self, room_number: int, rate: float):
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("UPDATE rooms SET rate = ? WHERE room_number = ?", (rate, room_number))

    def check_in(self, room_number, name: str, contact: str = "", rate=None,
                 id_number: str = "", now: datetime | None = None):
        """Check a guest into a room.

        Returns (ok, message, removed_reservation). A reservation for the same
        room on the check-in day is consumed by the check-in.
        """
        is_valid, result = is_valid_room_number(room_number)
        if not is_valid:
            return False, result, None
        rn = int(result)

        if not name or not str(name).strip():
            return False, "Guest name required", None
        name = str(name).strip()

        now = now or datetime.now()
        today = ymd(now.date())

        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("SELECT * FROM stays WHERE room_number = ? AND status = 'CHECKED_IN'", (rn,))
            conflict = c.fetchone()
            if conflict:
                return False, f"Room {rn} occupied by {conflict['guest_name']} since {conflict['check_in_date']}", None

            c.execute("SELECT rate FROM rooms WHERE room_number = ?", (rn,))
            room = c.fetchone()
            try:
                nightly = float(rate) if rate not in (None, "") else None
            except (TypeError, ValueError):
                return False, "Rate must be a number", None
            if not nightly:
                nightly = room["rate"] if room and room["rate"] else 0

            c.execute("""
            INSERT INTO stays (room_number, guest_name, contact, id_number, rate, status,
                               check_in, check_in_date, check_in_time)
            VALUES (?, ?, ?, ?, ?, 'CHECKED_IN', ?, ?, ?)
            """, (rn, name, contact or "", id_number or "", nightly,
                  _now_iso(now), today, now.strftime("%H:%M:%S")))

            c.execute(
                "UPDATE rooms SET status = 'occupied', reserved_for = NULL WHERE room_number = ?", (rn,)
            )

            c.execute("SELECT * FROM reservations WHERE room_number = ? AND res_date = ?", (rn, today))
            res = c.fetchone()
            removed = None
            if res:
                removed = self._reservation_dict(res)
                c.execute("DELETE FROM reservations WHERE id = ?", (res["id"],))

        log.info("checked in %s to room %s", name, rn)
        return True, f"Room {rn} checked in successfully", removed

    def check_out(self, room_number, total_paid=None, now: datetime | None = None):
        """Close the active stay of a room and tally rent against payments.

        `total_paid` defaults to the sum of local rent entries for this guest
        between the check-in day and today. Returns (ok, message, record).
        """
        try:
            rn = int(str(room_number).strip())
        except (TypeError, ValueError):
            return False, "Room number must be a valid whole number", None
        now = now or datetime.now()

        stay = self.get_active_stay(rn)
        if not stay:
            return False, f"Room {rn} has no guest checked in", None

        check_in = parse_iso(stay["check_in"]) or now
        days = days_between(check_in, now)
        rate = float(stay["rate"] or 0)
        total_rent = days * rate
        if total_paid is None:
            total_paid = self.total_paid_for(stay["guest_name"], rn, stay["check_in_date"], ymd(now.date()))
        tally = "tallied" if total_paid >= total_rent else "not-tallied"

        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("""
            UPDATE stays
            SET status = 'CHECKED_OUT', check_out = ?, days_stayed = ?,
                total_rent = ?, total_paid = ?, payment_tally_status = ?
            WHERE id = ?
            """, (_now_iso(now), days, total_rent, total_paid, tally, stay["id"]))
            c.execute("UPDATE rooms SET status = 'free' WHERE room_number = ?", (rn,))

        record = {
            **self.guest_from_stay(stay),
            "room": rn,
            "checkOutDate": now.strftime("%Y-%m-%d"),
            "checkOutTime": now.strftime("%H:%M:%S"),
            "checkOutDateTime": _now_iso(now),
            "daysStayed": days,
            "totalRent": total_rent,
            "totalPaid": total_paid,
            "paymentTallyStatus": tally,
        }
        log.info("checked out room %s (%s days, %s)", rn, days, tally)
        return True, "Check-Out completed successfully", record

    def cancel_checkout(self, stay_id: int):
        """Undo a checkout - set stay back to CHECKED_IN"""
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()

            c.execute("SELECT * FROM stays WHERE id = ?", (stay_id,))
            stay = c.fetchone()

            if not stay:
                return False, "Stay not found"

            if stay["status"] != "CHECKED_OUT":
                return False, "This guest is not checked out"

            room = stay["room_number"]
            c.execute("SELECT guest_name FROM stays WHERE room_number = ? AND status = 'CHECKED_IN'", (room,))
            current = c.fetchone()
            if current:
                return False, f"Room {room} is already occupied by {current['guest_name']}"

            c.execute("""
            UPDATE stays
            SET status = 'CHECKED_IN', check_out = NULL, days_stayed = NULL,
                total_rent = NULL, total_paid = NULL, payment_tally_status = NULL
            WHERE id = ?
            """, (stay_id,))

            c.execute("UPDATE rooms SET status = 'occupied' WHERE room_number = ?", (room,))

            return True, f"Check-out cancelled - room {room} is back to in-house"

    def checkout_history(self, q: str = "", date_from: str = "", date_to: str = "", tally: str = "All"):
        """Closed stays, latest check-out first, shaped like checkout records."""
        sql = "SELECT * FROM stays WHERE status = 'CHECKED_OUT'"
        params = []
        if date_from:
            sql += " AND DATE(check_out) >= DATE(?)"
            params.append(date_from)
        if date_to:
            sql += " AND DATE(check_out) <= DATE(?)"
            params.append(date_to)
        if tally and tally != "All":
            sql += " AND LOWER(payment_tally_status) = LOWER(?)"
            params.append(tally)
        if q and q.strip():
            like = f"%{q.strip().lower()}%"
            sql += " AND (LOWER(guest_name) LIKE ? OR CAST(room_number AS TEXT) LIKE ? OR contact LIKE ?)"
            params += [like, like, like]
        sql += " ORDER BY check_out DESC, id DESC"
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute(sql, params)
            rows = c.fetchall()
        out = []
        for s in rows:
            out.append({
                "stayId": s["id"],
                **self.guest_from_stay(s),
                "room": s["room_number"],
                "checkOutDateTime": s["check_out"],
                "checkOutDate": (s["check_out"] or "")[:10],
                "daysStayed": s["days_stayed"],
                "totalRent": s["total_rent"],
                "totalPaid": s["total_paid"],
                "paymentTallyStatus": s["payment_tally_status"],
            })
        return out

    # ---- reservations ----

    def add_reservation(self, name: str, place: str, room_number, res_date):
        """Book a room for a date. Returns (ok, message, reservation)."""
        if not name or not place or not room_number or not res_date:
            return False, "Please fill all fields", None
        is_valid, result = is_valid_room_number(room_number)
        if not is_valid:
            return False, result, None
        rn = int(result)
        day = res_date.isoformat() if isinstance(res_date, date) else str(res_date)

        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("SELECT guest_name FROM stays WHERE room_number = ? AND status = 'CHECKED_IN'", (rn,))
            occupied = c.fetchone()
            if occupied:
                return False, f"Room {rn} is occupied by {occupied['guest_name']}", None
            c.execute("SELECT name FROM reservations WHERE room_number = ? AND res_date = ?", (rn, day))
            taken = c.fetchone()
            if taken:
                return False, f"Room {rn} is already reserved for {taken['name']} on {day}", None

            c.execute(
                "INSERT INTO reservations (name, place, room_number, res_date) VALUES (?, ?, ?, ?)",
                (name.strip(), place.strip(), rn, day),
            )
            res = {"id": c.lastrowid, "name": name.strip(), "place": place.strip(), "room": rn, "date": day}
        return True, f"Room {rn} reserved for {res['name']} on {day}", res

    def delete_reservation(self, res_id: int):
        """Returns (ok, message, deleted reservation)."""
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("SELECT * FROM reservations WHERE id = ?", (res_id,))
            row = c.fetchone()
            if not row:
                return False, "Reservation not found", None
            c.execute("DELETE FROM reservations WHERE id = ?", (res_id,))
        return True, "Reservation deleted", self._reservation_dict(row)

    def list_reservations(self):
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("SELECT * FROM reservations ORDER BY res_date, room_number")
            return [self._reservation_dict(r) for r in c.fetchall()]

    def reservations_for_date(self, d):
        day = d.isoformat() if isinstance(d, date) else str(d)
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("SELECT * FROM reservations WHERE res_date = ? ORDER BY room_number", (day,))
            return [self._reservation_dict(r) for r in c.fetchall()]

    def search_reservations(self, q: str):
        like = f"%{q.strip().lower()}%"
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("""
            SELECT * FROM reservations
            WHERE LOWER(name) LIKE ?
               OR LOWER(place) LIKE ?
               OR CAST(room_number AS TEXT) LIKE ?
               OR res_date LIKE ?
            ORDER BY res_date DESC
            LIMIT 500
            """, (like, like, like, like))
            return [self._reservation_dict(r) for r in c.fetchall()]

    # ---- rent ledger ----

    @staticmethod
    def _rent_dict(row) -> dict:
        return {
            "id": row["id"],
            "name": row["name"],
            "room": row["room"],
            "days": row["days"],
            "amount": row["amount"],
            "mode": row["mode"],
            "checkInYmd": row["check_in_ymd"] or "",
            "date": row["created_at"],
            "payDate": row["pay_date"],
        }

    def add_rent(self, name: str, room, days, amount, mode: str = "Cash",
                 check_in_ymd: str = "", now: datetime | None = None):
        """Record a rent collection. Returns (ok, message, entry)."""
        if not room or not name or not days or not amount or not mode:
            return False, "Please fill all Rent Collection fields.", None
        try:
            days = int(days)
            amount = float(amount)
        except (TypeError, ValueError):
            return False, "Days and amount must be numbers", None
        if amount <= 0 or days <= 0:
            return False, "Enter a valid amount", None
        now = now or datetime.now()
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("""
            INSERT INTO rent_payments (name, room, days, amount, mode, check_in_ymd, pay_date, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (name.strip(), str(room), days, amount, mode, check_in_ymd or "",
                  ymd(now.date()), _now_iso(now)))
            c.execute("SELECT * FROM rent_payments WHERE id = ?", (c.lastrowid,))
            entry = self._rent_dict(c.fetchone())
        return True, "Rent entry saved successfully.", entry

    def update_rent(self, rent_id: int, days, amount, mode: str):
        try:
            days = int(days)
            amount = float(amount)
        except (TypeError, ValueError):
            return False, "Days and amount must be numbers"
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute(
                "UPDATE rent_payments SET days = ?, amount = ?, mode = ? WHERE id = ?",
                (days, amount, mode, rent_id),
            )
            if c.rowcount == 0:
                return False, "Rent entry not found"
        return True, "Entry updated successfully"

    def delete_rent(self, rent_id: int):
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("DELETE FROM rent_payments WHERE id = ?", (rent_id,))
            if c.rowcount == 0:
                return False, "Rent entry not found"
        return True, "Entry deleted successfully"

    def list_rent(self, date_from: str = "", date_to: str = "", mode: str = "All", q: str = ""):
        """Rent entries, newest first, filtered like the Rent Payments page."""
        sql = "SELECT * FROM rent_payments WHERE 1=1"
        params = []
        if date_from:
            sql += " AND pay_date >= ?"
            params.append(date_from)
        if date_to:
            sql += " AND pay_date <= ?"
            params.append(date_to)
        if mode and mode != "All":
            sql += " AND LOWER(mode) = LOWER(?)"
            params.append(mode)
        if q and q.strip():
            like = f"%{q.strip().lower()}%"
            sql += " AND (LOWER(name) LIKE ? OR LOWER(room) LIKE ? OR pay_date LIKE ?)"
            params += [like, like, like]
        sql += " ORDER BY created_at DESC, id DESC"
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute(sql, params)
            return [self._rent_dict(r) for r in c.fetchall()]

    def total_paid_for(self, name: str, room, from_ymd: str, to_ymd: str) -> float:
        """Sum of rent paid by a guest for a room between two days (inclusive)."""
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("""
            SELECT COALESCE(SUM(amount), 0) AS total FROM rent_payments
            WHERE room = ?
              AND LOWER(TRIM(name)) = LOWER(TRIM(?))
              AND pay_date >= ? AND pay_date <= ?
            """, (str(room), name or "", from_ymd, to_ymd))
            return float(c.fetchone()["total"])

    def rent_total(self, date_from: str = "", date_to: str = "", mode: str = "All", q: str = "") -> float:
        return ledger_total(self.list_rent(date_from, date_to, mode, q))

    # ---- expense ledger ----

    @staticmethod
    def _expense_dict(row) -> dict:
        return {
            "id": row["id"],
            "description": row["description"],
            "amount": row["amount"],
            "date": row["created_at"],
            "expDate": row["exp_date"],
        }

    def add_expense(self, description: str, amount, now: datetime | None = None):
        if not description or amount in (None, ""):
            return False, "Please fill all Expense fields.", None
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            return False, "Enter a valid amount", None
        if amount <= 0:
            return False, "Enter a valid amount", None
        now = now or datetime.now()
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute(
                "INSERT INTO expenses (description, amount, exp_date, created_at) VALUES (?, ?, ?, ?)",
                (description.strip(), amount, ymd(now.date()), _now_iso(now)),
            )
            c.execute("SELECT * FROM expenses WHERE id = ?", (c.lastrowid,))
            entry = self._expense_dict(c.fetchone())
        return True, "Expense entry saved successfully.", entry

    def delete_expense(self, expense_id: int):
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
            if c.rowcount == 0:
                return False, "Expense not found"
        return True, "Expense deleted successfully"

    def list_expenses(self, date_from: str = "", date_to: str = "", q: str = ""):
        sql = "SELECT * FROM expenses WHERE 1=1"
        params = []
        if date_from:
            sql += " AND exp_date >= ?"
            params.append(date_from)
        if date_to:
            sql += " AND exp_date <= ?"
            params.append(date_to)
        if q and q.strip():
            like = f"%{q.strip().lower()}%"
            sql += " AND (LOWER(description) LIKE ? OR exp_date LIKE ?)"
            params += [like, like]
        sql += " ORDER BY created_at DESC, id DESC"
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute(sql, params)
            return [self._expense_dict(r) for r in c.fetchall()]

    # ---- outbox ----

    def read_outbox(self):
        with closing(self._get_conn()) as conn:
            c = conn.cursor()
            c.execute("SELECT value FROM kv WHERE key = ?", (OUTBOX_KEY,))
            row = c.fetchone()
        if not row:
            return None
        try:
            return json.loads(row["value"])
        except ValueError:
            log.warning("discarding unreadable outbox entry")
            return None

    def write_outbox(self, state: dict):
        """Queue a state for the remote API. Only the latest state is kept."""
        payload = json.dumps({"state": state, "queuedAt": _now_iso()})
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("""
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """, (OUTBOX_KEY, payload))

    def clear_outbox(self):
        with closing(self._get_conn()) as conn, conn:
            c = conn.cursor()
            c.execute("DELETE FROM kv WHERE key = ?", (OUTBOX_KEY,))

    # ---- tables / export ----

    def read_table(self, name: str) -> pd.DataFrame:
        if name not in TABLES:
            raise ValueError(f"Unknown table: {name}")
        with closing(self._get_conn()) as conn:
            return pd.read_sql_query(f"SELECT * FROM {name}", conn)

    def export_ledger_excel(self, date_from: str = "", date_to: str = ""):
        rent = self.list_rent(date_from, date_to)
        expenses = self.list_expenses(date_from, date_to)
        if not rent and not expenses:
            return None
        df_rent = pd.DataFrame(rent) if rent else pd.DataFrame()
        df_exp = pd.DataFrame(expenses) if expenses else pd.DataFrame()
        preferred_order = ["payDate", "name", "room", "days", "amount", "mode", "checkInYmd", "date"]
        if not df_rent.empty:
            df_rent = df_rent[[c for c in preferred_order if c in df_rent.columns]]
        if not df_exp.empty:
            df_exp = df_exp[["expDate", "description", "amount", "date"]]
        output = BytesIO()
        with pd.ExcelWriter(output, engine="xlsxwriter") as writer:
            df_rent.to_excel(writer, index=False, sheet_name="Rent")
            df_exp.to_excel(writer, index=False, sheet_name="Expenses")
        output.seek(0)
        return output


def ledger_total(rows) -> float:
    return sum(float(r.get("amount") or 0) for r in rows)
