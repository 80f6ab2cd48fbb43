"""Front desk workflows spanning the local store, the disk tree and the remote API.

The local store decides whether an operation succeeds. The disk tree and the
remote API are mirrors: their failures are logged and do not change the
(ok, message) result shown to the operator.
"""
import logging
from datetime import datetime

from . import config
from .dates import ymd
from .db import FrontDeskDB
from .disk import EXPENSES, RENT, DiskError, DiskStore
from .remote import RemoteClient, RemoteError
from .rooms import is_valid_room_number, normalize_server_state
from .sync import DualSync, build_live_view, get_authoritative_state

log = logging.getLogger(__name__)

WRONG_PASSWORD = "Incorrect admin password"


class FrontDesk:
    def __init__(self, db: FrontDeskDB, disk: DiskStore | None = None, remote: RemoteClient | None = None):
        self.db = db
        self.disk = disk or DiskStore(None)
        self.remote = remote or RemoteClient()
        self.sync = DualSync(db, self.remote)

    # ---- mirrors ----

    def _to_disk(self, what: str, fn, *args, **kwargs):
        if not self.disk.is_connected():
            return None
        try:
            return fn(*args, **kwargs)
        except (OSError, DiskError) as e:
            log.warning("disk %s failed: %s", what, e)
            return None

    def _to_remote(self, kind: str, data: dict):
        if not self.remote.configured:
            return None
        try:
            return self.remote.post_record(kind, data)
        except RemoteError as e:
            log.warning("remote %s insert failed: %s", kind, e)
            return None

    def _after_mutation(self) -> dict:
        """Rewrite the shared snapshot and push the full state to the remote API."""
        state = self.db.load_state()
        self._to_disk("snapshot", self.disk.write_shared_snapshot, state)
        return self.sync.save_all(state)

    def _disk_ledger_row(self, folder: str, entry_id):
        if not self.disk.is_connected():
            return None
        try:
            rows = self.disk.list_ledger(folder)
        except OSError as e:
            log.warning("disk ledger %s unreadable: %s", folder, e)
            return None
        return next((r for r in rows if r.get("id") == entry_id), None)

    # ---- state ----

    def state(self) -> dict:
        return self.db.load_state()

    def adopt_authoritative_state(self) -> dict:
        state = get_authoritative_state(self.db, self.disk, self.remote)
        self.db.save_state(state)
        return state

    def connect_storage(self, path):
        """Point the desk at a base folder, creating the tree if needed."""
        if not path or not str(path).strip():
            return False, "Choose a folder"
        disk = DiskStore(str(path).strip())
        try:
            disk.init_tree()
        except OSError as e:
            return False, f"Could not use {path}: {e}"
        self.disk = disk
        self._to_disk("snapshot", self.disk.write_shared_snapshot, self.db.load_state())
        return True, f"Storage connected: {disk.base}"

    def pull_remote(self):
        """Adopt the remote state, keeping this desk's room rates."""
        merged = self.sync.try_load_remote_and_merge(self.db.load_state())
        if merged is None:
            return False, "Remote state unavailable"
        self.db.save_state(normalize_server_state(merged))
        self._to_disk("snapshot", self.disk.write_shared_snapshot, self.db.load_state())
        return True, "Remote state adopted"

    def sync_now(self) -> dict:
        res = self.sync.save_all(self.db.load_state())
        if res.get("ok"):
            self.sync.flush_once()
        return res

    def live_view(self, search: str = ""):
        """(view, error) for the read-only live page, polled from the remote API."""
        try:
            remote_state = self.remote.load_state() or {}
            checkins = self.remote.checkins()
        except RemoteError as e:
            return None, str(e)
        return build_live_view(remote_state, checkins, search), None

    def guest_matches(self, query: str) -> list[dict]:
        """Returning guests for the check-in form."""
        if not query or len(query.strip()) < 2:
            return []
        if self.disk.is_connected():
            try:
                return self.disk.search_guest_matches(query.strip())
            except OSError as e:
                log.warning("guest search on disk failed: %s", e)
        return [
            {"source": "checkout", "name": c["name"], "contact": c.get("contact") or "", "room": c["room"], "scan": None}
            for c in self.db.checkout_history(q=query)
        ]

    # ---- check-in / check-out ----

    def check_in(self, room_number, name: str, contact: str = "", rate=None, id_number: str = "",
                 scan: bytes | None = None, scan_ext: str = "jpg", reuse_scan=None,
                 now: datetime | None = None):
        now = now or datetime.now()
        ok, msg, removed = self.db.check_in(room_number, name, contact, rate, id_number, now=now)
        if not ok:
            return ok, msg

        rn = int(str(room_number).strip())
        stay = self.db.get_active_stay(rn)
        guest = {"room": rn, **self.db.guest_from_stay(stay)}

        self._to_disk("check-in", self.disk.write_checkin, guest)
        if removed:
            self._to_disk("reservation delete", self.disk.delete_reservation, removed["date"], rn, removed["name"])
        if scan:
            self._to_disk("scan", self.disk.save_scan, guest["name"], rn, scan, scan_ext, now)
        elif reuse_scan:
            self._to_disk("scan reuse", self.disk.reuse_scan, reuse_scan, guest["name"], rn, now)
        self._to_remote("checkin", guest)
        self._after_mutation()
        if removed:
            msg += f" (reservation for {removed['name']} consumed)"
        return True, msg

    def check_out(self, room_number, now: datetime | None = None):
        """Check out a room; returns (ok, message, checkout record)."""
        now = now or datetime.now()
        try:
            rn = int(str(room_number).strip())
        except (TypeError, ValueError):
            return False, "Room number must be a valid whole number", None
        stay = self.db.get_active_stay(rn)
        if not stay:
            return False, f"Room {rn} has no guest checked in", None

        total_paid = self.paid_so_far(rn, stay["guest_name"], stay["check_in_date"], ymd(now.date()))

        ok, msg, record = self.db.check_out(rn, total_paid, now=now)
        if not ok:
            return ok, msg, None

        self._to_disk("checkout", self.disk.move_checkin_to_checkout,
                      stay["check_in_date"], rn, stay["guest_name"], now)
        self._to_remote("checkout", record)
        self._after_mutation()
        return ok, msg, record

    def cancel_checkout(self, stay_id: int):
        """Put a checked-out guest back in the room, on every backend."""
        ok, msg = self.db.cancel_checkout(stay_id)
        if not ok:
            return ok, msg
        stay = self.db.get_stay(stay_id)
        rn = stay["room_number"]
        self._to_disk("checkout undo", self.disk.move_checkout_to_checkin,
                      stay["check_in_date"], rn, stay["guest_name"])
        self._to_remote("checkin", {"room": rn, **self.db.guest_from_stay(stay)})
        self._after_mutation()
        return ok, msg

    def paid_so_far(self, room_number, name: str, check_in_ymd: str, to_ymd: str | None = None) -> float:
        """Rent paid by the guest since check-in; the disk ledger wins when connected."""
        to_ymd = to_ymd or ymd()
        if self.disk.is_connected():
            paid = self._to_disk("payments", self.disk.total_payments, check_in_ymd, room_number, name, to_ymd)
            if paid is not None:
                return paid
        return self.db.total_paid_for(name, room_number, check_in_ymd, to_ymd)

    # ---- reservations ----

    def add_reservation(self, name: str, place: str, room_number, res_date):
        ok, msg, res = self.db.add_reservation(name, place, room_number, res_date)
        if not ok:
            return ok, msg
        self._to_disk("reservation", self.disk.write_reservation, res)
        self._to_remote("reservation", res)
        self._after_mutation()
        return ok, msg

    def delete_reservation(self, res_id: int):
        ok, msg, res = self.db.delete_reservation(res_id)
        if not ok:
            return ok, msg
        self._to_disk("reservation delete", self.disk.delete_reservation, res["date"], res["room"], res["name"])
        self._after_mutation()
        return ok, msg

    # ---- accounts ----

    def record_rent(self, name: str, room, days, amount, mode: str = "Cash",
                    check_in_ymd: str | None = None, now: datetime | None = None):
        now = now or datetime.now()
        if check_in_ymd is None:
            check_in_ymd = ""
            try:
                stay = self.db.get_active_stay(int(str(room).split(",")[0].strip()))
            except ValueError:
                stay = None
            if stay and stay["guest_name"].strip().lower() == str(name or "").strip().lower():
                check_in_ymd = stay["check_in_date"]

        ok, msg, entry = self.db.add_rent(name, room, days, amount, mode, check_in_ymd, now=now)
        if not ok:
            return ok, msg
        self._to_disk("rent", self.disk.write_rent, entry, now)
        self._to_remote("rent", entry)
        self._after_mutation()
        return ok, msg

    def record_expense(self, description: str, amount, now: datetime | None = None):
        now = now or datetime.now()
        ok, msg, entry = self.db.add_expense(description, amount, now=now)
        if not ok:
            return ok, msg
        self._to_disk("expense", self.disk.write_expense, entry, now)
        self._to_remote("expense", entry)
        self._after_mutation()
        return ok, msg

    def set_room_rate(self, password: str, room_number, rate):
        if not self.check_admin(password):
            return False, WRONG_PASSWORD
        is_valid, result = is_valid_room_number(room_number)
        if not is_valid:
            return False, result
        try:
            rate = float(rate)
        except (TypeError, ValueError):
            return False, "Rate must be a number"
        if rate <= 0:
            return False, "Enter a valid rate"
        self.db.set_room_rate(int(result), rate)
        self._after_mutation()
        return True, f"Room {result} rate set to {rate:,.0f}"

    @staticmethod
    def check_admin(password: str) -> bool:
        return password == config.ADMIN_PASSWORD

    def update_rent(self, password: str, rent_id: int, days, amount, mode: str):
        if not self.check_admin(password):
            return False, WRONG_PASSWORD
        ok, msg = self.db.update_rent(rent_id, days, amount, mode)
        if not ok:
            return ok, msg
        row = self._disk_ledger_row(RENT, rent_id)
        if row:
            self._to_disk("rent update", self.disk.update_ledger_entry, RENT, row,
                          {"days": int(days), "amount": float(amount), "mode": mode})
        self._after_mutation()
        return ok, msg

    def delete_rent(self, password: str, rent_id: int):
        if not self.check_admin(password):
            return False, WRONG_PASSWORD
        ok, msg = self.db.delete_rent(rent_id)
        if not ok:
            return ok, msg
        row = self._disk_ledger_row(RENT, rent_id)
        if row:
            self._to_disk("rent delete", self.disk.delete_ledger_entry, RENT, row)
        self._after_mutation()
        return ok, msg

    def delete_expense(self, password: str, expense_id: int):
        if not self.check_admin(password):
            return False, WRONG_PASSWORD
        ok, msg = self.db.delete_expense(expense_id)
        if not ok:
            return ok, msg
        row = self._disk_ledger_row(EXPENSES, expense_id)
        if row:
            self._to_disk("expense delete", self.disk.delete_ledger_entry, EXPENSES, row)
        self._after_mutation()
        return ok, msg
