"""Reconciling hotel state across the local store, the disk tree and the remote API.

Everything here is best effort: a backend that is missing or failing is
logged and skipped, and the caller falls through to the next source.
"""
import logging
import threading

from . import config
from .dates import normalize_checkin_ymd, parse_iso, ymd
from .disk import DiskError
from .remote import RemoteError
from .rooms import (
    STATUS_FREE,
    STATUS_OCCUPIED,
    STATUS_RESERVED,
    generate_default,
    normalize_server_state,
    parse_rooms,
    preserve_rates,
    rooms_key,
)

log = logging.getLogger(__name__)


def get_authoritative_state(db=None, disk=None, remote=None, preloaded: dict | None = None) -> dict:
    """Pick the state to start from: disk tree, local store, remote API, default."""
    if disk is not None and disk.is_connected():
        try:
            current = preloaded or (db.load_state() if db is not None else None) or generate_default()
            synced = disk.hydrate_state(current)
            if synced:
                return synced
        except (OSError, DiskError) as e:
            log.warning("disk hydration failed: %s", e)

    if db is not None and db.state_exists():
        return db.load_state()

    if remote is not None and remote.configured:
        try:
            return normalize_server_state(remote.load_state())
        except RemoteError as e:
            log.warning("remote state unavailable: %s", e)

    return generate_default()


class DualSync:
    """Pushes full state snapshots to the remote API, queueing the last one on failure.

    The outbox lives in the local store's kv table and holds a single state;
    a newer snapshot replaces an older unsent one.
    """

    def __init__(self, db, remote):
        self.db = db
        self.remote = remote

    def ping(self) -> bool:
        return self.remote.ping()

    def save_all(self, state: dict) -> dict:
        if not self.remote.configured:
            return {"ok": False, "error": "no-api-configured"}
        try:
            res = self.remote.save_state(state)
        except RemoteError as e:
            log.warning("remote save failed, queued in outbox: %s", e)
            self.db.write_outbox(state)
            return {"ok": False, "error": str(e)}
        self.db.clear_outbox()
        return {"ok": True, "res": res}

    def flush_once(self) -> bool:
        """Send the queued state if there is one. True when something was flushed."""
        item = self.db.read_outbox()
        if not item or not item.get("state"):
            return False
        try:
            self.remote.save_state(item["state"])
        except RemoteError as e:
            log.debug("outbox flush failed, will retry: %s", e)
            return False
        self.db.clear_outbox()
        log.info("flushed outbox to remote")
        return True

    def run_flush_loop(self, stop_event: threading.Event, interval: float | None = None):
        interval = config.FLUSH_INTERVAL if interval is None else interval
        while not stop_event.wait(interval):
            if self.remote.configured:
                self.flush_once()

    def start_flush_thread(self) -> threading.Event:
        stop = threading.Event()
        t = threading.Thread(target=self.run_flush_loop, args=(stop,), name="outbox-flush", daemon=True)
        t.start()
        return stop

    def try_load_remote_and_merge(self, local_state: dict | None):
        """Remote state with local room rates kept, or None when unavailable."""
        try:
            remote = self.remote.load_state()
        except RemoteError as e:
            log.warning("try_load_remote_and_merge failed: %s", e)
            return None
        if not remote:
            return None
        return preserve_rates(remote, local_state)


class PaymentsIndex:
    """Rent paid per guest, keyed by check-in day or, failing that, by rooms."""

    def __init__(self, rent_payments=None):
        self.exact = {}
        self.approx = {}
        for p in rent_payments or []:
            self.add(p)

    def add(self, payment: dict):
        try:
            amount = float(payment.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        name = str(payment.get("name") or "").strip().lower()
        cin = str(payment.get("checkInYmd") or "")[:10]
        rk = rooms_key(payment.get("room"))
        if name and cin:
            k = f"{name}::{cin}"
            self.exact[k] = self.exact.get(k, 0) + amount
        elif name and rk:
            k = f"{name}::{rk}"
            self.approx[k] = self.approx.get(k, 0) + amount

    def paid_for(self, checkin: dict) -> float:
        name = str(checkin.get("name") or "").strip().lower()
        if not name:
            return 0
        paid = 0
        cin = normalize_checkin_ymd(checkin)
        if cin:
            paid = self.exact.get(f"{name}::{cin}", 0)
        if not paid:
            rk = rooms_key(checkin.get("room"))
            if rk:
                paid = self.approx.get(f"{name}::{rk}", 0)
        return paid


# ---- live view ----

def _room_str(value) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(x) for x in value)
    return str(value or "")


def _matches(q: str, *fields) -> bool:
    q = (q or "").strip().lower()
    if not q:
        return True
    return q in " ".join(str(f or "") for f in fields).lower()


def build_live_view(remote_state: dict | None, checkins: list | None, search: str = "") -> dict:
    """Read-only hotel picture for other devices.

    Occupancy comes from the check-in documents alone; a room that is not
    occupied but named by any reservation shows as reserved.
    """
    remote_state = remote_state or {}
    checkins = checkins or []
    floors = remote_state.get("floors") if isinstance(remote_state.get("floors"), dict) else {}

    occupied = {}
    for ci in checkins:
        for n in parse_rooms(ci.get("room")):
            occupied.setdefault(n, ci)
    reserved = set()
    for r in remote_state.get("reservations") or []:
        reserved.update(parse_rooms(r.get("room")))

    grid = {}
    for fnum, rooms in floors.items():
        out = []
        for r in sorted(rooms or [], key=lambda x: int(x.get("number") or 0)):
            n = int(r.get("number") or 0)
            if n in occupied:
                ci = occupied[n]
                status = STATUS_OCCUPIED
                title = (f"Occupied by: {ci.get('name') or 'Guest'}\n"
                         f"Contact: {ci.get('contact') or '-'}\n"
                         f"Check-in: {ci.get('checkInDate') or normalize_checkin_ymd(ci) or '-'} {ci.get('checkInTime') or ''}")
            elif n in reserved:
                status, title = STATUS_RESERVED, "Reserved"
            else:
                status, title = STATUS_FREE, "Free"
            out.append({**r, "status": status, "title": title})
        grid[str(fnum)] = out

    index = PaymentsIndex(remote_state.get("rentPayments") or remote_state.get("rent_payments"))
    guests = []
    for ci in checkins:
        if not _matches(search, ci.get("name"), _room_str(ci.get("room"))):
            continue
        guests.append({
            "name": ci.get("name") or "Guest",
            "room": _room_str(ci.get("room")),
            "contact": ci.get("contact") or "",
            "rate": ci.get("rate") or 0,
            "checkInDate": ci.get("checkInDate") or normalize_checkin_ymd(ci),
            "checkInTime": ci.get("checkInTime") or "",
            "paidTillNow": index.paid_for(ci),
        })

    return {
        "grid": grid,
        "guests": guests,
        "occupiedCount": len(checkins),
        "stats": {
            "occupied": len(occupied),
            "reserved": len(reserved - set(occupied)),
        },
    }


def filter_reservations(reservations, q: str = "") -> list[dict]:
    rows = list(reversed(reservations or []))
    return [r for r in rows if _matches(q, r.get("name"), r.get("place"), _room_str(r.get("room")), r.get("date"))]


def _checkout_ymd(c: dict) -> str:
    for key in ("checkOutDateTime", "checkOutDate", "checkInDate"):
        dt = parse_iso(c.get(key))
        if dt:
            return ymd(dt.date())
    return ""


def filter_checkouts(checkouts, q: str = "", date_from: str = "", date_to: str = "", tally: str = "all") -> list[dict]:
    """Checkout records, latest first, filtered by text, check-out day and tally status."""
    rows = sorted(checkouts or [], key=lambda c: str(c.get("checkOutDateTime") or c.get("checkOutDate") or ""), reverse=True)
    out = []
    for c in rows:
        guest = c.get("guest") or {}
        if not _matches(q, c.get("name") or guest.get("name"), _room_str(c.get("room")), c.get("contact"),
                        c.get("checkInDate"), c.get("checkOutDate")):
            continue
        day = _checkout_ymd(c)
        if date_from and day and day < date_from:
            continue
        if date_to and day and day > date_to:
            continue
        status = str(c.get("paymentTallyStatus") or "").lower()
        if tally == "tallied" and status != "tallied":
            continue
        if tally == "not-tallied" and status == "tallied":
            continue
        out.append(c)
    return out


def filter_rent(payments, q: str = "", mode: str = "All", date_from: str = "", date_to: str = "") -> list[dict]:
    out = []
    for r in payments or []:
        day = str(r.get("date") or r.get("month") or "")[:10]
        if date_from and day < date_from:
            continue
        if date_to and day > date_to:
            continue
        if mode != "All" and str(r.get("mode") or "").lower() != mode.lower():
            continue
        if not _matches(q, r.get("name"), _room_str(r.get("room")), day, r.get("days"), r.get("amount"), r.get("mode")):
            continue
        out.append(r)
    return sorted(out, key=lambda r: str(r.get("date") or ""), reverse=True)


def filter_expenses(expenses, q: str = "", date_from: str = "", date_to: str = "") -> list[dict]:
    out = []
    for r in expenses or []:
        day = str(r.get("date") or "")[:10]
        if date_from and day < date_from:
            continue
        if date_to and day > date_to:
            continue
        desc = r.get("description") or r.get("category") or r.get("note")
        if not _matches(q, desc, day, r.get("amount")):
            continue
        out.append(r)
    return sorted(out, key=lambda r: str(r.get("date") or ""), reverse=True)
