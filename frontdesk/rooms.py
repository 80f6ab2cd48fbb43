"""Hotel state shared by the local store, the disk tree and the remote API.

The state is a plain JSON-shaped dict so it can be written to disk and
posted to the remote API unchanged::

    {
        "floors": {"1": [room, ...], ...},
        "guests": [...],
        "reservations": [{"name", "place", "room", "date"}, ...],
        "checkouts": [...],
        "rentPayments": [...],
        "expenses": [...],
    }

Floor keys are strings (JSON object keys); room numbers are ints.
"""
import copy
from datetime import datetime

from . import config
from .dates import ymd

STATUS_FREE = "free"
STATUS_OCCUPIED = "occupied"
STATUS_RESERVED = "reserved"

STATE_LISTS = ["guests", "reservations", "checkouts", "rentPayments", "expenses"]


def make_empty_floors(rate: float = config.DEFAULT_RATE) -> dict:
    floors = {}
    for f in range(1, config.FLOORS + 1):
        floors[str(f)] = [
            {"number": f * 100 + r, "status": STATUS_FREE, "rate": rate, "guest": None, "reservedFor": None}
            for r in range(1, config.ROOMS_PER_FLOOR + 1)
        ]
    return floors


def empty_state() -> dict:
    state = {"floors": make_empty_floors()}
    for key in STATE_LISTS:
        state[key] = []
    return state


def generate_default(samples: bool = True) -> dict:
    """Fresh hotel with every room free, optionally with a few demo guests."""
    state = empty_state()
    if not samples:
        return state
    today = ymd()
    now = datetime.now().isoformat(timespec="seconds")
    floors = state["floors"]
    floors["1"][1]["status"] = STATUS_RESERVED
    floors["1"][1]["reservedFor"] = {"name": "A. Kumar", "from": today}
    floors["2"][1]["status"] = STATUS_OCCUPIED
    floors["2"][1]["guest"] = {"name": "Ravi", "contact": "9876543210", "checkIn": now, "id": "ID123", "rate": 1500}
    floors["3"][0]["status"] = STATUS_OCCUPIED
    floors["3"][0]["guest"] = {"name": "Priya", "contact": "9345678123", "checkIn": now, "id": "DL998", "rate": 2000}
    state["reservations"] = [{"name": "A. Kumar", "place": "Chennai", "room": 102, "date": today}]
    return state


def floor_of(number) -> str:
    return str(number)[0]


def iter_rooms(state: dict):
    for fnum in sorted((state.get("floors") or {}).keys(), key=lambda k: int(k)):
        for room in state["floors"][fnum]:
            yield room


def find_room(state: dict, number):
    try:
        number = int(number)
    except (TypeError, ValueError):
        return None
    floor = (state.get("floors") or {}).get(floor_of(number)) or []
    return next((r for r in floor if r.get("number") == number), None)


def is_valid_room_number(number) -> tuple[bool, str]:
    """Check that a room number belongs to the floor layout."""
    text = str(number).strip() if number is not None else ""
    if not text:
        return False, "Room number cannot be empty"
    if "." in text:
        return False, "Room number cannot have decimals. Use whole numbers only"
    try:
        n = int(text)
    except ValueError:
        return False, "Room number must be a valid whole number"
    floor, idx = divmod(n, 100)
    if 1 <= floor <= config.FLOORS and 1 <= idx <= config.ROOMS_PER_FLOOR:
        return True, str(n)
    return False, f"Room {n} is not in the hotel ({config.FLOORS} floors x {config.ROOMS_PER_FLOOR} rooms)"


def parse_rooms(value) -> list[int]:
    """Room numbers from an int, a "101, 102" string or a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        items = str(value).split(",")
    rooms = []
    for item in items:
        try:
            n = int(str(item).strip())
        except ValueError:
            continue
        if n:
            rooms.append(n)
    return sorted(rooms)


def rooms_key(value) -> str:
    return "_".join(str(n) for n in parse_rooms(value))


def reservations_on(state: dict, day: str) -> list[dict]:
    return [r for r in state.get("reservations") or [] if r.get("date") == day]


def room_grid(state: dict, day: str | None = None) -> dict:
    """Floors with free rooms that have a reservation on `day` shown as reserved."""
    day = day or ymd()
    todays = reservations_on(state, day)
    grid = {}
    for fnum, rooms in (state.get("floors") or {}).items():
        out = []
        for r in rooms:
            res = next((x for x in todays if r["number"] in parse_rooms(x.get("room"))), None)
            if res and r.get("status") == STATUS_FREE:
                out.append({**r, "status": STATUS_RESERVED, "reservedFor": res})
            else:
                out.append(r)
        grid[fnum] = out
    return grid


def occupancy_stats(state: dict, day: str | None = None) -> dict:
    day = day or ymd()
    reserved_rooms = set()
    for res in reservations_on(state, day):
        reserved_rooms.update(parse_rooms(res.get("room")))
    stats = {"total": 0, "free": 0, "reserved": 0, "occupied": 0}
    for r in iter_rooms(state):
        stats["total"] += 1
        if r.get("status") == STATUS_OCCUPIED:
            stats["occupied"] += 1
        elif r["number"] in reserved_rooms:
            stats["reserved"] += 1
        else:
            stats["free"] += 1
    return stats


def available_rooms(state: dict, day: str) -> list[int]:
    if not day:
        return []
    taken = set()
    for res in reservations_on(state, day):
        taken.update(parse_rooms(res.get("room")))
    return [
        r["number"] for r in iter_rooms(state)
        if r.get("status") != STATUS_OCCUPIED and r["number"] not in taken
    ]


def occupied_rooms(state: dict) -> list[dict]:
    return [r for r in iter_rooms(state) if r.get("status") == STATUS_OCCUPIED]


def recent_checkins(state: dict, limit: int = 6) -> list[dict]:
    rows = [{"room": r["number"], "guest": r["guest"]} for r in iter_rooms(state) if r.get("guest")]
    rows.sort(key=lambda x: str(x["guest"].get("checkIn") or ""), reverse=True)
    return rows[:limit]


def preserve_rates(new_state: dict, old_state: dict | None) -> dict:
    """Carry room rates of `old_state` over to the same room numbers in `new_state`."""
    if not old_state or not old_state.get("floors") or not new_state.get("floors"):
        return new_state
    out = copy.deepcopy(new_state)
    for fnum, rooms in out["floors"].items():
        old_rooms = old_state["floors"].get(fnum) or old_state["floors"].get(int(fnum)) or []
        for r in rooms:
            old = next((x for x in old_rooms if x.get("number") == r.get("number")), None)
            if old and old.get("rate") is not None:
                r["rate"] = old["rate"]
    return out


def normalize_server_state(server: dict | None) -> dict:
    """Coerce a state fetched from the remote API into the local shape."""
    if not server:
        return generate_default()
    out = {"floors": {str(k): v for k, v in (server.get("floors") or {}).items()}}
    if not out["floors"]:
        out["floors"] = make_empty_floors()
    out["guests"] = server.get("guests") or []
    out["reservations"] = server.get("reservations") or []
    out["checkouts"] = server.get("checkouts") or []
    out["rentPayments"] = server.get("rentPayments") or server.get("rent_payments") or []
    out["expenses"] = server.get("expenses") or []
    return out
