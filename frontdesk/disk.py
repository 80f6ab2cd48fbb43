"""Folder tree of JSON documents mirroring the desk on a local disk.

Layout under the base folder::

    Reservations/<YYYY-MM-DD>/reservation-<room>-<name>.json
    Checkins/<YYYY-MM-DD>/checkin-<name>-<room>-<YYYY-MM-DD>.json
    Checkouts/<YYYY-MM-DD>/checkout-<name>-<room>-<checkin YYYY-MM-DD>.json
    RentCollections/<YYYY-MM-DD>/rent-<name>-<room>-<millis>.json
    Expenses/<YYYY-MM-DD>/expense-<description>-<millis>.json
    ScannedDocuments/<YYYY>/<mon>/<DD-MM-YYYY>/<name>-<room>-<YYYY-MM-DD>.<ext>
    Shared/sharedSnapshot.json

Names in file names go through `safe_name`. Folder dates under the ledgers
may also be DD-MM-YYYY (older trees); readers normalise them.
"""
import json
import logging
import re
import shutil
import time
from datetime import datetime, timedelta
from pathlib import Path

from . import config
from .dates import days_between, display_date, month_folder, normalize_folder_date, parse_iso, safe_name, ymd
from .rooms import STATUS_OCCUPIED, make_empty_floors, parse_rooms, preserve_rates

log = logging.getLogger(__name__)

RESERVATIONS = "Reservations"
CHECKINS = "Checkins"
CHECKOUTS = "Checkouts"
RENT = "RentCollections"
EXPENSES = "Expenses"
SCANS = "ScannedDocuments"
SHARED = "Shared"

TREE = [RESERVATIONS, CHECKINS, CHECKOUTS, RENT, EXPENSES, SCANS, SHARED]
LEDGERS = [RENT, EXPENSES]

CHECKOUT_FIELDS = [
    "checkOutDate", "checkOutTime", "checkOutDateTime",
    "daysStayed", "totalRent", "totalPaid", "paymentTallyStatus",
]


class DiskError(Exception):
    pass


def _norm_name(s) -> str:
    return re.sub(r"[\s_]+", "_", str(s).strip().lower())


def _millis() -> int:
    return int(time.time() * 1000)


def read_json(path: Path):
    """Parsed JSON of a file, or None when it is missing or not JSON."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def write_json(path: Path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")


class DiskStore:
    def __init__(self, base):
        self.base = Path(base) if base else None

    # ---- tree ----

    def is_connected(self) -> bool:
        return bool(self.base) and self.base.is_dir()

    def _require_base(self) -> Path:
        if not self.is_connected():
            raise DiskError("Storage not connected")
        return self.base

    def ensure_path(self, *parts) -> Path:
        d = self._require_base().joinpath(*[str(p) for p in parts])
        d.mkdir(parents=True, exist_ok=True)
        return d

    def init_tree(self):
        self.base.mkdir(parents=True, exist_ok=True)
        for name in TREE:
            (self.base / name).mkdir(exist_ok=True)
        log.info("folder structure ready under %s", self.base)

    @staticmethod
    def _day_dirs(root: Path):
        if not root.is_dir():
            return []
        return sorted(p for p in root.iterdir() if p.is_dir())

    @staticmethod
    def _json_files(day_dir: Path):
        return sorted(p for p in day_dir.iterdir() if p.is_file() and p.name.lower().endswith(".json"))

    # ---- state ----

    def hydrate_state(self, current_state: dict | None = None):
        """Rebuild floors, guests and reservations from the tree.

        Returns None when no base folder is connected.
        """
        if not self.is_connected():
            return None

        nxt = {"floors": make_empty_floors(), "guests": [], "reservations": []}

        for day in self._day_dirs(self.base / CHECKINS):
            for f in self._json_files(day):
                data = read_json(f)
                if not data:
                    continue
                for room_num in parse_rooms(data.get("room")):
                    floor = nxt["floors"].get(str(room_num)[0])
                    if floor is None:
                        continue
                    for r in floor:
                        if r["number"] != room_num:
                            continue
                        r["status"] = STATUS_OCCUPIED
                        r["guest"] = {
                            "name": data.get("name") or "Guest",
                            "contact": data.get("contact") or "",
                            "id": data.get("id") or "",
                            "checkIn": data.get("checkIn") or datetime.now().isoformat(timespec="seconds"),
                            "checkInDate": data.get("checkInDate"),
                            "checkInTime": data.get("checkInTime"),
                            "rate": data.get("rate") or r["rate"],
                            "edited": bool(data.get("edited")),
                        }
                    nxt["guests"].append({
                        "room": room_num,
                        "name": data.get("name"),
                        "contact": data.get("contact"),
                        "id": data.get("id"),
                        "checkIn": data.get("checkIn"),
                        "edited": bool(data.get("edited")),
                    })

        for day in self._day_dirs(self.base / RESERVATIONS):
            for f in self._json_files(day):
                data = read_json(f)
                if not data:
                    continue
                rooms = parse_rooms(data.get("room"))
                nxt["reservations"].append({
                    "name": data.get("name") or "Guest",
                    "place": data.get("place") or "",
                    "room": rooms[0] if len(rooms) == 1 else rooms,
                    "date": data.get("date") or day.name,
                })

        if current_state:
            nxt = preserve_rates(nxt, current_state)
            # ledgers live in their own folders; keep what the caller had
            for key in ("checkouts", "rentPayments", "expenses"):
                if key in current_state:
                    nxt[key] = current_state[key]
        return nxt

    # ---- reservations ----

    @staticmethod
    def reservation_filename(room, name) -> str:
        return f"reservation-{room}-{safe_name(name)}.json"

    def write_reservation(self, res: dict) -> Path:
        d = self.ensure_path(RESERVATIONS, res["date"])
        path = d / self.reservation_filename(res["room"], res["name"])
        write_json(path, {k: res[k] for k in ("name", "place", "room", "date") if k in res})
        return path

    def delete_reservation(self, res_date: str, room, name) -> bool:
        path = self._require_base() / RESERVATIONS / res_date / self.reservation_filename(room, name)
        if not path.exists():
            return False
        path.unlink()
        return True

    # ---- check-ins / check-outs ----

    @staticmethod
    def checkin_filename(name, room, day: str) -> str:
        return f"checkin-{safe_name(name)}-{room}-{day}.json"

    def write_checkin(self, guest: dict) -> Path:
        """Persist a check-in; `guest` needs name, room and checkIn (ISO)."""
        dt = parse_iso(guest.get("checkIn")) or datetime.now()
        day = dt.strftime("%Y-%m-%d")
        d = self.ensure_path(CHECKINS, day)
        path = d / self.checkin_filename(guest["name"], guest["room"], day)
        write_json(path, guest)
        return path

    def _scan_checkin_folder(self, day: str, room, normalized_name: str):
        d = self._require_base() / CHECKINS / day
        if not d.is_dir():
            return None
        suffix = f"-{room}-{day}.json"
        for f in self._json_files(d):
            lower = f.name.lower()
            if not (lower.startswith("checkin-") and lower.endswith(suffix)):
                continue
            segment = lower[len("checkin-"):len(lower) - len(suffix)]
            if segment and _norm_name(segment) == normalized_name:
                return f
        return None

    def find_checkin_file(self, check_in_date: str, room, name) -> Path:
        """Locate a guest's check-in file.

        Tries the exact file name, then any file of that day whose name part
        matches loosely, then the same scan on the day before and after.
        """
        base = self._require_base()
        normalized = _norm_name(safe_name(name))
        exact = base / CHECKINS / check_in_date / self.checkin_filename(name, room, check_in_date)
        if exact.is_file():
            return exact

        found = self._scan_checkin_folder(check_in_date, room, normalized)
        if found:
            return found

        d = datetime.strptime(check_in_date, "%Y-%m-%d")
        for other in (d - timedelta(days=1), d + timedelta(days=1)):
            found = self._scan_checkin_folder(other.strftime("%Y-%m-%d"), room, normalized)
            if found:
                return found

        raise DiskError("Check-in file not found for this guest/room/date.")

    def total_payments(self, check_in_date: str, room, name, check_out_date: str) -> float:
        """Rent collected from a guest for a room between check-in and check-out days."""
        total = 0.0
        if not self.is_connected():
            return total
        wanted = str(name or "").strip().lower()
        for day in self._day_dirs(self.base / RENT):
            folder = normalize_folder_date(day.name) or day.name
            if folder < check_in_date or folder > check_out_date:
                continue
            for f in self._json_files(day):
                data = read_json(f)
                if not data:
                    continue
                if str(data.get("room")) == str(room) and str(data.get("name") or "").strip().lower() == wanted:
                    try:
                        total += float(data.get("amount") or 0)
                    except (TypeError, ValueError):
                        continue
        return total

    def move_checkin_to_checkout(self, check_in_date: str, room, name, now: datetime | None = None) -> dict:
        """Turn a check-in file into a checkout record with the rent tally."""
        now = now or datetime.now()
        src = self.find_checkin_file(check_in_date, room, name)
        data = read_json(src)
        if data is None:
            raise DiskError(f"Unreadable check-in file {src.name}")

        data["checkOutDate"] = now.strftime("%Y-%m-%d")
        data["checkOutTime"] = now.strftime("%H:%M:%S")
        data["checkOutDateTime"] = now.isoformat(timespec="seconds")

        total_paid = self.total_payments(check_in_date, room, name, ymd(now.date()))
        check_in = parse_iso(data.get("checkIn")) or now
        days = days_between(check_in, now)
        total_rent = days * float(data.get("rate") or 0)

        data["daysStayed"] = days
        data["totalRent"] = total_rent
        data["totalPaid"] = total_paid
        data["paymentTallyStatus"] = "tallied" if total_paid >= total_rent else "not-tallied"

        dest = self.ensure_path(CHECKOUTS, ymd(now.date())) / f"checkout-{safe_name(name)}-{room}-{check_in_date}.json"
        write_json(dest, data)
        src.unlink()
        return data

    def find_checkout_file(self, check_in_date: str, room, name) -> Path:
        wanted = _norm_name(f"checkout-{safe_name(name)}-{room}-{check_in_date}.json")
        for day in reversed(self._day_dirs(self._require_base() / CHECKOUTS)):
            for f in self._json_files(day):
                if _norm_name(f.name) == wanted:
                    return f
        raise DiskError("Checkout file not found for this guest/room/date.")

    def move_checkout_to_checkin(self, check_in_date: str, room, name) -> Path:
        """Undo a checkout: the record goes back to Checkins without its tally."""
        src = self.find_checkout_file(check_in_date, room, name)
        data = read_json(src)
        if data is None:
            raise DiskError(f"Unreadable checkout file {src.name}")
        for key in CHECKOUT_FIELDS:
            data.pop(key, None)
        dest = self.ensure_path(CHECKINS, check_in_date) / self.checkin_filename(name, room, check_in_date)
        write_json(dest, data)
        src.unlink()
        return dest

    def list_checkouts(self) -> list[dict]:
        rows = []
        if not self.is_connected():
            return rows
        for day in self._day_dirs(self.base / CHECKOUTS):
            for f in self._json_files(day):
                data = read_json(f)
                if data:
                    rows.append(data)
        rows.sort(key=lambda r: str(r.get("checkOutDateTime") or ""), reverse=True)
        return rows

    # ---- ledgers ----

    def write_rent(self, entry: dict, now: datetime | None = None) -> Path:
        now = now or datetime.now()
        d = self.ensure_path(RENT, ymd(now.date()))
        path = d / f"rent-{safe_name(entry['name'])}-{entry['room']}-{_millis()}.json"
        write_json(path, {**entry, "date": entry.get("date") or now.isoformat(timespec="seconds")})
        return path

    def write_expense(self, entry: dict, now: datetime | None = None) -> Path:
        now = now or datetime.now()
        d = self.ensure_path(EXPENSES, ymd(now.date()))
        path = d / f"expense-{safe_name(entry['description'])}-{_millis()}.json"
        write_json(path, {**entry, "date": entry.get("date") or now.isoformat(timespec="seconds")})
        return path

    def list_ledger(self, folder: str) -> list[dict]:
        """Every entry of a ledger folder, newest file first."""
        if folder not in LEDGERS:
            raise ValueError(f"Unknown ledger: {folder}")
        rows = []
        if not self.is_connected():
            return rows
        for day in self._day_dirs(self.base / folder):
            for f in self._json_files(day):
                data = read_json(f)
                if data is None:
                    continue
                rows.append({
                    **data,
                    "_dateFolder": normalize_folder_date(day.name) or day.name,
                    "_dirName": day.name,
                    "_fileName": f.name,
                    "_createdTime": f.stat().st_mtime,
                })
        rows.sort(key=lambda r: r["_createdTime"], reverse=True)
        return rows

    def ledger_for_day(self, folder: str, day: str) -> list[dict]:
        return [r for r in self.list_ledger(folder) if r["_dateFolder"] == day]

    def _ledger_path(self, folder: str, row: dict) -> Path:
        return self._require_base() / folder / row.get("_dirName", row["_dateFolder"]) / row["_fileName"]

    def update_ledger_entry(self, folder: str, row: dict, changes: dict):
        path = self._ledger_path(folder, row)
        data = read_json(path)
        if data is None:
            raise DiskError(f"Ledger entry {row['_fileName']} not found")
        data.update(changes)
        write_json(path, data)
        return data

    def delete_ledger_entry(self, folder: str, row: dict):
        path = self._ledger_path(folder, row)
        if not path.exists():
            raise DiskError(f"Ledger entry {row['_fileName']} not found")
        path.unlink()

    # ---- scanned documents ----

    def scan_dir(self, now: datetime | None = None) -> Path:
        now = now or datetime.now()
        return self.ensure_path(SCANS, str(now.year), month_folder(now.date()), display_date(now.date()))

    def save_scan(self, name, room, data: bytes, ext: str = "jpg", now: datetime | None = None) -> Path:
        now = now or datetime.now()
        ext = (ext or "jpg").lstrip(".")
        path = self.scan_dir(now) / f"{safe_name(name)}-{room}-{ymd(now.date())}.{ext}"
        path.write_bytes(data)
        return path

    def reuse_scan(self, source: Path, name, room, now: datetime | None = None) -> Path:
        """Copy a previous guest's ID scan into today's scan folder."""
        now = now or datetime.now()
        source = Path(source)
        ext = source.suffix.lstrip(".") or "jpg"
        dest = self.scan_dir(now) / f"{safe_name(name)}-{room}-{ymd(now.date())}.{ext}"
        shutil.copyfile(source, dest)
        return dest

    def find_scan_for_checkout(self, record: dict):
        """Scan saved on the check-in day of an earlier stay."""
        check_in = record.get("checkIn") or ""
        name = safe_name(record.get("name") or "").lower()
        if not check_in or not name or not self.is_connected():
            return None
        dt = parse_iso(check_in)
        if not dt:
            return None
        d = self.base / SCANS / str(dt.year) / month_folder(dt.date()) / display_date(dt.date())
        if not d.is_dir():
            return None
        for f in sorted(d.iterdir()):
            if f.is_file() and name in f.name.lower():
                return f
        return None

    def search_guest_matches(self, query: str) -> list[dict]:
        """Past guests whose name matches, from checkout records and scan files."""
        if not query or len(query) < 2 or not self.is_connected():
            return []
        q = query.lower()
        results = []
        for data in self.list_checkouts():
            if q in str(data.get("name") or "").lower():
                results.append({
                    "source": "checkout",
                    "name": data.get("name"),
                    "contact": data.get("contact") or "",
                    "room": data.get("room"),
                    "scan": self.find_scan_for_checkout(data),
                })

        safe_query = safe_name(q)
        scans_root = self.base / SCANS
        if scans_root.is_dir():
            for f in sorted(scans_root.rglob("*")):
                if not f.is_file() or safe_query not in f.name.lower():
                    continue
                base_name = f.stem.replace("_", " ")
                name_only = re.split(r"[-/]| \d", base_name)[0].strip()
                results.append({
                    "source": "scanfile",
                    "name": name_only or query,
                    "contact": "",
                    "room": "",
                    "scan": f,
                })
        return results

    def list_scans(self) -> list[str]:
        root = self.base / SCANS
        if not root.is_dir():
            return []
        return sorted(str(p.relative_to(root)).replace("\\", "/") for p in root.rglob("*") if p.is_file())

    # ---- shared snapshot ----

    def write_shared_snapshot(self, state: dict):
        """Summary of the whole tree for read-only viewers on other devices."""
        if not self.is_connected():
            return None
        cap = config.MAX_SNAPSHOT_ITEMS
        payload = {
            "updatedAt": datetime.now().isoformat(timespec="seconds"),
            "floors": state.get("floors") or {},
            "reservations": state.get("reservations") or [],
            "guests": state.get("guests") or [],
        }

        checkins = []
        for day in self._day_dirs(self.base / CHECKINS):
            for f in self._json_files(day):
                data = read_json(f)
                if not data:
                    continue
                checkins.append({
                    "dateFolder": day.name,
                    "file": f.name,
                    "name": data.get("name"),
                    "room": data.get("room"),
                    "id": data.get("id"),
                    "contact": data.get("contact"),
                    "checkIn": data.get("checkIn"),
                    "rate": data.get("rate"),
                    "edited": bool(data.get("edited")),
                })
        payload["checkins"] = checkins[-cap:]

        checkouts = []
        for day in self._day_dirs(self.base / CHECKOUTS):
            for f in self._json_files(day):
                data = read_json(f)
                if not data:
                    continue
                checkouts.append({
                    "dateFolder": day.name,
                    "file": f.name,
                    "name": data.get("name"),
                    "room": data.get("room"),
                    "id": data.get("id"),
                    "totalPaid": data.get("totalPaid"),
                    "checkOutDateTime": data.get("checkOutDateTime"),
                    "paymentTallyStatus": data.get("paymentTallyStatus"),
                })
        payload["checkouts"] = checkouts[-cap:]

        payload["rentPayments"] = [
            {"dateFolder": r["_dateFolder"], "file": r["_fileName"], "name": r.get("name"),
             "room": r.get("room"), "amount": r.get("amount"), "mode": r.get("mode")}
            for r in reversed(self.list_ledger(RENT))
        ][-cap:]
        payload["expenses"] = [
            {"dateFolder": r["_dateFolder"], "file": r["_fileName"],
             "description": r.get("description"), "amount": r.get("amount")}
            for r in reversed(self.list_ledger(EXPENSES))
        ][-cap:]
        payload["scannedDocuments"] = self.list_scans()[-cap:]

        path = self.ensure_path(SHARED) / "sharedSnapshot.json"
        write_json(path, payload)
        return path
