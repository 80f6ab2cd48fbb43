import math
import re
from datetime import date, datetime

_MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

_YMD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DMY_DASH_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_DMY_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_UNSAFE_RE = re.compile(r"[^\w\-]+", re.ASCII)


def ymd(d: date | None = None) -> str:
    d = d or date.today()
    return d.strftime("%Y-%m-%d")


def display_date(d: date | None = None) -> str:
    """Folder style date used under ScannedDocuments: DD-MM-YYYY."""
    d = d or date.today()
    return d.strftime("%d-%m-%Y")


def month_folder(d: date | None = None) -> str:
    d = d or date.today()
    return _MONTHS[d.month - 1]


def normalize_folder_date(name: str):
    """Return YYYY-MM-DD for a folder named YYYY-MM-DD or DD-MM-YYYY, else None."""
    if not name:
        return None
    if _YMD_RE.match(name):
        return name
    m = _DMY_DASH_RE.match(name)
    if m:
        dd, mm, yyyy = m.groups()
        return f"{yyyy}-{mm.zfill(2)}-{dd.zfill(2)}"
    return None


def parse_iso(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def normalize_checkin_ymd(doc: dict) -> str:
    """Check-in day of a check-in document, from checkIn or checkInDate."""
    if not doc:
        return ""
    dt = parse_iso(doc.get("checkIn"))
    if dt:
        return dt.strftime("%Y-%m-%d")
    d = str(doc.get("checkInDate") or "")
    if _YMD_RE.match(d):
        return d
    m = _DMY_SLASH_RE.match(d)
    if m:
        dd, mm, yyyy = m.groups()
        return f"{yyyy}-{mm.zfill(2)}-{dd.zfill(2)}"
    return ""


def safe_name(value) -> str:
    return _UNSAFE_RE.sub("_", str(value))


def days_between(check_in: datetime, now: datetime) -> int:
    """Nights charged: part days round up, never less than one."""
    if check_in.tzinfo is not None and now.tzinfo is None:
        check_in = check_in.replace(tzinfo=None)
    elif check_in.tzinfo is None and now.tzinfo is not None:
        now = now.replace(tzinfo=None)
    seconds = (now - check_in).total_seconds()
    return max(1, math.ceil(seconds / 86400))
