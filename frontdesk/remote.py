"""HTTP client for the remote state API (see `frontdesk.server`)."""
import logging

import httpx

from . import config

log = logging.getLogger(__name__)

RECORD_KINDS = ("rent", "expense", "reservation", "checkin", "checkout")


class RemoteError(Exception):
    pass


def expect_json(resp) -> dict:
    """Body of a response as JSON; HTML error pages and non-2xx become RemoteError."""
    ctype = (resp.headers.get("content-type") or "").lower()
    if "application/json" not in ctype:
        raise RemoteError(f"Expected JSON but got {ctype or 'no content-type'} (status {resp.status_code})")
    try:
        body = resp.json()
    except ValueError as e:
        raise RemoteError(f"Invalid JSON body (status {resp.status_code})") from e
    if resp.status_code >= 400:
        msg = body.get("msg") or body.get("error") if isinstance(body, dict) else None
        raise RemoteError(f"HTTP {resp.status_code}: {msg or body}")
    return body


class RemoteClient:
    def __init__(self, base: str | None = None, timeout: float | None = None):
        base = config.API_BASE if base is None else base
        self.base = base.rstrip("/") if base else None
        self.timeout = timeout or config.HTTP_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.base)

    def _url(self, path: str) -> str:
        if not self.base:
            raise RemoteError("No remote API configured")
        return f"{self.base}/{path.lstrip('/')}"

    def _get(self, path: str) -> dict:
        try:
            resp = httpx.get(self._url(path), timeout=self.timeout)
        except httpx.HTTPError as e:
            raise RemoteError(f"GET {path} failed: {e}") from e
        return expect_json(resp)

    def _post(self, path: str, payload: dict) -> dict:
        try:
            resp = httpx.post(self._url(path), json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise RemoteError(f"POST {path} failed: {e}") from e
        return expect_json(resp)

    def ping(self) -> bool:
        if not self.base:
            return False
        try:
            return bool(self._get("/ping").get("ok"))
        except RemoteError as e:
            log.debug("ping failed: %s", e)
            return False

    def load_state(self):
        """Singleton state document, or None when the server has none yet."""
        return self._get("/state").get("state")

    def save_state(self, state: dict) -> dict:
        return self._post("/state", {"state": state})

    def full_state(self) -> dict:
        return self._get("/fullstate").get("state") or {}

    def checkins(self) -> list[dict]:
        return self._get("/checkins").get("checkins") or []

    def post_record(self, kind: str, data: dict) -> dict:
        if kind not in RECORD_KINDS:
            raise ValueError(f"Unknown record kind: {kind}")
        return self._post(f"/{kind}", data)
