from typing import Any, Dict

import httpx
import pytest

from frontdesk.remote import RemoteClient, RemoteError

BASE = "http://api.local/api"


class _DummyResponse:
    def __init__(self, body: Any, status_code: int = 200, content_type: str = "application/json") -> None:
        self.status_code = status_code
        self.headers: Dict[str, str] = {"content-type": content_type}
        self._body = body

    def json(self) -> Any:
        if isinstance(self._body, str):
            raise ValueError("not json")
        return self._body


def test_load_state_composes_url(monkeypatch):
    def fake_get(url: str, timeout: float = 5.0) -> _DummyResponse:
        assert url == f"{BASE}/state"
        return _DummyResponse({"state": {"floors": {}}})

    monkeypatch.setattr(httpx, "get", fake_get)
    assert RemoteClient(base=BASE + "/").load_state() == {"floors": {}}


def test_save_state_and_post_record(monkeypatch):
    calls = []

    def fake_post(url: str, json=None, timeout: float = 5.0) -> _DummyResponse:
        calls.append((url, json))
        return _DummyResponse({"ok": True, "id": "abc"})

    monkeypatch.setattr(httpx, "post", fake_post)
    client = RemoteClient(base=BASE)
    assert client.save_state({"floors": {}}) == {"ok": True, "id": "abc"}
    assert client.post_record("rent", {"name": "Ravi", "amount": 100})["id"] == "abc"
    assert calls == [
        (f"{BASE}/state", {"state": {"floors": {}}}),
        (f"{BASE}/rent", {"name": "Ravi", "amount": 100}),
    ]
    with pytest.raises(ValueError):
        client.post_record("upload", {})


def test_html_response_is_an_error(monkeypatch):
    monkeypatch.setattr(httpx, "get", lambda url, timeout=5.0: _DummyResponse("<html>", content_type="text/html"))
    with pytest.raises(RemoteError, match="Expected JSON"):
        RemoteClient(base=BASE).full_state()


def test_server_error_message_is_surfaced(monkeypatch):
    body = {"ok": False, "msg": "mongo not initialized"}
    monkeypatch.setattr(httpx, "get", lambda url, timeout=5.0: _DummyResponse(body, status_code=500))
    with pytest.raises(RemoteError, match="mongo not initialized"):
        RemoteClient(base=BASE).checkins()


def test_transport_errors_become_remote_errors(monkeypatch):
    def fake_get(url: str, timeout: float = 5.0):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "get", fake_get)
    client = RemoteClient(base=BASE)
    with pytest.raises(RemoteError):
        client.load_state()
    assert client.ping() is False


def test_ping(monkeypatch):
    monkeypatch.setattr(httpx, "get", lambda url, timeout=5.0: _DummyResponse({"ok": True}))
    assert RemoteClient(base=BASE).ping() is True


def test_unconfigured_client(monkeypatch):
    def fail_get(url: str, timeout: float = 5.0):
        raise AssertionError("no request expected")

    monkeypatch.setattr(httpx, "get", fail_get)
    client = RemoteClient(base="")
    assert client.configured is False
    assert client.ping() is False
    with pytest.raises(RemoteError, match="No remote API configured"):
        client.load_state()
