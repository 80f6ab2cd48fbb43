import pytest

from frontdesk.db import FrontDeskDB
from frontdesk.disk import DiskStore
from frontdesk.remote import RemoteError


class FakeRemote:
    """Stands in for RemoteClient; records what would have been sent."""

    def __init__(self, configured=True, state=None, checkins=None):
        self.configured = configured
        self.state = state
        self.remote_checkins = checkins or []
        self.fail = False
        self.saved = []
        self.posted = []

    def _check(self):
        if not self.configured:
            raise RemoteError("No remote API configured")
        if self.fail:
            raise RemoteError("HTTP 500: boom")

    def ping(self):
        return self.configured and not self.fail

    def load_state(self):
        self._check()
        return self.state

    def save_state(self, state):
        self._check()
        self.saved.append(state)
        self.state = state
        return {"ok": True}

    def full_state(self):
        self._check()
        return self.state or {}

    def checkins(self):
        self._check()
        return self.remote_checkins

    def post_record(self, kind, data):
        self._check()
        self.posted.append((kind, data))
        return {"ok": True, "id": str(len(self.posted))}


@pytest.fixture()
def db(tmp_path):
    return FrontDeskDB(str(tmp_path / "desk.db"))


@pytest.fixture()
def disk(tmp_path):
    store = DiskStore(tmp_path / "tree")
    store.init_tree()
    return store


@pytest.fixture()
def remote():
    return FakeRemote()
