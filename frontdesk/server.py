"""Remote state API: a singleton state document plus per-record collections in MongoDB.

Run with ``python -m frontdesk.server`` or ``uvicorn frontdesk.server:app``.
"""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Body, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from . import config
from .log import setup_logging

log = logging.getLogger(__name__)

SINGLETON_ID = "singleton"

# record kind -> collection
RECORD_COLLECTIONS = {
    "rent": "RentCollections",
    "expense": "Expenses",
    "reservation": "Reservations",
    "checkin": "Checkins",
    "checkout": "Checkouts",
}


def _clean(doc: dict) -> dict:
    """Mongo document made JSON-safe (ObjectId and datetimes as strings)."""
    out = {}
    for k, v in doc.items():
        if isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, datetime):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out


def checkin_query(record: dict) -> dict:
    """Filter for the check-in documents a checkout record closes."""
    rooms = [str(record.get("room"))]
    try:
        rooms.append(int(rooms[0].strip()))
    except ValueError:
        pass
    query = {"name": record.get("name"), "room": {"$in": rooms}}
    if record.get("checkIn"):
        query["checkIn"] = record["checkIn"]
    return query


class MongoStore:
    def __init__(self, db, collection_name: str = config.MONGO_COLLECTION):
        self.db = db
        self.col = db[collection_name]
        self.col.update_one({"_id": SINGLETON_ID}, {"$setOnInsert": {"state": None}}, upsert=True)

    def ping(self) -> bool:
        self.db.command("ping")
        return True

    def get_state(self):
        doc = self.col.find_one({"_id": SINGLETON_ID})
        return (doc or {}).get("state")

    def set_state(self, state):
        self.col.update_one(
            {"_id": SINGLETON_ID},
            {"$set": {"state": state, "updatedAt": datetime.now(timezone.utc)}},
            upsert=True,
        )

    def _all(self, name: str) -> list[dict]:
        if name not in self.db.list_collection_names():
            return []
        return [_clean(d) for d in self.db[name].find()]

    def full_state(self) -> dict:
        """The singleton state, else an aggregate of the record collections."""
        state = self.get_state()
        if state:
            return state
        floors = self._all("Floors")
        return {
            "floors": floors[0] if floors else {},
            "checkins": self._all("Checkins"),
            "checkouts": self._all("Checkouts"),
            "reservations": self._all("Reservations"),
            "rentPayments": self._all("RentCollections"),
            "expenses": self._all("Expenses"),
        }

    def checkins(self) -> list[dict]:
        return self._all("Checkins")

    def insert(self, collection: str, data: dict) -> str:
        res = self.db[collection].insert_one({**data, "createdAt": datetime.now(timezone.utc)})
        return str(res.inserted_id)

    def remove(self, collection: str, query: dict) -> int:
        return self.db[collection].delete_many(query).deleted_count


@lru_cache(maxsize=1)
def _connect() -> Optional[MongoStore]:
    if not config.MONGO_URI:
        log.warning("MONGO_URI not set; API will answer 'mongo not initialized'")
        return None
    try:
        client = MongoClient(config.MONGO_URI, serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS)
        return MongoStore(client[config.MONGO_DB_NAME], config.MONGO_COLLECTION)
    except PyMongoError as e:
        log.error("mongo init failed: %s", e)
        return None


def get_store() -> Optional[MongoStore]:
    store = _connect()
    if store is None:
        # retry on the next request
        _connect.cache_clear()
    return store


def _not_initialized() -> JSONResponse:
    return JSONResponse(status_code=500, content={"ok": False, "msg": "mongo not initialized"})


def _failed(e: Exception) -> JSONResponse:
    log.error("store operation failed: %s", e)
    return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})


class StateIn(BaseModel):
    state: Optional[Dict[str, Any]] = None


app = FastAPI(title="Front Desk State API")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


@app.get("/api/ping")
def ping(store=Depends(get_store)):
    if store is None:
        return _not_initialized()
    return {"ok": True}


@app.get("/api/debug")
def debug(store=Depends(get_store)):
    return {"ok": store is not None, "db": config.MONGO_DB_NAME, "collection": config.MONGO_COLLECTION}


@app.get("/api/state")
def get_state(store=Depends(get_store)):
    if store is None:
        return _not_initialized()
    try:
        return {"state": store.get_state()}
    except PyMongoError as e:
        return _failed(e)


@app.post("/api/state")
def post_state(body: StateIn, store=Depends(get_store)):
    if store is None:
        return _not_initialized()
    try:
        store.set_state(body.state)
    except PyMongoError as e:
        return _failed(e)
    return {"ok": True}


@app.get("/api/fullstate")
def full_state(store=Depends(get_store)):
    if store is None:
        return _not_initialized()
    try:
        return {"state": store.full_state()}
    except PyMongoError as e:
        return _failed(e)


@app.get("/api/checkins")
def checkins(store=Depends(get_store)):
    if store is None:
        return _not_initialized()
    try:
        return {"ok": True, "checkins": store.checkins()}
    except PyMongoError as e:
        return _failed(e)


def _insert(kind: str, data: dict, store):
    if store is None:
        return _not_initialized()
    try:
        inserted_id = store.insert(RECORD_COLLECTIONS[kind], data or {})
    except PyMongoError as e:
        return _failed(e)
    return {"ok": True, "id": inserted_id}


@app.post("/api/rent")
def post_rent(data: Optional[Dict[str, Any]] = Body(default=None), store=Depends(get_store)):
    return _insert("rent", data, store)


@app.post("/api/expense")
def post_expense(data: Optional[Dict[str, Any]] = Body(default=None), store=Depends(get_store)):
    return _insert("expense", data, store)


@app.post("/api/reservation")
def post_reservation(data: Optional[Dict[str, Any]] = Body(default=None), store=Depends(get_store)):
    return _insert("reservation", data, store)


@app.post("/api/checkin")
def post_checkin(data: Optional[Dict[str, Any]] = Body(default=None), store=Depends(get_store)):
    return _insert("checkin", data, store)


@app.post("/api/checkout")
def post_checkout(data: Optional[Dict[str, Any]] = Body(default=None), store=Depends(get_store)):
    """Store the checkout record and drop the guest from the in-house check-ins."""
    data = data or {}
    res = _insert("checkout", data, store)
    if not isinstance(res, dict) or not data.get("name"):
        return res
    try:
        removed = store.remove(RECORD_COLLECTIONS["checkin"], checkin_query(data))
    except PyMongoError as e:
        return _failed(e)
    log.info("checkout of %s closed %s check-in(s)", data.get("name"), removed)
    return res


def main():
    import uvicorn

    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    main()
