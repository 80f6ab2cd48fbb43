# show_current.py
import json

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from frontdesk import config
from frontdesk.db import FrontDeskDB, TABLES
from frontdesk.server import SINGLETON_ID

PREVIEW_CHARS = 2000


def show_counts():
    db = FrontDeskDB(config.DB_PATH)
    print(f"Local database: {config.DB_PATH}")
    for table in TABLES:
        print(f"{table}: {len(db.read_table(table))}")
    outbox = db.read_outbox()
    if outbox:
        print(f"\nUnsent remote state queued at {outbox.get('queuedAt')}")


def show_remote():
    if not config.MONGO_URI:
        print("\nMONGO_URI not set; skipping remote preview")
        return
    client = MongoClient(config.MONGO_URI, serverSelectionTimeoutMS=8000)
    try:
        col = client[config.MONGO_DB_NAME][config.MONGO_COLLECTION]
        print(f"\nConnected to {config.MONGO_DB_NAME}, collection {config.MONGO_COLLECTION}")
        doc = col.find_one({"_id": SINGLETON_ID})
    except PyMongoError as e:
        print(f"Remote unavailable: {e}")
        return
    finally:
        client.close()

    if not doc:
        print("No singleton document found.")
        return
    print("updatedAt:", doc.get("updatedAt") or "N/A")
    s = json.dumps(doc.get("state"), indent=2, default=str)
    print(f"state (preview, first {PREVIEW_CHARS} chars):")
    print(s[:PREVIEW_CHARS] + " ..." if len(s) > PREVIEW_CHARS else s)


if __name__ == "__main__":
    show_counts()
    show_remote()
