import sys

from pymongo import MongoClient

from frontdesk import config
from frontdesk.db import FrontDeskDB
from frontdesk.rooms import generate_default
from frontdesk.server import MongoStore

# Push the desk state into the remote singleton document.
#   python migrate.py            -> state of the local database (FRONTDESK_DB_PATH)
#   python migrate.py --default  -> fresh sample hotel

if not config.MONGO_URI:
    print("MONGO_URI not set (.env)")
    sys.exit(2)

if "--default" in sys.argv[1:]:
    print("Writing sample state...")
    state = generate_default()
else:
    print(f"Reading local state from {config.DB_PATH}...")
    state = FrontDeskDB(config.DB_PATH).load_state()

client = MongoClient(config.MONGO_URI, serverSelectionTimeoutMS=8000)
try:
    store = MongoStore(client[config.MONGO_DB_NAME], config.MONGO_COLLECTION)
    store.set_state(state)
finally:
    client.close()

occupied = sum(1 for rooms in state["floors"].values() for r in rooms if r.get("guest"))
print(f"  ✅ {len(state['floors'])} floors, {occupied} occupied rooms")
print(f"  ✅ {len(state['reservations'])} reservations")
print(f"  ✅ {len(state.get('rentPayments') or [])} rent entries, {len(state.get('expenses') or [])} expenses")
print(f"\n✅ State written to {config.MONGO_DB_NAME}.{config.MONGO_COLLECTION}")
