from datetime import date, datetime, timedelta

import pandas as pd
import streamlit as st

from frontdesk import config
from frontdesk.dates import days_between, parse_iso, ymd
from frontdesk.db import FrontDeskDB, TABLES, ledger_total
from frontdesk.desk import FrontDesk
from frontdesk.disk import DiskStore
from frontdesk.log import setup_logging
from frontdesk.remote import RemoteClient, RemoteError
from frontdesk.rooms import (
    STATUS_OCCUPIED,
    STATUS_RESERVED,
    available_rooms,
    occupancy_stats,
    occupied_rooms,
    recent_checkins,
    reservations_on,
    room_grid,
)
from frontdesk.sync import DualSync, filter_checkouts, filter_expenses, filter_rent, filter_reservations

STATUS_ICONS = {"free": "🟩", "reserved": "🟨", "occupied": "🟥"}

EXCEL_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# =========================
# Wiring
# =========================

setup_logging()

db = FrontDeskDB(config.DB_PATH)
remote = RemoteClient()

if "data_root" not in st.session_state:
    st.session_state["data_root"] = config.DATA_ROOT

desk = FrontDesk(db, DiskStore(st.session_state["data_root"]), remote)


@st.cache_resource(show_spinner=False)
def start_outbox_flush():
    """One background thread per server process that retries queued remote saves."""
    return DualSync(FrontDeskDB(config.DB_PATH), RemoteClient()).start_flush_thread()


start_outbox_flush()


def show_result(ok: bool, msg: str, rerun: bool = False):
    if ok:
        st.success(msg)
        if rerun:
            st.rerun()
    else:
        st.error(msg)


def render_grid(grid: dict, title_key: str | None = None):
    for fnum in sorted(grid.keys(), key=int):
        st.markdown(f"**Floor {fnum}**")
        cols = st.columns(config.ROOMS_PER_FLOOR)
        for col, r in zip(cols, grid[fnum]):
            icon = STATUS_ICONS.get(r.get("status"), "⬜")
            col.markdown(f"{icon} **{r['number']}**")
            if title_key and r.get(title_key):
                col.caption(r[title_key].replace("\n", " · "))
            elif r.get("status") == STATUS_OCCUPIED and r.get("guest"):
                col.caption(f"{r['guest'].get('name')} · ₹{r.get('rate')}")
            elif r.get("status") == STATUS_RESERVED and r.get("reservedFor"):
                col.caption(f"Reserved: {r['reservedFor'].get('name')}")
            else:
                col.caption(f"Free · ₹{r.get('rate')}")


# =========================
# Streamlit UI
# =========================

def page_dashboard():
    st.header("Dashboard")
    state = desk.state()
    today = ymd()

    stats = occupancy_stats(state, today)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Rooms", stats["total"])
    col2.metric("Free", stats["free"])
    col3.metric("Reserved", stats["reserved"])
    col4.metric("Occupied", stats["occupied"])

    st.subheader("Rooms")
    render_grid(room_grid(state, today))

    st.divider()
    left, right = st.columns(2)
    with left:
        st.subheader("Today's reservations")
        todays = reservations_on(state, today)
        if not todays:
            st.info("No reservations for today.")
        else:
            st.dataframe(pd.DataFrame([{
                "Room": r["room"],
                "Guest": r["name"],
                "Place": r["place"],
            } for r in todays]), use_container_width=True, hide_index=True)
    with right:
        st.subheader("Recent check-ins")
        recent = recent_checkins(state)
        if not recent:
            st.info("No guests in house.")
        for r in recent:
            g = r["guest"]
            st.write(f"Room {r['room']} - {g.get('name')} ({g.get('checkInDate') or str(g.get('checkIn'))[:10]})")

    with st.expander("Room rates"):
        numbers = [r["number"] for rooms in state["floors"].values() for r in rooms]
        col1, col2, col3 = st.columns(3)
        rate_room = col1.selectbox("Room", numbers, key="rate_room")
        current = next(r["rate"] for rooms in state["floors"].values() for r in rooms if r["number"] == rate_room)
        new_rate = col2.number_input("Rate", min_value=0.0, value=float(current or 0), step=100.0, key="rate_value")
        password = col3.text_input("Admin password", type="password", key="rate_pw")
        if st.button("Update rate"):
            ok, msg = desk.set_room_rate(password, rate_room, new_rate)
            show_result(ok, msg, rerun=True)


def page_checkin():
    st.header("Check-in")
    state = desk.state()
    free = available_rooms(state, ymd())
    if not free:
        st.warning("No rooms available today.")
        return

    lookup = st.text_input("Returning guest? Search by name", key="ci_lookup")
    matches = desk.guest_matches(lookup)
    picked = None
    if matches:
        labels = ["-"] + [f"{m['name']} (room {m['room'] or '?'}, {m['source']})" for m in matches]
        choice = st.selectbox("Matches", labels, key="ci_match")
        if choice != "-":
            picked = matches[labels.index(choice) - 1]

    room = st.selectbox("Room", free, key="ci_room")
    room_row = db.get_room(room)
    col1, col2 = st.columns(2)
    name = col1.text_input("Guest name", value=picked["name"] if picked else "", key="ci_name")
    contact = col2.text_input("Contact", value=picked["contact"] if picked else "", key="ci_contact")
    id_number = col1.text_input("ID number", key="ci_id")
    rate = col2.number_input("Rate per day", min_value=0.0, step=100.0,
                             value=float(room_row["rate"] if room_row else config.DEFAULT_RATE), key="ci_rate")

    scan = st.file_uploader("ID scan", type=["jpg", "jpeg", "png", "pdf"], key="ci_scan")
    reuse = None
    if not scan and picked and picked.get("scan"):
        if st.checkbox(f"Reuse previous scan ({picked['scan'].name})", value=True, key="ci_reuse"):
            reuse = picked["scan"]

    if st.button("Check-in", type="primary"):
        ext = scan.name.rsplit(".", 1)[-1] if scan else "jpg"
        ok, msg = desk.check_in(room, name, contact, rate, id_number,
                                scan=scan.getvalue() if scan else None, scan_ext=ext, reuse_scan=reuse)
        show_result(ok, msg, rerun=ok)


def page_checkout():
    st.header("Check-out")
    state = desk.state()
    occupied = occupied_rooms(state)

    if not occupied:
        st.info("No rooms are occupied.")
    else:
        labels = [f"{r['number']} - {r['guest']['name']}" for r in occupied]
        choice = st.selectbox("Room", labels, key="co_room")
        r = occupied[labels.index(choice)]
        g = r["guest"]
        check_in = parse_iso(g.get("checkIn")) or datetime.now()
        days = days_between(check_in, datetime.now())
        rent = days * float(g.get("rate") or 0)
        paid = desk.paid_so_far(r["number"], g["name"], g.get("checkInDate") or ymd(check_in.date()))

        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Days", days)
        col2.metric("Rate", f"₹{g.get('rate')}")
        col3.metric("Rent due", f"₹{rent:,.0f}")
        col4.metric("Paid so far", f"₹{paid:,.0f}")
        st.caption(f"Contact: {g.get('contact') or '-'} · ID: {g.get('id') or '-'} · In: {g.get('checkInDate')} {g.get('checkInTime') or ''}")

        if st.button("Check-out", type="primary"):
            ok, msg, record = desk.check_out(r["number"])
            if ok:
                st.success(f"{msg}: {record['daysStayed']} day(s), rent ₹{record['totalRent']:,.0f}, "
                           f"paid ₹{record['totalPaid']:,.0f} ({record['paymentTallyStatus']})")
            else:
                st.error(msg)

    st.divider()
    st.subheader("Check-out history")
    col1, col2, col3, col4 = st.columns(4)
    q = col1.text_input("Search", key="coh_q")
    d_from = col2.date_input("From", value=None, key="coh_from")
    d_to = col3.date_input("To", value=None, key="coh_to")
    tally = col4.selectbox("Payment", ["All", "tallied", "not-tallied"], key="coh_tally")
    rows = db.checkout_history(q, ymd(d_from) if d_from else "", ymd(d_to) if d_to else "", tally)
    if not rows:
        st.info("No check-outs match.")
        return
    st.dataframe(pd.DataFrame([{
        "Room": c["room"],
        "Guest": c["name"],
        "Contact": c["contact"],
        "Check-in": c["checkInDate"],
        "Check-out": c["checkOutDate"],
        "Days": c["daysStayed"],
        "Rent": c["totalRent"],
        "Paid": c["totalPaid"],
        "Payment": c["paymentTallyStatus"],
    } for c in rows]), use_container_width=True, hide_index=True)

    st.subheader("Cancel check-out")
    for idx, c in enumerate(rows[:10], 1):
        col1, col2 = st.columns([4, 1])
        col1.write(f"**{idx}.** Room {c['room']} - {c['name']} ({c['checkOutDate']})")
        if col2.button("Undo", key=f"undo_{c['stayId']}", use_container_width=True):
            ok, msg = desk.cancel_checkout(c["stayId"])
            show_result(ok, msg, rerun=ok)


def page_reservations():
    st.header("Reservations")
    state = desk.state()

    st.subheader("New reservation")
    col1, col2 = st.columns(2)
    name = col1.text_input("Guest name", key="res_name")
    place = col2.text_input("Place", key="res_place")
    res_date = col1.date_input("Date", value=date.today(), min_value=date.today(), key="res_date")
    rooms = available_rooms(state, ymd(res_date))
    room = col2.selectbox("Room", rooms, key="res_room") if rooms else None
    if not rooms:
        col2.warning("No rooms available on this date.")
    if st.button("Reserve", type="primary", disabled=not rooms):
        ok, msg = desk.add_reservation(name, place, room, res_date)
        show_result(ok, msg, rerun=ok)

    st.divider()
    q = st.text_input("Search (name, place, room, date)", key="res_q")
    rows = db.search_reservations(q) if q else db.list_reservations()
    if not rows:
        st.info("No reservations.")
        return
    for r in rows:
        col1, col2 = st.columns([4, 1])
        col1.write(f"{r['date']} · Room {r['room']} · {r['name']} ({r['place']})")
        if col2.button("Delete", key=f"del_res_{r['id']}", use_container_width=True):
            ok, msg = desk.delete_reservation(r["id"])
            show_result(ok, msg, rerun=ok)


def page_accounts():
    st.header("Accounts")
    state = desk.state()
    today = ymd()
    left, right = st.columns(2)

    with left:
        st.subheader("Rent collection")
        occupied = occupied_rooms(state)
        guest_rooms = {f"{r['number']} - {r['guest']['name']}": r for r in occupied}
        pick = st.selectbox("In-house guest", ["-"] + list(guest_rooms), key="rent_pick")
        r = guest_rooms.get(pick)
        name = st.text_input("Name", value=r["guest"]["name"] if r else "", key="rent_name")
        room = st.text_input("Room(s)", value=str(r["number"]) if r else "", key="rent_room")
        days = st.number_input("Days", min_value=1, step=1, value=1, key="rent_days")
        amount = st.number_input("Amount", min_value=0.0, step=100.0,
                                 value=float(r["rate"] or 0) * days if r else 0.0, key="rent_amount")
        mode = st.selectbox("Mode", config.PAYMENT_MODES, key="rent_mode")
        if st.button("Save rent", type="primary"):
            ok, msg = desk.record_rent(name, room, days, amount, mode)
            show_result(ok, msg)

        todays_rent = db.list_rent(today, today)
        st.caption(f"Today: {len(todays_rent)} entries · ₹{ledger_total(todays_rent):,.0f}")
        if todays_rent:
            st.dataframe(pd.DataFrame(todays_rent)[["name", "room", "days", "amount", "mode"]],
                         use_container_width=True, hide_index=True)

    with right:
        st.subheader("Expense")
        description = st.text_input("Description", key="exp_desc")
        exp_amount = st.number_input("Amount", min_value=0.0, step=50.0, key="exp_amount")
        if st.button("Save expense", type="primary"):
            ok, msg = desk.record_expense(description, exp_amount)
            show_result(ok, msg)

        todays_exp = db.list_expenses(today, today)
        st.caption(f"Today: {len(todays_exp)} entries · ₹{ledger_total(todays_exp):,.0f}")
        if todays_exp:
            st.dataframe(pd.DataFrame(todays_exp)[["description", "amount"]],
                         use_container_width=True, hide_index=True)


def _date_filters(prefix: str):
    col1, col2 = st.columns(2)
    d_from = col1.date_input("From", value=date.today() - timedelta(days=30), key=f"{prefix}_from")
    d_to = col2.date_input("To", value=date.today(), key=f"{prefix}_to")
    return ymd(d_from) if d_from else "", ymd(d_to) if d_to else ""


def page_rent_payments():
    st.header("Rent Payments")
    d_from, d_to = _date_filters("rp")
    col1, col2 = st.columns(2)
    mode = col1.selectbox("Mode", ["All"] + config.PAYMENT_MODES, key="rp_mode")
    q = col2.text_input("Search", key="rp_q")

    rows = db.list_rent(d_from, d_to, mode, q)
    st.metric("Total", f"₹{ledger_total(rows):,.0f}")
    if not rows:
        st.info("No records match filters.")
    else:
        st.dataframe(pd.DataFrame(rows)[["payDate", "name", "room", "days", "amount", "mode", "checkInYmd"]],
                     use_container_width=True, hide_index=True)

        st.subheader("Edit entry")
        labels = {f"#{r['id']} {r['payDate']} {r['name']} ₹{r['amount']}": r for r in rows}
        entry = labels[st.selectbox("Entry", list(labels), key="rp_entry")]
        col1, col2, col3 = st.columns(3)
        new_days = col1.number_input("Days", min_value=1, step=1, value=int(entry["days"] or 1), key="rp_days")
        new_amount = col2.number_input("Amount", min_value=0.0, step=100.0, value=float(entry["amount"] or 0), key="rp_amt")
        new_mode = col3.selectbox("Mode", config.PAYMENT_MODES,
                                  index=config.PAYMENT_MODES.index(entry["mode"]) if entry["mode"] in config.PAYMENT_MODES else 0,
                                  key="rp_newmode")
        password = st.text_input("Admin password", type="password", key="rp_pw")
        col1, col2 = st.columns(2)
        if col1.button("Update", use_container_width=True):
            ok, msg = desk.update_rent(password, entry["id"], new_days, new_amount, new_mode)
            show_result(ok, msg, rerun=ok)
        if col2.button("Delete", use_container_width=True):
            ok, msg = desk.delete_rent(password, entry["id"])
            show_result(ok, msg, rerun=ok)

    st.subheader("Export")
    excel_bytes = db.export_ledger_excel(d_from, d_to)
    if excel_bytes:
        st.download_button(
            "Download Accounts Excel",
            data=excel_bytes,
            file_name=f"Accounts-{d_from or 'all'}-{d_to or 'all'}.xlsx",
            mime=EXCEL_MIME,
        )


def page_expenses():
    st.header("Expenses")
    d_from, d_to = _date_filters("ex")
    q = st.text_input("Search", key="ex_q")
    rows = db.list_expenses(d_from, d_to, q)
    st.metric("Total", f"₹{ledger_total(rows):,.0f}")
    if not rows:
        st.info("No records match filters.")
        return
    st.dataframe(pd.DataFrame(rows)[["expDate", "description", "amount"]],
                 use_container_width=True, hide_index=True)

    st.subheader("Delete entry")
    labels = {f"#{r['id']} {r['expDate']} {r['description']} ₹{r['amount']}": r for r in rows}
    entry = labels[st.selectbox("Entry", list(labels), key="ex_entry")]
    password = st.text_input("Admin password", type="password", key="ex_pw")
    if st.button("Delete"):
        ok, msg = desk.delete_expense(password, entry["id"])
        show_result(ok, msg, rerun=ok)


@st.fragment(run_every=config.POLL_INTERVAL)
def live_panel():
    search = st.session_state.get("live_q", "")
    view, error = desk.live_view(search)
    if error:
        st.error(f"Live data unavailable: {error}")
        return
    st.caption(f"Updated {datetime.now().strftime('%H:%M:%S')} · {view['occupiedCount']} occupied")
    render_grid(view["grid"], title_key="title")

    st.subheader("Current guests")
    if not view["guests"]:
        st.info("No rooms are occupied.")
    else:
        st.dataframe(pd.DataFrame([{
            "Room": g["room"],
            "Guest": g["name"],
            "Phone": g["contact"],
            "Price/day": g["rate"],
            "In": f"{g['checkInDate']} {g['checkInTime']}",
            "Paid till now": g["paidTillNow"],
        } for g in view["guests"]]), use_container_width=True, hide_index=True)


def page_live_update():
    st.header("Live Update")
    if not remote.configured:
        st.warning("No remote API configured (set FRONTDESK_API_BASE).")
        return
    st.text_input("Search guest or room", key="live_q")
    live_panel()

    st.divider()
    tab_res, tab_co, tab_rent, tab_exp = st.tabs(["Reservations", "Check-outs", "Rent", "Expenses"])
    try:
        remote_state = remote.full_state()
    except RemoteError as e:
        st.error(f"Could not load records: {e}")
        return
    with tab_res:
        q = st.text_input("Search by name/place/room/date", key="lr_q")
        rows = filter_reservations(remote_state.get("reservations"), q)
        if rows:
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
        else:
            st.info("No reservations")
    with tab_co:
        col1, col2, col3, col4 = st.columns(4)
        q = col1.text_input("Search", key="lco_q")
        d_from = col2.date_input("From", value=None, key="lco_from")
        d_to = col3.date_input("To", value=None, key="lco_to")
        tally = col4.selectbox("Payment", ["all", "tallied", "not-tallied"], key="lco_tally")
        rows = filter_checkouts(remote_state.get("checkouts"), q,
                                ymd(d_from) if d_from else "", ymd(d_to) if d_to else "", tally)
        if rows:
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
        else:
            st.info("No check-outs")
    with tab_rent:
        col1, col2 = st.columns(2)
        q = col1.text_input("Search", key="lrent_q")
        mode = col2.selectbox("Mode", ["All"] + config.PAYMENT_MODES, key="lrent_mode")
        rows = filter_rent(remote_state.get("rentPayments") or remote_state.get("rent_payments"), q, mode)
        st.metric("Total", f"₹{ledger_total(rows):,.0f}")
        if rows:
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
        else:
            st.info("No records match filters")
    with tab_exp:
        q = st.text_input("Search", key="lexp_q")
        rows = filter_expenses(remote_state.get("expenses"), q)
        st.metric("Total", f"₹{ledger_total(rows):,.0f}")
        if rows:
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
        else:
            st.info("No records match filters")


def page_storage():
    st.header("Storage")

    st.subheader("Disk folder")
    path = st.text_input("Base folder", value=st.session_state["data_root"], key="storage_path")
    if desk.disk.is_connected():
        st.success(f"Connected: {desk.disk.base}")
    else:
        st.warning("Folder not connected.")
    if st.button("Connect folder"):
        ok, msg = desk.connect_storage(path)
        if ok:
            st.session_state["data_root"] = path
        show_result(ok, msg)

    st.subheader("Remote API")
    st.write(f"Base: `{remote.base or 'not configured'}`")
    if st.button("Ping"):
        if desk.sync.ping():
            st.success("Remote API reachable")
        else:
            st.error("Remote API unreachable")
    outbox = db.read_outbox()
    if outbox:
        st.info(f"Unsent state queued at {outbox.get('queuedAt')}")
    if st.button("Sync now"):
        res = desk.sync_now()
        if res.get("ok"):
            st.success("State pushed to remote")
        else:
            st.error(f"Sync failed: {res.get('error')}")

    if st.button("Pull remote state"):
        ok, msg = desk.pull_remote()
        show_result(ok, msg, rerun=True)

    st.subheader("Reload")
    st.caption("Rebuild the desk from the disk folder, else this machine, else the remote API.")
    if st.button("Reload authoritative state"):
        desk.adopt_authoritative_state()
        st.success("State reloaded")
        st.rerun()


def page_db_viewer():
    st.header("Database viewer")
    table = st.selectbox("Select table", TABLES)
    df = db.read_table(table)
    if df.empty:
        st.info(f"No rows in {table}.")
    else:
        st.dataframe(df)


def main():
    st.set_page_config(
        page_title="Front Desk Hub",
        page_icon="🏨",
        layout="wide",
        initial_sidebar_state="expanded",
    )

    with st.sidebar:
        st.title("Front Desk Hub")
        mode = "TEST MODE" if config.TEST_MODE else "LIVE MODE"
        st.markdown(f"**{mode}**")
        page = st.radio(
            "Navigate",
            [
                "Dashboard",
                "Check-in",
                "Check-out",
                "Reservations",
                "Accounts",
                "Rent Payments",
                "Expenses",
                "Live Update",
                "Storage",
                "DB Viewer",
            ],
        )

        st.markdown("---")
        st.caption("This machine is the source of truth; the folder and remote API are mirrors.")

    if page == "Dashboard":
        page_dashboard()
    elif page == "Check-in":
        page_checkin()
    elif page == "Check-out":
        page_checkout()
    elif page == "Reservations":
        page_reservations()
    elif page == "Accounts":
        page_accounts()
    elif page == "Rent Payments":
        page_rent_payments()
    elif page == "Expenses":
        page_expenses()
    elif page == "Live Update":
        page_live_update()
    elif page == "Storage":
        page_storage()
    elif page == "DB Viewer":
        page_db_viewer()


if __name__ == "__main__":
    main()
