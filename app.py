# app.py
# -----------------------------------------------
# ⏱️ Weekly timesheets (Streamlit)
# -----------------------------------------------
# Requires: streamlit, sqlmodel, pandas, reportlab, psycopg2-binary (when using Postgres)
# Run: streamlit run app.py

import os

import streamlit as st

import config
from calendar_week import DAY_NAMES, DAY_ORDER, format_day, overdue, week_dates, week_label
from errors import ConcurrencyConflict, NotFound, NotPermitted, ValidationError
from logger import get_logger
from report import timesheet_to_pdf
from repository import TimesheetRepository, WorkItemCatalog
from services import SORT_KEYS, TimesheetService, UpdateRequest
from utils import day_column, overlay_form_hours, timesheet_to_dataframe, timesheets_to_dataframe
from validation import can_modify

log = get_logger("app")

APP_TITLE = "Weekly timesheets"

st.set_page_config(page_title=APP_TITLE, page_icon="⏱️", layout="wide")

# Require Postgres on hosted deployments
if ("RENDER" in os.environ or "SPACE_ID" in os.environ or os.getenv("STREAMLIT_RUNTIME") == "cloud"):
    if config.DB_URL.startswith("sqlite"):
        st.error("DATABASE_URL (Postgres) is missing. Set the environment variable on the host.")


@st.cache_resource
def get_service(url: str) -> TimesheetService:
    repo = TimesheetRepository(url, echo=False)
    return TimesheetService(repo, WorkItemCatalog(repo.engine))


service = get_service(config.DB_URL)
repo = service.repo
catalog = service.catalog

st.markdown(f"### ⏱️ {APP_TITLE}")


# =========================
# State helpers
# =========================
def _flash(kind: str, msg: str):
    st.session_state.setdefault("_flash", []).append((kind, msg))


def _show_flash():
    for kind, msg in st.session_state.pop("_flash", []):
        getattr(st, kind)(msg)


def _open(timesheet_id: int | None):
    st.session_state["timesheet_id"] = timesheet_id
    st.session_state.pop("selected_rows", None)


def _form_hours(ts) -> dict:
    """Cells echoed back by the last save, when it had per-entry errors."""
    saved = st.session_state.get("form_hours")
    if not saved or saved[0] != (ts.id, ts.lock_version):
        return {}
    return saved[1]


_show_flash()

# =========================
# Sidebar: account and catalog
# =========================
accounts = repo.list_accounts()
with st.sidebar:
    st.subheader("Account")
    if accounts:
        labels = {f"{a.name}{' (admin)' if a.is_admin else ''}": a for a in accounts}
        actor = labels[st.selectbox("Acting as", list(labels))]
    else:
        actor = None
        st.info("Create the first account to start.")

    with st.expander("New account"):
        new_name = st.text_input("Name", key="new_account_name")
        new_admin = st.checkbox("Administrator", key="new_account_admin")
        if st.button("Create account") and new_name.strip():
            repo.add_account(new_name.strip(), is_admin=new_admin)
            st.rerun()

    with st.expander("New work item"):
        wi_title = st.text_input("Title", key="wi_title")
        wi_project = st.text_input("Project", key="wi_project")
        wi_start = st.date_input("Start date", value=None, key="wi_start")
        wi_due = st.date_input("Due date", value=None, key="wi_due")
        if st.button("Create work item") and wi_title.strip():
            catalog.add(title=wi_title.strip(), project=wi_project.strip(), start_date=wi_start, due_date=wi_due)
            st.rerun()

if actor is None:
    st.stop()

# =========================
# ➕ New timesheet
# =========================
st.subheader("➕ New timesheet")
years = list(config.year_range(config.today_local()))
c1, c2, c3 = st.columns([1, 1, 1])
year = c1.selectbox("Year", years, index=years.index(config.today_local().year))
free_weeks = service.unused_weeks(actor.id, year)
week = c2.selectbox(
    "Week", free_weeks,
    format_func=lambda w: f"{w:02d} · {format_day(week_dates(year, w)[1])}",
) if free_weeks else None
c3.write("")
if c3.button("Create", use_container_width=True, disabled=week is None):
    try:
        ts = service.create_timesheet(actor, year, week)
        _flash("success", "New timesheet created and ready for editing.")
        _open(ts.id)
    except ValidationError as e:
        for m in e.messages:
            _flash("error", m)
    st.rerun()

# =========================
# 🗓️ Index
# =========================
st.subheader("🗓️ Timesheets")
search = st.text_input("Search (year, week or owner)", key="search").strip() or None
index = service.list_timesheets(actor, search=search)
sections = [
    ("Your drafts", index.mine_draft),
    ("Your committed timesheets", index.mine_committed),
    ("Other drafts", index.others_draft),
    ("Other committed timesheets", index.others_committed),
]
for label, entries in sections:
    if not entries and label.startswith("Other"):
        continue
    st.markdown(f"**{label}**")
    df = timesheets_to_dataframe(entries)
    if df.empty:
        st.caption("None.")
    else:
        st.dataframe(df, use_container_width=True, hide_index=True)

all_ids = [ts.id for _, entries in sections for ts, _ in entries]
if all_ids:
    current = st.session_state.get("timesheet_id")
    chosen = st.selectbox(
        "Open timesheet", all_ids,
        index=all_ids.index(current) if current in all_ids else 0,
        format_func=lambda i: f"#{i}",
    )
    if st.button("Open"):
        _open(chosen)
        st.rerun()

# =========================
# ✏️ Edit / show
# =========================
timesheet_id = st.session_state.get("timesheet_id")
if timesheet_id is None:
    st.stop()

try:
    ts = service.get_timesheet(timesheet_id, actor)
except (NotFound, NotPermitted) as e:
    st.warning(str(e))
    _open(None)
    st.stop()

editable = can_modify(ts, actor)
items = catalog.get_many(ts.work_item_ids())
dates = week_dates(ts.year, ts.week_number)

st.subheader(f"✏️ {week_label(ts.year, ts.week_number)} · from {format_day(ts.start_day())}")
if ts.committed:
    st.caption(f"Committed {ts.committed_at.strftime('%d-%b-%Y %H:%M') if ts.committed_at else ''}")
elif overdue(ts.year, ts.week_number, config.today_local()):
    st.warning("This week is over and the timesheet has not been committed yet.")

grid = timesheet_to_dataframe(ts, items)
row_ids = [r.id for r in ts.rows]

if not editable:
    st.dataframe(grid, use_container_width=True, hide_index=True)
else:
    body = grid.iloc[:-1].copy()
    body.insert(0, "Select", [rid in st.session_state.get("selected_rows", []) for rid in row_ids])
    for day in DAY_ORDER:
        col = day_column(day, dates[day])
        body[col] = body[col].map(lambda h: "" if h == 0 else f"{h:g}")
    body = overlay_form_hours(body, row_ids, dates, _form_hours(ts))
    col_cfg = {
        "Select": st.column_config.CheckboxColumn(),
        "Work item": st.column_config.TextColumn(disabled=True),
        "Total": st.column_config.NumberColumn(disabled=True, format="%.2f"),
    }
    for day in DAY_ORDER:
        col_cfg[day_column(day, dates[day])] = st.column_config.TextColumn(help=DAY_NAMES[day])
    edited = st.data_editor(
        body, column_config=col_cfg, use_container_width=True, hide_index=True,
        num_rows="fixed", key=f"grid_{ts.id}_{ts.lock_version}",
    )
    totals = grid.iloc[-1]
    st.caption("Day totals: " + " · ".join(
        f"{DAY_NAMES[d][:3]} {totals[day_column(d, dates[d])]:g}" for d in DAY_ORDER
    ) + f" · Week {totals['Total']:g}")

    description = st.text_area("Description", value=ts.description)
    weeks = service.unused_weeks(ts.owner_id, ts.year, include=ts.week_number)
    new_week = st.selectbox("Week number", weeks, index=weeks.index(ts.week_number))
    committed = st.checkbox("Commit this timesheet", value=bool(ts.committed))

    active = [w for w in catalog.list_active() if w.id not in items]
    to_add = st.multiselect(
        "Work items to add", [w.id for w in active],
        format_func=lambda i: next(w.augmented_title for w in active if w.id == i),
    )
    sort_by = st.selectbox("Sort rows by", [""] + list(SORT_KEYS))

    b = st.columns(7)
    action = None
    for col, (name, label) in zip(b, [
        ("save", "💾 Save"), ("up", "⬆️ Move up"), ("down", "⬇️ Move down"), ("remove", "🗑️ Remove"),
        ("add", "➕ Add"), ("previous", "⏮️ Save & previous"), ("next", "⏭️ Save & next"),
    ]):
        if col.button(label, use_container_width=True):
            action = name
    if sort_by and st.button("Sort"):
        action = "sort"

    if action:
        selected = [rid for rid, sel in zip(row_ids, edited["Select"]) if sel]
        st.session_state["selected_rows"] = selected
        hours = {
            rid: {day: edited.iloc[i][day_column(day, dates[day])] for day in DAY_ORDER}
            for i, rid in enumerate(row_ids)
        }
        request = UpdateRequest(
            lock_version=ts.lock_version,
            week_number=new_week,
            description=description,
            committed=committed,
            hours=hours,
            selected_row_ids=selected,
            remove_rows=(action == "remove"),
            move=action if action in ("up", "down") else None,
            sort_by=sort_by if action == "sort" else None,
            add_work_item_ids=to_add if action == "add" else None,
        )
        try:
            result = service.update_timesheet(ts.id, actor, request)
            for m in result.notices:
                _flash("success", m)
            for err in result.entry_errors:
                _flash("warning", str(err))
            if result.entry_errors:
                st.session_state["form_hours"] = ((ts.id, result.timesheet.lock_version), result.form_hours)
            else:
                st.session_state.pop("form_hours", None)
            if action in ("next", "previous"):
                other = service.open_adjacent_week(ts.id, actor, forward=(action == "next"))
                _flash("info", f"Now editing the timesheet for week {other.week_number}.")
                _open(other.id)
        except ConcurrencyConflict as e:
            _flash("error", str(e))
        except ValidationError as e:
            for m in e.messages:
                _flash("error", m)
        except (NotFound, NotPermitted) as e:
            _flash("error", str(e))
        st.rerun()

# =========================
# ⬇️ PDF
# =========================
pdf_bytes = timesheet_to_pdf(
    grid,
    title=f"{APP_TITLE}: {week_label(ts.year, ts.week_number)}",
    summary=f"Total hours: {float(ts.total()):g}",
)
st.download_button(
    "Download PDF",
    data=pdf_bytes,
    file_name=f"timesheet_{ts.year}_W{ts.week_number:02d}.pdf",
    mime="application/pdf",
    use_container_width=True,
)

if actor.is_admin and ts.committed and st.button("Reopen as draft"):
    service.reopen_timesheet(ts.id, actor)
    _flash("info", "Timesheet reopened.")
    st.rerun()

if editable and st.button("Delete timesheet"):
    service.delete_timesheet(ts.id, actor)
    _flash("info", f"Timesheet for week {ts.week_number} deleted.")
    _open(None)
    st.rerun()
