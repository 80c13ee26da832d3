# utils.py
from __future__ import annotations

from typing import Iterable, Mapping

import pandas as pd

from calendar_week import DAY_NAMES, DAY_ORDER, format_day, week_dates, week_label
from domain import Timesheet, WorkItem


def day_column(day_number: int, d) -> str:
    return f"{DAY_NAMES[day_number][:3]} {d.strftime('%d/%m')}"


def timesheet_to_dataframe(ts: Timesheet, work_items: Mapping[int, WorkItem]) -> pd.DataFrame:
    """One line per row plus a 'Total' line; one column per day plus 'Total'."""
    dates = week_dates(ts.year, ts.week_number)
    columns = ["Work item"] + [day_column(day, dates[day]) for day in DAY_ORDER] + ["Total"]

    rows = []
    for r in ts.rows:
        item = work_items.get(r.work_item_id)
        line = {"Work item": item.augmented_title if item else f"#{r.work_item_id}"}
        for day in DAY_ORDER:
            line[day_column(day, dates[day])] = float(r.hours_for(day))
        line["Total"] = float(r.total())
        rows.append(line)

    totals = {"Work item": "Total"}
    for day in DAY_ORDER:
        totals[day_column(day, dates[day])] = float(ts.sum_for_day(day))
    totals["Total"] = float(ts.total())
    rows.append(totals)

    return pd.DataFrame(rows, columns=columns)


def timesheets_to_dataframe(entries: Iterable[tuple[Timesheet, str]]) -> pd.DataFrame:
    """Index table: one line per (timesheet, owner name) pair."""
    rows = []
    for ts, owner in entries:
        rows.append({
            "ID": ts.id,
            "Week": week_label(ts.year, ts.week_number),
            "Start day": format_day(ts.start_day()),
            "Owner": owner,
            "Last edited": ts.updated_at.strftime("%d-%b-%Y %H:%M") if ts.updated_at else "",
            "Committed": ts.committed_at.strftime("%d-%b-%Y %H:%M") if ts.committed_at else "",
            "Hours": float(ts.total()),
        })
    df = pd.DataFrame(rows, columns=["ID", "Week", "Start day", "Owner", "Last edited", "Committed", "Hours"])
    if not df.empty:
        df = df.sort_values(["Week"], ascending=False).reset_index(drop=True)
    return df


def overlay_form_hours(body: pd.DataFrame, row_ids: list, dates: Mapping, form_hours: Mapping) -> pd.DataFrame:
    """
    Puts submitted cell values back over an editable grid, so a cell whose
    value was rejected shows the reset text instead of the stored hours.
    `body` has one line per row id, in `row_ids` order.
    """
    out = body.copy()
    for i, rid in enumerate(row_ids):
        for day, value in form_hours.get(rid, {}).items():
            if day in dates:
                out.at[out.index[i], day_column(day, dates[day])] = "" if value is None else str(value)
    return out
