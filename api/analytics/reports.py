"""
Report scheduling arithmetic and CSV export.
"""

from __future__ import annotations

import calendar
import csv
import io
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

FREQUENCY_WINDOW_DAYS: dict[str, int] = {"daily": 1, "weekly": 7, "monthly": 30}


def add_months(moment: datetime, months: int, *, day: int | None = None) -> datetime:
    """
    Shift by whole months, clamping `day` (default: the moment's own day) to the month's length.
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(day or moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def step(moment: datetime, frequency: str, *, anchor_day: int | None = None) -> datetime:
    if frequency == "daily":
        return moment + timedelta(days=1)
    if frequency == "weekly":
        return moment + timedelta(days=7)
    if frequency == "monthly":
        return add_months(moment, 1, day=anchor_day)
    raise ValueError(f"Unknown report frequency: {frequency}")


def first_run_at(frequency: str, time_of_day: str, *, now: datetime | None = None) -> datetime:
    """
    Today at `time_of_day` (UTC); one period later when that time has passed.
    """
    now = now or datetime.now(timezone.utc)
    hours, minutes = (int(part) for part in time_of_day.split(":", 1))
    candidate = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if candidate <= now:
        candidate = step(candidate, frequency)
    return candidate


def next_run_after(
    previous: datetime,
    frequency: str,
    *,
    now: datetime | None = None,
    anchor_day: int | None = None,
) -> datetime:
    """
    The first occurrence after `now`, skipping any periods missed while down.

    Monthly runs land on `anchor_day` when the month has it, so a schedule on the 31st
    comes back to the 31st after a short month.
    """
    now = now or datetime.now(timezone.utc)
    candidate = step(previous, frequency, anchor_day=anchor_day)
    while candidate <= now:
        candidate = step(candidate, frequency, anchor_day=anchor_day)
    return candidate


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def to_csv(rows: Iterable[Mapping[str, Any]]) -> str:
    """
    Header from the first row's keys; every cell quoted, nested values JSON-encoded.
    """
    rows = list(rows)
    if not rows:
        return ""
    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(h)) for h in headers])
    return buffer.getvalue()


def json_bytes(payload: Any) -> bytes:
    return json.dumps(payload, default=str, ensure_ascii=False, indent=2).encode("utf-8")
