from __future__ import annotations

import csv
import io
from datetime import datetime, tzinfo
from typing import Any

from presence_board.core.errors import NotFoundError
from presence_board.core.timeutil import as_utc
from presence_board.db.repository import Repository
from presence_board.models.attendance import AttendanceRecord
from presence_board.services.attendance import AttendanceEngine
from presence_board.services.serializers import department_out, employee_out, status_out

CSV_BOM = "\ufeff"
CSV_HEADER = [
    "date",
    "clock-in time",
    "clock-out time",
    "work duration",
    "status",
    "clock-in location",
    "clock-out location",
]


def get_departments_with_employees(repo: Repository, *, active_only: bool = False) -> list[dict[str, Any]]:
    departments = repo.get_departments()
    employees = repo.get_employees(include_inactive=not active_only)
    statuses = {s.employee_id: s for s in repo.get_all_employee_statuses()}

    by_department: dict[int, list[dict[str, Any]]] = {d.id: [] for d in departments}
    for e in employees:
        bucket = by_department.get(e.department_id)
        if bucket is None:
            continue
        status = statuses.get(e.id)
        bucket.append({**employee_out(e), "status": status_out(status) if status else None})

    return [{**department_out(d), "employees": by_department[d.id]} for d in departments]


def get_employee_with_status(repo: Repository, employee_id: int) -> dict[str, Any]:
    employee = repo.get_employee(employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    status = repo.get_employee_status(employee_id)
    department = repo.get_department(employee.department_id)
    return {
        **employee_out(employee),
        "status": status_out(status) if status else None,
        "department": department_out(department) if department else None,
    }


def format_duration(minutes: int | None) -> str:
    if minutes is None:
        return ""
    return f"{minutes // 60}h {minutes % 60}m"


def _local(value: datetime | None, tz: tzinfo) -> datetime | None:
    value = as_utc(value)
    return value.astimezone(tz) if value else None


def _time(value: datetime | None, tz: tzinfo) -> str:
    local = _local(value, tz)
    return f"{local.hour}:{local.minute:02d}:{local.second:02d}" if local else ""


def attendance_csv_row(record: AttendanceRecord, tz: tzinfo) -> list[str]:
    return [
        f"{record.date.year}/{record.date.month}/{record.date.day}",
        _time(record.clock_in_time, tz),
        _time(record.clock_out_time, tz),
        format_duration(record.work_hours),
        record.status,
        record.clock_in_location or "",
        record.clock_out_location or "",
    ]


def render_attendance_csv(records: list[AttendanceRecord], tz: tzinfo) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow(attendance_csv_row(record, tz))
    return CSV_BOM + out.getvalue().rstrip("\n")


def export_monthly_attendance_csv(
    engine: AttendanceEngine, repo: Repository, employee_id: int, year: int, month: int
) -> str:
    records = engine.get_monthly_attendance(repo, employee_id, year, month)
    return render_attendance_csv(records, engine.tz)
