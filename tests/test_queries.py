from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from presence_board.core.errors import NotFoundError
from presence_board.services.queries import (
    CSV_BOM,
    CSV_HEADER,
    export_monthly_attendance_csv,
    format_duration,
    get_departments_with_employees,
    get_employee_with_status,
    render_attendance_csv,
)

TOKYO = ZoneInfo("Asia/Tokyo")


async def test_department_tree_groups_employees_with_status(repo, presence, department, make_employee):
    sales = repo.create_department(name="Sales", name_ja="営業部", icon="briefcase")
    a = make_employee()
    b = make_employee(department_id=sales.id)
    await presence.set_status(repo, a.id, "remote", "wfh")

    tree = get_departments_with_employees(repo)

    assert [d["name"] for d in tree] == ["Engineering", "Sales"]
    engineering, sales_out = tree
    assert [e["id"] for e in engineering["employees"]] == [a.id]
    assert engineering["employees"][0]["status"]["status"] == "remote"
    assert engineering["employees"][0]["status"]["comment"] == "wfh"
    assert [e["id"] for e in sales_out["employees"]] == [b.id]
    assert sales_out["employees"][0]["status"] is None


def test_department_tree_lists_inactive_employees_by_default(repo, department, make_employee):
    active = make_employee()
    inactive = make_employee(is_active=False)

    tree = get_departments_with_employees(repo)

    assert [(e["id"], e["isActive"]) for e in tree[0]["employees"]] == [(active.id, True), (inactive.id, False)]


def test_department_tree_active_only(repo, department, make_employee):
    active = make_employee()
    make_employee(is_active=False)

    tree = get_departments_with_employees(repo, active_only=True)

    assert [e["id"] for e in tree[0]["employees"]] == [active.id]


def test_empty_department_is_listed(repo, department):
    assert get_departments_with_employees(repo) == [
        {"id": department.id, "name": "Engineering", "nameJa": "開発部", "icon": "code", "employees": []}
    ]


async def test_employee_with_status(repo, presence, department, make_employee):
    employee = make_employee(id=71)
    await presence.set_status(repo, 71, "on-site", "desk 4F")

    out = get_employee_with_status(repo, 71)

    assert out["id"] == employee.id == 71
    assert out["status"]["status"] == "on-site"
    assert out["department"]["nameJa"] == "開発部"

    tree = get_departments_with_employees(repo)
    listed = {e["id"]: e for d in tree if d["id"] == employee.department_id for e in d["employees"]}
    assert listed[71]["status"]["status"] == "on-site"
    assert listed[71]["status"]["comment"] == "desk 4F"


def test_employee_without_status(repo, employee):
    assert get_employee_with_status(repo, employee.id)["status"] is None


def test_unknown_employee(repo):
    with pytest.raises(NotFoundError):
        get_employee_with_status(repo, 404)


@pytest.mark.parametrize(
    "minutes, text",
    [(None, ""), (0, "0h 0m"), (59, "0h 59m"), (485, "8h 5m"), (600, "10h 0m")],
)
def test_format_duration(minutes, text):
    assert format_duration(minutes) == text


def test_csv_layout(repo, employee):
    repo.create_attendance_record(
        {
            "employee_id": employee.id,
            "date": date(2024, 3, 4),
            "clock_in_time": datetime(2024, 3, 4, 0, 5, 3, tzinfo=timezone.utc),
            "clock_out_time": datetime(2024, 3, 4, 8, 10, 3, tzinfo=timezone.utc),
            "clock_in_location": "Tokyo, Chiyoda",
            "status": "on-site",
            "work_hours": 485,
        }
    )
    records = repo.get_attendance_records(employee.id, date(2024, 3, 1), date(2024, 3, 31))

    body = render_attendance_csv(records, TOKYO)

    assert body.startswith(CSV_BOM)
    assert not body.endswith("\n")
    assert '"Tokyo, Chiyoda"' in body
    rows = list(csv.reader(io.StringIO(body[len(CSV_BOM):])))
    assert rows == [
        CSV_HEADER,
        ["2024/3/4", "9:05:03", "17:10:03", "8h 5m", "on-site", "Tokyo, Chiyoda", ""],
    ]


def test_csv_open_day_leaves_clock_out_blank(repo, employee):
    repo.create_attendance_record(
        {
            "employee_id": employee.id,
            "date": date(2024, 3, 5),
            "clock_in_time": datetime(2024, 3, 5, 14, 59, 0, tzinfo=timezone.utc),
            "status": "remote",
        }
    )
    records = repo.get_attendance_records(employee.id, date(2024, 3, 1), date(2024, 3, 31))

    rows = list(csv.reader(io.StringIO(render_attendance_csv(records, TOKYO)[len(CSV_BOM):])))

    assert rows[1] == ["2024/3/5", "23:59:00", "", "", "remote", "", ""]


def test_csv_for_empty_month_is_header_only(attendance, repo, employee):
    body = export_monthly_attendance_csv(attendance, repo, employee.id, 2024, 6)

    assert body == CSV_BOM + ",".join(CSV_HEADER)
