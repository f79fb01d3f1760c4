from __future__ import annotations

from typing import Any

from presence_board.core.timeutil import isoformat
from presence_board.models.attendance import AttendanceRecord
from presence_board.models.department import Department
from presence_board.models.employee import Employee
from presence_board.models.status import EmployeeStatus
from presence_board.models.user import User


def user_out(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "username": u.username,
        "role": u.role,
        "fullName": u.full_name,
        "isActive": u.is_active,
    }


def department_out(d: Department) -> dict[str, Any]:
    return {
        "id": d.id,
        "name": d.name,
        "nameJa": d.name_ja,
        "icon": d.icon,
    }


def employee_out(e: Employee) -> dict[str, Any]:
    return {
        "id": e.id,
        "firstName": e.first_name,
        "lastName": e.last_name,
        "firstNameJa": e.first_name_ja,
        "lastNameJa": e.last_name_ja,
        "email": e.email,
        "position": e.position,
        "positionJa": e.position_ja,
        "departmentId": e.department_id,
        "profileImageUrl": e.profile_image_url,
        "isActive": e.is_active,
    }


def status_out(s: EmployeeStatus) -> dict[str, Any]:
    return {
        "id": s.id,
        "employeeId": s.employee_id,
        "status": s.status,
        "comment": s.comment,
        "lastUpdated": isoformat(s.last_updated),
        "location": s.location,
        "latitude": s.latitude,
        "longitude": s.longitude,
    }


def attendance_out(r: AttendanceRecord) -> dict[str, Any]:
    return {
        "id": r.id,
        "employeeId": r.employee_id,
        "date": r.date.isoformat(),
        "clockInTime": isoformat(r.clock_in_time),
        "clockOutTime": isoformat(r.clock_out_time),
        "clockInLocation": r.clock_in_location,
        "clockInLatitude": r.clock_in_latitude,
        "clockInLongitude": r.clock_in_longitude,
        "clockOutLocation": r.clock_out_location,
        "clockOutLatitude": r.clock_out_latitude,
        "clockOutLongitude": r.clock_out_longitude,
        "status": r.status,
        "workHours": r.work_hours,
        "isModified": r.is_modified,
        "modificationReason": r.modification_reason,
    }
