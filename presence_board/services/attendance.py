"""
Attendance Engine - clock-in / clock-out over day-bucketed records
"""
from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import Any

from presence_board.core.errors import (
    AlreadyClockedInError,
    DuplicateRecordError,
    NoClockInError,
    NotFoundError,
    ValidationError,
)
from presence_board.core.timeutil import as_utc, local_day, month_bounds, utcnow, worked_minutes
from presence_board.db.repository import Repository
from presence_board.models.attendance import AttendanceRecord
from presence_board.services.hub import BroadcastHub, attendance_update_event
from presence_board.services.presence import Location, PresenceEngine
from presence_board.services.serializers import attendance_out

EDITABLE_FIELDS = frozenset(
    {
        "clock_in_time",
        "clock_out_time",
        "clock_in_location",
        "clock_in_latitude",
        "clock_in_longitude",
        "clock_out_location",
        "clock_out_latitude",
        "clock_out_longitude",
        "status",
        "work_hours",
        "modification_reason",
    }
)


class AttendanceEngine:
    def __init__(self, hub: BroadcastHub, presence: PresenceEngine, tz: tzinfo) -> None:
        self.hub = hub
        self.presence = presence
        self.tz = tz
        self._log = logging.getLogger("uvicorn.error")

    def today(self, now: datetime | None = None) -> date:
        return local_day(now or utcnow(), self.tz)

    async def clock_in(
        self,
        repo: Repository,
        employee_id: int,
        status: str,
        location: Location | None = None,
        *,
        now: datetime | None = None,
    ) -> AttendanceRecord:
        """
        Open today's attendance record and move presence to the chosen status

        Args:
            repo: Repository bound to the request session
            employee_id: Employee clocking in
            status: Status chosen at clock-in, from the active profile
            location: Optional place name and coordinates

        Returns:
            AttendanceRecord: The created (or completed placeholder) record

        Raises:
            ValidationError: Status outside the active profile
            NotFoundError: Employee does not exist
            AlreadyClockedInError: Today's record already has a clock-in
        """
        self.presence.validate_status(status)
        if repo.get_employee(employee_id) is None:
            raise NotFoundError("Employee not found")

        now = now or utcnow()
        day = self.today(now)
        location = location or Location()
        fields = {
            "clock_in_time": now,
            "status": status,
            "clock_in_location": location.name,
            "clock_in_latitude": location.latitude,
            "clock_in_longitude": location.longitude,
        }

        existing = repo.get_attendance_for_day(employee_id, day)
        if existing is not None and existing.clock_in_time is not None:
            raise AlreadyClockedInError()

        if existing is not None:
            record = repo.update_attendance_record(existing, fields)
        else:
            try:
                record = repo.create_attendance_record({"employee_id": employee_id, "date": day, **fields})
            except DuplicateRecordError as exc:
                # a concurrent clock-in for the same day got there first
                raise AlreadyClockedInError() from exc

        self.presence.write_status(repo, employee_id, status, location=location, now=now)
        self._log.info("Employee %s clocked in for %s", employee_id, day.isoformat())

        await self.hub.publish(attendance_update_event("clock-in", attendance_out(record)))
        return record

    async def clock_out(
        self,
        repo: Repository,
        employee_id: int,
        location: Location | None = None,
        *,
        now: datetime | None = None,
    ) -> AttendanceRecord:
        """
        Close today's attendance record and mark the employee off duty

        A repeat clock-out on the same day overwrites the clock-out time and
        recomputes the worked minutes from the original clock-in.

        Raises:
            NoClockInError: No record for today, or it has no clock-in
        """
        now = now or utcnow()
        day = self.today(now)

        record = repo.get_attendance_for_day(employee_id, day)
        if record is None or record.clock_in_time is None:
            raise NoClockInError()

        location = location or Location()
        record = repo.update_attendance_record(
            record,
            {
                "clock_out_time": now,
                "clock_out_location": location.name,
                "clock_out_latitude": location.latitude,
                "clock_out_longitude": location.longitude,
                "work_hours": worked_minutes(record.clock_in_time, now),
            },
        )

        self.presence.write_status(repo, employee_id, self.presence.profile.off_duty, location=location, now=now)
        self._log.info("Employee %s clocked out after %s min", employee_id, record.work_hours)

        await self.hub.publish(attendance_update_event("clock-out", attendance_out(record)))
        return record

    def update_record(self, repo: Repository, record_id: int, fields: dict[str, Any]) -> AttendanceRecord:
        """
        Manual correction. Every call flags the record as modified, even an
        empty one; there is no per-field audit trail.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        record = repo.get_attendance_record(record_id)
        if record is None:
            raise NotFoundError("Attendance record not found")

        if "status" in fields:
            self.presence.validate_status(fields["status"])
        if "work_hours" in fields and fields["work_hours"] is not None and fields["work_hours"] < 0:
            raise ValidationError("workHours must not be negative")

        clock_in = fields.get("clock_in_time", record.clock_in_time)
        clock_out = fields.get("clock_out_time", record.clock_out_time)
        if clock_in is not None and clock_out is not None and as_utc(clock_out) < as_utc(clock_in):
            raise ValidationError("clockOutTime must not be earlier than clockInTime")

        changes = dict(fields)
        times_changed = "clock_in_time" in fields or "clock_out_time" in fields
        if times_changed and "work_hours" not in fields:
            changes["work_hours"] = (
                worked_minutes(clock_in, clock_out) if clock_in is not None and clock_out is not None else None
            )
        changes["is_modified"] = True

        record = repo.update_attendance_record(record, changes)
        self._log.info("Attendance record %s modified (%s)", record_id, ", ".join(sorted(fields)) or "no fields")
        return record

    def get_today(self, repo: Repository, employee_id: int, *, now: datetime | None = None) -> AttendanceRecord | None:
        return repo.get_attendance_for_day(employee_id, self.today(now))

    def get_monthly_attendance(self, repo: Repository, employee_id: int, year: int, month: int) -> list[AttendanceRecord]:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        if not 1 <= year <= 9999:
            raise ValidationError("year is out of range")
        start, end = month_bounds(year, month)
        return repo.get_attendance_records(employee_id, start, end)

    def get_attendance_range(self, repo: Repository, employee_id: int, start: date, end: date) -> list[AttendanceRecord]:
        if start > end:
            raise ValidationError("start must not be after end")
        return repo.get_attendance_records(employee_id, start, end)
