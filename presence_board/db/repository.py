"""
Repository - narrow data access layer over one SQLAlchemy session.

No business rules live here; engines decide what to write and when.
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from presence_board.core.errors import DuplicateRecordError, StorageError
from presence_board.models.attendance import AttendanceRecord
from presence_board.models.department import Department
from presence_board.models.employee import Employee
from presence_board.models.status import EmployeeStatus
from presence_board.models.user import User


class Repository:
    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _storage(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to {action}") from exc

    def _save(self, obj: Any, action: str) -> Any:
        with self._storage(action):
            self.db.add(obj)
            self.db.commit()
            self.db.refresh(obj)
        return obj

    @staticmethod
    def _assign(obj: Any, fields: dict[str, Any]) -> None:
        for key, value in fields.items():
            setattr(obj, key, value)

    # users

    def get_user(self, user_id: int) -> User | None:
        with self._storage("load user"):
            return self.db.get(User, user_id)

    def get_user_by_username(self, username: str) -> User | None:
        with self._storage("load user"):
            return self.db.scalar(select(User).where(User.username == username))

    def has_users(self) -> bool:
        with self._storage("load users"):
            return self.db.scalar(select(User.id).limit(1)) is not None

    def create_user(self, **fields: Any) -> User:
        return self._save(User(**fields), "create user")

    # departments

    def get_departments(self) -> list[Department]:
        with self._storage("load departments"):
            return list(self.db.scalars(select(Department).order_by(Department.id)).all())

    def get_department(self, department_id: int) -> Department | None:
        with self._storage("load department"):
            return self.db.get(Department, department_id)

    def create_department(self, **fields: Any) -> Department:
        return self._save(Department(**fields), "create department")

    # employees

    def get_employees(self, *, include_inactive: bool = True) -> list[Employee]:
        stmt = select(Employee).order_by(Employee.id)
        if not include_inactive:
            stmt = stmt.where(Employee.is_active.is_(True))
        with self._storage("load employees"):
            return list(self.db.scalars(stmt).all())

    def get_employee(self, employee_id: int) -> Employee | None:
        with self._storage("load employee"):
            return self.db.get(Employee, employee_id)

    def get_employee_by_email(self, email: str) -> Employee | None:
        with self._storage("load employee"):
            return self.db.scalar(select(Employee).where(Employee.email == email))

    def create_employee(self, **fields: Any) -> Employee:
        return self._save(Employee(**fields), "create employee")

    def update_employee(self, employee: Employee, fields: dict[str, Any]) -> Employee:
        self._assign(employee, fields)
        return self._save(employee, "update employee")

    # employee status

    def get_employee_status(self, employee_id: int) -> EmployeeStatus | None:
        with self._storage("load employee status"):
            return self.db.scalar(select(EmployeeStatus).where(EmployeeStatus.employee_id == employee_id))

    def get_all_employee_statuses(self) -> list[EmployeeStatus]:
        with self._storage("load employee statuses"):
            return list(self.db.scalars(select(EmployeeStatus).order_by(EmployeeStatus.employee_id)).all())

    def upsert_employee_status(self, employee_id: int, fields: dict[str, Any], now: datetime) -> EmployeeStatus:
        """Replace the single status row for employee_id, creating it on first write."""
        existing = self.get_employee_status(employee_id)
        if existing is not None:
            self._assign(existing, {**fields, "last_updated": now})
            return self._save(existing, "update employee status")

        row = EmployeeStatus(employee_id=employee_id, last_updated=now, **fields)
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError:
            # lost the insert race; last writer wins on the row that got there first
            self.db.rollback()
            existing = self.get_employee_status(employee_id)
            if existing is None:
                raise StorageError("Failed to create employee status")
            self._assign(existing, {**fields, "last_updated": now})
            return self._save(existing, "update employee status")
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError("Failed to create employee status") from exc
        with self._storage("create employee status"):
            self.db.refresh(row)
        return row

    # attendance

    def get_attendance_record(self, record_id: int) -> AttendanceRecord | None:
        with self._storage("load attendance record"):
            return self.db.get(AttendanceRecord, record_id)

    def get_attendance_for_day(self, employee_id: int, day: date) -> AttendanceRecord | None:
        stmt = select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == day,
        )
        with self._storage("load attendance record"):
            return self.db.scalar(stmt)

    def get_attendance_records(self, employee_id: int, start: date, end: date) -> list[AttendanceRecord]:
        """Records with start <= date <= end, newest day first."""
        stmt = (
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end,
            )
            .order_by(desc(AttendanceRecord.date))
        )
        with self._storage("load attendance records"):
            return list(self.db.scalars(stmt).all())

    def create_attendance_record(self, fields: dict[str, Any]) -> AttendanceRecord:
        record = AttendanceRecord(**fields)
        try:
            self.db.add(record)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateRecordError("Attendance record already exists for this day") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError("Failed to create attendance record") from exc
        with self._storage("create attendance record"):
            self.db.refresh(record)
        return record

    def update_attendance_record(self, record: AttendanceRecord, fields: dict[str, Any]) -> AttendanceRecord:
        self._assign(record, fields)
        return self._save(record, "update attendance record")
