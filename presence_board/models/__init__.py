from presence_board.models.user import User
from presence_board.models.department import Department
from presence_board.models.employee import Employee
from presence_board.models.status import EmployeeStatus
from presence_board.models.attendance import AttendanceRecord

__all__ = ["User", "Department", "Employee", "EmployeeStatus", "AttendanceRecord"]
