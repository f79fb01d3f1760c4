from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from presence_board.core.errors import NotFoundError, ValidationError
from presence_board.core.statuses import StatusProfile
from presence_board.core.timeutil import utcnow
from presence_board.db.repository import Repository
from presence_board.models.status import EmployeeStatus
from presence_board.services.hub import BroadcastHub, status_update_event
from presence_board.services.serializers import status_out

COMMENT_MAX_LENGTH = 20


@dataclass(frozen=True)
class Location:
    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None


def comment_length(comment: str) -> int:
    # UTF-16 code units, same count the client-side character counter shows
    return len(comment.encode("utf-16-le")) // 2


class PresenceEngine:
    def __init__(self, hub: BroadcastHub, profile: StatusProfile) -> None:
        self.hub = hub
        self.profile = profile
        self._log = logging.getLogger("uvicorn.error")

    def validate_status(self, status: str) -> None:
        if status not in self.profile:
            allowed = ", ".join(self.profile.values)
            raise ValidationError(f"status must be one of: {allowed}")

    async def set_status(
        self,
        repo: Repository,
        employee_id: int,
        status: str,
        comment: str | None = None,
        location: Location | None = None,
        *,
        now: datetime | None = None,
    ) -> EmployeeStatus:
        row = self.write_status(repo, employee_id, status, comment, location, now=now)
        await self.hub.publish(status_update_event(employee_id, status_out(row)))
        return row

    def write_status(
        self,
        repo: Repository,
        employee_id: int,
        status: str,
        comment: str | None = None,
        location: Location | None = None,
        *,
        now: datetime | None = None,
    ) -> EmployeeStatus:
        """Upsert without publishing. Clock events announce themselves."""
        self.validate_status(status)
        if comment is not None and comment_length(comment) > COMMENT_MAX_LENGTH:
            raise ValidationError(f"comment must be at most {COMMENT_MAX_LENGTH} characters")

        if repo.get_employee(employee_id) is None:
            raise NotFoundError("Employee not found")

        location = location or Location()
        row = repo.upsert_employee_status(
            employee_id,
            {
                "status": status,
                "comment": comment or None,
                "location": location.name,
                "latitude": location.latitude,
                "longitude": location.longitude,
            },
            now or utcnow(),
        )
        self._log.info("Employee %s status -> %s", employee_id, status)
        return row

    def get_status(self, repo: Repository, employee_id: int) -> EmployeeStatus:
        row = repo.get_employee_status(employee_id)
        if row is None:
            raise NotFoundError("Employee status not found")
        return row

    def get_all_statuses(self, repo: Repository) -> list[EmployeeStatus]:
        return repo.get_all_employee_statuses()
