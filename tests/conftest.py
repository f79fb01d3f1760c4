from __future__ import annotations

import asyncio
import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "dev"
os.environ["AUTO_CREATE_SCHEMA"] = "true"
os.environ["STATUS_PROFILE"] = "attendance"
os.environ["TIMEZONE"] = "Asia/Tokyo"
os.environ.pop("BOOTSTRAP_ADMIN_USERNAME", None)
os.environ.pop("BOOTSTRAP_ADMIN_PASSWORD", None)

from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from starlette.websockets import WebSocketState  # noqa: E402

import presence_board.models  # noqa: E402,F401
from presence_board.core.statuses import ATTENDANCE_PROFILE  # noqa: E402
from presence_board.db.base import Base  # noqa: E402
from presence_board.db.repository import Repository  # noqa: E402
from presence_board.db.session import SessionLocal, engine  # noqa: E402
from presence_board.services.attendance import AttendanceEngine  # noqa: E402
from presence_board.services.hub import BroadcastHub  # noqa: E402
from presence_board.services.presence import PresenceEngine  # noqa: E402

TOKYO = ZoneInfo("Asia/Tokyo")


class FakeSocket:
    """Stands in for a Starlette WebSocket inside the hub."""

    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: list[str] = []
        self.fail = fail
        self.delay = delay
        self.closed_with: int | None = None

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, text: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket broken")
        self.sent.append(text)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code
        self.application_state = WebSocketState.DISCONNECTED

    def drop(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture()
def socket_factory():
    return FakeSocket


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        yield session


@pytest.fixture()
def repo(db):
    return Repository(db)


@pytest.fixture()
def hub():
    return BroadcastHub()


@pytest.fixture()
def presence(hub):
    return PresenceEngine(hub, ATTENDANCE_PROFILE)


@pytest.fixture()
def attendance(hub, presence):
    return AttendanceEngine(hub, presence, TOKYO)


@pytest.fixture()
def department(repo):
    return repo.create_department(name="Engineering", name_ja="開発部", icon="code")


@pytest.fixture()
def make_employee(repo, department):
    counter = {"n": 0}

    def make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "first_name": f"First{n}",
            "last_name": f"Last{n}",
            "first_name_ja": "名",
            "last_name_ja": "姓",
            "email": f"employee{n}@example.com",
            "position": "Engineer",
            "position_ja": "エンジニア",
            "department_id": department.id,
            "is_active": True,
        }
        fields.update(overrides)
        return repo.create_employee(**fields)

    return make


@pytest.fixture()
def employee(make_employee):
    return make_employee()
