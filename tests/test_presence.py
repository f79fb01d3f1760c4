from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from presence_board.core.errors import NotFoundError, StorageError, ValidationError
from presence_board.core.statuses import SELF_REPORT_PROFILE
from presence_board.core.timeutil import as_utc
from presence_board.models.status import EmployeeStatus
from presence_board.services.presence import Location, PresenceEngine, comment_length

T0 = datetime(2024, 5, 1, 1, 0, tzinfo=timezone.utc)


def _status_rows(db, employee_id):
    return db.scalar(select(func.count()).select_from(EmployeeStatus).where(EmployeeStatus.employee_id == employee_id))


async def test_first_write_inserts_status(presence, repo, employee):
    row = await presence.set_status(repo, employee.id, "on-site", "at my desk", now=T0)

    assert row.employee_id == employee.id
    assert row.status == "on-site"
    assert row.comment == "at my desk"
    assert as_utc(row.last_updated) == T0


async def test_second_write_replaces_single_row(presence, repo, db, employee):
    first = await presence.set_status(repo, employee.id, "on-site", "morning", now=T0)
    first_updated = as_utc(first.last_updated)
    second = await presence.set_status(
        repo,
        employee.id,
        "remote",
        None,
        Location("Home", 35.68, 139.76),
        now=T0 + timedelta(minutes=5),
    )

    assert _status_rows(db, employee.id) == 1
    assert second.id == first.id
    assert second.status == "remote"
    assert second.comment is None
    assert second.location == "Home"
    assert second.latitude == pytest.approx(35.68)
    assert as_utc(second.last_updated) >= first_updated


async def test_comment_limit_is_twenty_characters(presence, repo, employee):
    row = await presence.set_status(repo, employee.id, "remote", "x" * 20)
    assert row.comment == "x" * 20

    with pytest.raises(ValidationError, match="comment"):
        await presence.set_status(repo, employee.id, "remote", "x" * 21)


async def test_comment_counts_utf16_units(presence, repo, employee):
    # each emoji outside the BMP is two UTF-16 code units
    assert comment_length("😀" * 10) == 20
    row = await presence.set_status(repo, employee.id, "remote", "😀" * 10)
    assert row.comment == "😀" * 10
    with pytest.raises(ValidationError, match="comment"):
        await presence.set_status(repo, employee.id, "remote", "😀" * 10 + "a")


async def test_japanese_comment_within_limit(presence, repo, employee):
    row = await presence.set_status(repo, employee.id, "remote", "会議中のため返信遅れます")
    assert row.comment == "会議中のため返信遅れます"


async def test_unknown_status_rejected_before_write(presence, repo, db, employee, hub, socket_factory):
    sock = socket_factory()
    await hub.subscribe(sock)

    with pytest.raises(ValidationError):
        await presence.set_status(repo, employee.id, "absent")

    assert _status_rows(db, employee.id) == 0
    assert sock.sent == []


async def test_self_report_profile_has_its_own_vocabulary(hub, repo, employee):
    engine = PresenceEngine(hub, SELF_REPORT_PROFILE)
    row = await engine.set_status(repo, employee.id, "absent", "体調不良")
    assert row.status == "absent"

    with pytest.raises(ValidationError):
        await engine.set_status(repo, employee.id, "direct-commute")


async def test_unknown_employee(presence, repo):
    with pytest.raises(NotFoundError):
        await presence.set_status(repo, 9999, "on-site")


async def test_status_update_is_broadcast(presence, repo, employee, hub, socket_factory):
    sock = socket_factory()
    await hub.subscribe(sock)

    await presence.set_status(repo, employee.id, "remote", "wfh")

    assert len(sock.sent) == 1
    message = json.loads(sock.sent[0])
    assert message["type"] == "STATUS_UPDATE"
    assert message["data"]["employeeId"] == employee.id
    assert message["data"]["status"]["status"] == "remote"


async def test_storage_failure_publishes_nothing(presence, repo, employee, hub, socket_factory, monkeypatch):
    sock = socket_factory()
    await hub.subscribe(sock)

    def boom(*args, **kwargs):
        raise StorageError("Failed to update employee status")

    monkeypatch.setattr(repo, "upsert_employee_status", boom)

    with pytest.raises(StorageError):
        await presence.set_status(repo, employee.id, "on-site")
    assert sock.sent == []


async def test_get_status_without_row(presence, repo, employee):
    with pytest.raises(NotFoundError):
        presence.get_status(repo, employee.id)


async def test_get_all_statuses(presence, repo, make_employee):
    a, b, _ = make_employee(), make_employee(), make_employee()
    await presence.set_status(repo, a.id, "on-site")
    await presence.set_status(repo, b.id, "remote")

    rows = presence.get_all_statuses(repo)

    assert [(r.employee_id, r.status) for r in rows] == [(a.id, "on-site"), (b.id, "remote")]
