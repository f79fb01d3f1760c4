from __future__ import annotations

import logging

from presence_board.core.config import settings
from presence_board.core.security import hash_password
from presence_board.db.repository import Repository

SEED_DEPARTMENTS = [
    ("Sales", "営業部", "briefcase"),
    ("Engineering", "開発部", "code"),
    ("Administration", "総務部", "building"),
]

SEED_EMPLOYEES = [
    # email, first, last, first_ja, last_ja, position, position_ja, department name
    ("taro.yamada@example.com", "Taro", "Yamada", "太郎", "山田", "Manager", "部長", "Sales"),
    ("hanako.sato@example.com", "Hanako", "Sato", "花子", "佐藤", "Engineer", "エンジニア", "Engineering"),
    ("ken.suzuki@example.com", "Ken", "Suzuki", "健", "鈴木", "Engineer", "エンジニア", "Engineering"),
    ("yui.tanaka@example.com", "Yui", "Tanaka", "結衣", "田中", "Clerk", "事務", "Administration"),
]


def bootstrap_admin(repo: Repository) -> None:
    if not settings.bootstrap_admin_username or not settings.bootstrap_admin_password:
        return
    if repo.has_users():
        return

    repo.create_user(
        username=settings.bootstrap_admin_username,
        password_hash=hash_password(settings.bootstrap_admin_password),
        role="admin",
        full_name="Administrator",
        is_active=True,
    )
    logging.getLogger("uvicorn.error").info("Bootstrapped admin user %s", settings.bootstrap_admin_username)


def seed_directory(repo: Repository) -> dict[str, int]:
    """Idempotent demo departments and employees, keyed by name / email."""
    departments = {d.name: d for d in repo.get_departments()}
    departments_created = 0
    for name, name_ja, icon in SEED_DEPARTMENTS:
        if name in departments:
            continue
        departments[name] = repo.create_department(name=name, name_ja=name_ja, icon=icon)
        departments_created += 1

    employees_created = 0
    for email, first, last, first_ja, last_ja, position, position_ja, dept in SEED_EMPLOYEES:
        if repo.get_employee_by_email(email):
            continue
        repo.create_employee(
            first_name=first,
            last_name=last,
            first_name_ja=first_ja,
            last_name_ja=last_ja,
            email=email,
            position=position,
            position_ja=position_ja,
            department_id=departments[dept].id,
            is_active=True,
        )
        employees_created += 1

    return {"departmentsCreated": departments_created, "employeesCreated": employees_created}
