from __future__ import annotations

import logging

from sqlalchemy import text

import presence_board.models  # noqa: F401
from presence_board.core.config import settings
from presence_board.db.base import Base
from presence_board.db.repository import Repository
from presence_board.db.session import SessionLocal, engine
from presence_board.services.bootstrap import bootstrap_admin


def configure_logging() -> None:
    logging.getLogger("uvicorn.error").setLevel(settings.log_level)


def on_startup() -> None:
    configure_logging()
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        db.execute(text("select 1"))
        db.commit()
        bootstrap_admin(Repository(db))
    finally:
        db.close()
