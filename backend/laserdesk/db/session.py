import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from laserdesk import config

logger = logging.getLogger(__name__)

_engine = None


def build_engine(url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # request handlers and side jobs run on worker threads
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, connect_args=connect_args)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine(config.DATABASE_URL)
        logger.info("Database engine created for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def set_engine(engine: Engine) -> None:
    """Swap the process-wide engine (used by the seed command and tests)."""
    global _engine
    _engine = engine


def init_db(engine: Engine = None) -> None:
    # table classes must be imported before create_all
    from laserdesk.models import order, rules  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())


def get_session() -> Session:
    return Session(get_engine(), expire_on_commit=False)
