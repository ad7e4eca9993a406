from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings
from .errors import PersistenceError
from .logging_setup import get_logger

log = get_logger(__name__)


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def make_engine(url: str):
    eng = create_engine(url, echo=False, future=True)
    if url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


engine = make_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

Base = declarative_base()


def init_db() -> None:
    """Create database tables if they do not exist and upgrade older files."""
    from . import models  # noqa: F401

    insp = inspect(engine)
    required = {
        "tx_methods",
        "tags",
        "txs",
        "tx_tags",
        "balances",
        "activities",
        "activity_txs",
    }
    existing = set(insp.get_table_names())
    if not required.issubset(existing):
        Base.metadata.create_all(engine)

    SessionLocal.configure(bind=engine)

    with engine.begin() as conn:
        cols = [r[1] for r in conn.execute(text("PRAGMA table_info(txs)"))]
        if "display_order" not in cols:
            log.info("adding txs.display_order column")
            conn.execute(
                text("ALTER TABLE txs ADD COLUMN display_order INTEGER NOT NULL DEFAULT 0")
            )
        conn.execute(text("CREATE INDEX IF NOT EXISTS ix_txs_date ON txs(date)"))
        conn.execute(
            text(
                "CREATE INDEX IF NOT EXISTS ix_balances_year_month ON balances(year, month)"
            )
        )


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run one logical mutation as a single transaction on ``session``.

    Commits when the block finishes. Any failure rolls back everything written
    inside the block; store errors are re-raised as :class:`PersistenceError`.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        log.error("store write failed, rolled back", exc_info=True)
        raise PersistenceError(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
