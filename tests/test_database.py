import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from tests import helpers  # ensures project root on path
from pocketledger import database
from pocketledger.errors import PersistenceError


def test_init_db_adds_display_order(tmp_path, monkeypatch):
    # create an older database whose txs table predates display_order
    db_path = tmp_path / "older.db"
    engine = create_engine(f"sqlite:///{db_path}")
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE txs (id INTEGER PRIMARY KEY, date DATE NOT NULL, details TEXT,"
                " from_method INTEGER NOT NULL, to_method INTEGER, amount BIGINT NOT NULL,"
                " tx_type VARCHAR NOT NULL)"
            )
        )

    # patch database engine to use the older DB and run init_db
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", sessionmaker())
    database.init_db()

    with engine.connect() as conn:
        cols = [row[1] for row in conn.execute(text("PRAGMA table_info(txs)"))]
        tables = {row[0] for row in conn.execute(text("SELECT name FROM sqlite_master"))}
    assert "display_order" in cols
    assert {"balances", "activities", "tx_methods"} <= tables


def test_atomic_rolls_back_and_wraps_store_errors():
    Session, path = helpers.get_temp_session()
    session = Session()
    try:
        helpers.with_methods(session, "Cash")
        with pytest.raises(PersistenceError):
            with database.atomic(session):
                session.execute(text("INSERT INTO tags (name) VALUES ('Food')"))
                session.execute(text("INSERT INTO tags (name) VALUES ('Food')"))
        assert session.execute(text("SELECT count(*) FROM tags")).scalar() == 0

        with pytest.raises(KeyError):
            with database.atomic(session):
                session.execute(text("INSERT INTO tags (name) VALUES ('Rent')"))
                raise KeyError("boom")
        assert session.execute(text("SELECT count(*) FROM tags")).scalar() == 0
    finally:
        session.close()
        path.unlink()


def test_foreign_keys_are_enforced():
    Session, path = helpers.get_temp_session()
    session = Session()
    try:
        with pytest.raises(IntegrityError):
            session.execute(
                text(
                    "INSERT INTO balances (method_id, year, month, balance, is_final_balance)"
                    " VALUES (99, 2022, 1, 0, 0)"
                )
            )
            session.flush()
        session.rollback()
    finally:
        session.close()
        path.unlink()
