import os
import sys
import tempfile
from pathlib import Path

from sqlalchemy.orm import sessionmaker

# Ensure the project root is on the Python path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from pocketledger import database, models  # noqa: F401,E402
from pocketledger import store  # noqa: E402
from pocketledger.mutator import TxFields  # noqa: E402


def get_temp_session():
    db_fd, db_path = tempfile.mkstemp()
    os.close(db_fd)
    engine = database.make_engine(f"sqlite:///{db_path}")
    TestingSession = sessionmaker(bind=engine)
    database.Base.metadata.create_all(engine)
    return TestingSession, Path(db_path)


def with_methods(session, *names):
    store.add_methods(session, list(names) or ["Cash", "Bank"])
    session.commit()


def fields(date, method, amount, tx_type, **kwargs):
    return TxFields(date=date, from_method=method, amount=amount, tx_type=tx_type, **kwargs)


def make_prompt(responses):
    iterator = iter(responses)

    def _prompt(*args, **kwargs):
        return next(iterator)

    return _prompt
