import os
import time
import tempfile
from datetime import date, timedelta
from pathlib import Path

from sqlalchemy.orm import sessionmaker

import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from pocketledger import balances, database, mutator, store
from pocketledger.models import TxType
from pocketledger.periods import Period


def build_session(n_days: int, events_per_day: int):
    db_fd, db_path = tempfile.mkstemp()
    os.close(db_fd)
    engine = database.make_engine(f"sqlite:///{db_path}")
    database.Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    store.add_methods(session, ["Cash", "Bank"])
    start = date(2022, 1, 1)
    for day in range(n_days):
        for ev in range(events_per_day):
            kind = TxType.INCOME if ev == 0 else TxType.EXPENSE
            store.insert_transaction(
                session,
                start + timedelta(days=day),
                f"T{day}-{ev}",
                "Bank" if ev % 2 else "Cash",
                None,
                100 + ev,
                kind,
                [],
            )
    session.commit()
    return session, Path(db_path)


def timed(label, fn, *args):
    start = time.perf_counter()
    result = fn(*args)
    print(f"{label}: {time.perf_counter() - start:.4f}s")
    return result


def run():
    session, path = build_session(730, 3)
    try:
        timed("rebuild_all", balances.rebuild_all, session)
        session.commit()
        timed("reconstruct month", balances.reconstruct, session, Period.monthly(2023, 6))
        timed("replay_forward from 2022-02", balances.replay_forward, session, 2022, 2)
        fields = mutator.TxFields(
            date="2022-03-15", from_method="Cash", amount="12.50", tx_type="e"
        )
        timed("backdated add", mutator.add_transaction, session, fields)
        print(f"{len(balances.find_inconsistencies(session))} inconsistent snapshot(s)")
    finally:
        session.close()
        path.unlink()


if __name__ == "__main__":
    run()
