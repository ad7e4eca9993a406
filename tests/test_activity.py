from datetime import date, datetime

from tests.helpers import fields, get_temp_session, with_methods
from pocketledger import mutator
from pocketledger.activity import ActivityType, get_activities
from pocketledger.models import Activity, TxType
from pocketledger.periods import Period


def test_search_is_recorded_with_its_filters():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-07-19", "Cash", "10", "e", details="Tea"))
        mutator.add_transaction(session, fields("2022-07-20", "Cash", "90", "e", details="Rent"))

        found = mutator.search_transactions(
            session, period=Period.monthly(2022, 7), amount=5000, amount_op=">", tx_type=TxType.EXPENSE
        )
        assert [t.details for t in found] == ["Rent"]

        search = session.query(Activity).filter_by(activity_type="SearchTX").one()
        (entry,) = search.txs
        assert entry.date == "July 2022"
        assert (entry.amount, entry.amount_type, entry.tx_type) == (5000, ">", "Expense")
        assert entry.details is None

        found = mutator.search_transactions(session, on_date=date(2022, 7, 19))
        assert [t.details for t in found] == ["Tea"]
    finally:
        session.close()
        path.unlink()


def test_get_activities_returns_month_newest_first():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        txn = mutator.add_transaction(session, fields("2022-07-19", "Cash", "10", "i"))
        mutator.delete_transaction(session, txn.id)
        older = Activity(activity_type="NewTX", created_at=datetime(2021, 5, 1))
        session.add(older)
        session.commit()

        now = datetime.now()
        recent = get_activities(session, now.year, now.month)
        assert [a.activity_type for a in recent] == ["DeleteTX", "NewTX"]
        assert [a.activity_type for a in get_activities(session, 2021, 5)] == ["NewTX"]
        assert ActivityType.ID_NUM_SWAP.describe(2) == "Swapped the position of 2 transactions"
    finally:
        session.close()
        path.unlink()
