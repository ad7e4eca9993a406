from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from tests.helpers import fields, get_temp_session, with_methods
from pocketledger import balances, mutator, store
from pocketledger.activity import ActivityType
from pocketledger.errors import NotFoundError, PersistenceError, ValidationError
from pocketledger.models import Activity, Transaction


def _final(session):
    return store.get_absolute_final_balance(session)


def _all_snapshots(session):
    end = balances.latest_month(session)
    if end is None:
        return {}
    out = {}
    for y in range(2022, end[0] + 1):
        for m in range(1, 13):
            if (y, m) > end:
                break
            out[(y, m)] = store.get_balance_snapshot(session, y, m)
    return out


def test_scenarios_add_add_delete():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session, "Cash", "Bank")

        mutator.add_transaction(session, fields("2022-07-19", "Cash", "100.00", "Income"))
        assert _final(session)["Cash"] == 10000

        expense = mutator.add_transaction(
            session, fields("2022-07-20", "Cash", "40.00", "Expense")
        )
        assert _final(session)["Cash"] == 6000
        assert store.get_balance_snapshot(session, 2022, 7)["Cash"] == 6000

        mutator.delete_transaction(session, expense.id)
        assert _final(session)["Cash"] == 10000
        assert store.get_balance_snapshot(session, 2022, 7)["Cash"] == 10000
        assert balances.find_inconsistencies(session) == []
    finally:
        session.close()
        path.unlink()


def test_add_then_delete_restores_every_snapshot():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-01-05", "Cash", "50", "i"))
        mutator.add_transaction(session, fields("2022-04-05", "Bank", "20", "i"))
        before_snapshots = _all_snapshots(session)
        before_final = _final(session)

        txn = mutator.add_transaction(
            session, fields("2022-02-10", "Cash", "7.5", "t", to_method="Bank")
        )
        assert _final(session) == {"Cash": 4250, "Bank": 2750}
        mutator.delete_transaction(session, txn.id)

        assert _final(session) == before_final
        assert _all_snapshots(session) == before_snapshots
    finally:
        session.close()
        path.unlink()


def test_deleting_the_latest_transaction_forgets_the_months_it_opened():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-01-05", "Cash", "50", "i"))
        before = {m: store.get_balance_snapshot(session, 2022, m) for m in range(1, 6)}
        assert before[5] == {"Cash": None, "Bank": None}

        txn = mutator.add_transaction(session, fields("2022-05-05", "Cash", "20", "i"))
        assert store.get_balance_snapshot(session, 2022, 3)["Cash"] == 5000
        mutator.delete_transaction(session, txn.id)

        assert {m: store.get_balance_snapshot(session, 2022, m) for m in range(1, 6)} == before
        assert balances.latest_month(session) == (2022, 1)
        assert _final(session) == {"Cash": 5000, "Bank": 0}

        # the next add lands after the data again instead of replaying as backdated
        mutator.add_transaction(session, fields("2022-03-01", "Bank", "1", "i"))
        assert store.get_balance_snapshot(session, 2022, 3) == {"Cash": 5000, "Bank": 100}
        assert balances.find_inconsistencies(session) == []
    finally:
        session.close()
        path.unlink()


def test_editing_the_latest_transaction_earlier_drops_its_later_months():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-01-05", "Cash", "50", "i"))
        txn = mutator.add_transaction(session, fields("2022-06-05", "Cash", "20", "e"))
        tx_id = txn.id

        mutator.edit_transaction(session, tx_id, fields("2022-02-05", "Cash", "20", "e"))

        assert balances.latest_month(session) == (2022, 2)
        assert store.get_balance_snapshot(session, 2022, 2)["Cash"] == 3000
        assert store.get_balance_snapshot(session, 2022, 4)["Cash"] is None
        assert balances.find_inconsistencies(session) == []
    finally:
        session.close()
        path.unlink()


def test_backdated_add_replays_later_months():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-05-01", "Cash", "10", "i"))
        mutator.add_transaction(session, fields("2022-08-01", "Cash", "5", "e"))

        mutator.add_transaction(session, fields("2022-03-15", "Cash", "100", "i"))

        assert _final(session)["Cash"] == 10500
        assert store.get_balance_snapshot(session, 2022, 3)["Cash"] == 10000
        assert store.get_balance_snapshot(session, 2022, 6)["Cash"] == 11000
        assert store.get_balance_snapshot(session, 2022, 8)["Cash"] == 10500
        assert balances.find_inconsistencies(session) == []
    finally:
        session.close()
        path.unlink()


def test_edit_keeps_id_and_recomputes_from_earlier_month():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-01-10", "Cash", "10", "i"))
        moved_id = mutator.add_transaction(session, fields("2022-03-10", "Cash", "4", "e")).id
        mutator.add_transaction(session, fields("2022-06-01", "Bank", "1", "i"))

        edited = mutator.edit_transaction(
            session,
            moved_id,
            fields("2022-02-01", "Bank", "6", "Expense", details="Moved", tags="Food, food"),
        )

        assert edited.id == moved_id
        assert edited.details == "Moved"
        assert edited.tag_names == ["Food"]
        assert session.query(Transaction).count() == 3
        assert _final(session) == {"Cash": 1000, "Bank": -500}
        assert store.get_balance_snapshot(session, 2022, 3) == {"Cash": 1000, "Bank": -600}
        assert balances.find_inconsistencies(session) == []
    finally:
        session.close()
        path.unlink()


def test_edit_same_day_keeps_display_order():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        a = mutator.add_transaction(session, fields("2022-01-10", "Cash", "1", "i")).id
        b = mutator.add_transaction(session, fields("2022-01-10", "Cash", "2", "i")).id
        assert mutator.switch_position(session, a, b) is True
        day = [t.id for t in store.transactions_on(session, date(2022, 1, 10))]
        assert day == [b, a]

        mutator.edit_transaction(session, a, fields("2022-01-10", "Cash", "3", "i"))
        day = [t.id for t in store.transactions_on(session, date(2022, 1, 10))]
        assert day == [b, a]
    finally:
        session.close()
        path.unlink()


def test_switch_position_is_a_noop_across_dates():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        a = mutator.add_transaction(session, fields("2022-01-10", "Cash", "1", "i"))
        b = mutator.add_transaction(session, fields("2022-01-11", "Cash", "2", "i"))
        assert mutator.switch_position(session, a.id, b.id) is False
        assert session.get(Transaction, a.id).display_order == 0
        assert session.query(Activity).filter_by(activity_type="IDNumSwap").count() == 0
    finally:
        session.close()
        path.unlink()


def test_validation_error_carries_suggestion_and_writes_nothing():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        with pytest.raises(ValidationError) as exc:
            mutator.add_transaction(session, fields("22-1-5", "Cash", "1", "i"))
        assert exc.value.field == "Date"
        assert exc.value.suggestion == "2022-1-5"

        with pytest.raises(ValidationError) as exc:
            mutator.add_transaction(session, fields("2022-01-05", "Csh", "1", "i"))
        assert exc.value.suggestion == "Cash"

        with pytest.raises(ValidationError):
            mutator.add_transaction(session, fields("2022-01-05", "Cash", "1", "t", to_method="Cash"))
        with pytest.raises(ValidationError):
            mutator.add_transaction(session, fields("2022-01-05", "Cash", "1", "e", to_method="Bank"))
        with pytest.raises(ValidationError):
            mutator.add_transaction(session, fields("2022-01-05", "Cash", "", "e"))

        assert session.query(Transaction).count() == 0
        assert session.query(Activity).count() == 0
    finally:
        session.close()
        path.unlink()


def test_failure_mid_mutation_rolls_back_everything(monkeypatch):
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        mutator.add_transaction(session, fields("2022-01-10", "Cash", "10", "i"))
        before = _final(session)

        def broken_replay(*args, **kwargs):
            raise OperationalError("UPDATE balances", {}, Exception("disk I/O error"))

        monkeypatch.setattr(balances, "replay_forward", broken_replay)
        with pytest.raises(PersistenceError):
            mutator.add_transaction(session, fields("2022-01-11", "Cash", "5", "e"))

        assert session.query(Transaction).count() == 1
        assert _final(session) == before
        assert session.query(Activity).count() == 1
    finally:
        session.close()
        path.unlink()


def test_delete_missing_transaction_raises_not_found():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        with pytest.raises(NotFoundError):
            mutator.delete_transaction(session, 42)
    finally:
        session.close()
        path.unlink()


def test_every_mutation_is_logged():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        a = mutator.add_transaction(session, fields("2022-01-10", "Cash", "10", "i")).id
        b = mutator.add_transaction(session, fields("2022-01-10", "Cash", "2", "e")).id
        mutator.edit_transaction(session, b, fields("2022-01-10", "Cash", "3", "e"))
        mutator.switch_position(session, a, b)
        mutator.delete_transaction(session, a)

        kinds = [act.activity_type for act in session.query(Activity).order_by(Activity.id)]
        assert kinds == [
            ActivityType.NEW_TX.value,
            ActivityType.NEW_TX.value,
            ActivityType.EDIT_TX.value,
            ActivityType.ID_NUM_SWAP.value,
            ActivityType.DELETE_TX.value,
        ]
        edit = session.query(Activity).filter_by(activity_type="EditTX").one()
        assert [t.amount for t in edit.txs] == [200, 300]
    finally:
        session.close()
        path.unlink()


def test_method_wrappers_commit():
    Session, path = get_temp_session()
    session = Session()
    try:
        mutator.add_methods(session, ["Cash", "Bank"])
        mutator.rename_method(session, "Bank", "Savings")
        mutator.reposition_methods(session, ["Savings", "Cash"])
        other = Session()
        assert store.method_names(other) == ["Savings", "Cash"]
        other.close()
    finally:
        session.close()
        path.unlink()
