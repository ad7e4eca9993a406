from datetime import date

import pytest

from tests.helpers import get_temp_session, with_methods
from pocketledger import store
from pocketledger.errors import CorruptDataError, NotFoundError, PersistenceError, ValidationError
from pocketledger.models import Balance, Transaction, TxType, tx_tags
from pocketledger.periods import Period


def test_add_methods_creates_final_balance_rows():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session, "Cash", "Bank")
        assert store.method_names(session) == ["Cash", "Bank"]
        assert store.get_absolute_final_balance(session) == {"Cash": 0, "Bank": 0}
        rows = session.query(Balance).filter(Balance.is_final_balance.is_(True)).all()
        assert {(r.year, r.month) for r in rows} == {(0, 0)}
    finally:
        session.close()
        path.unlink()


def test_add_methods_rejects_duplicates_and_empty_names():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session, "Cash")
        with pytest.raises(ValidationError):
            store.add_methods(session, ["cash"])
        session.rollback()
        with pytest.raises(ValidationError):
            store.add_methods(session, ["  "])
    finally:
        session.close()
        path.unlink()


def test_rename_and_reposition_methods():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session, "Cash", "Bank", "Card")
        store.rename_method(session, "Card", "Credit")
        store.reposition_methods(session, ["Credit", "Cash", "Bank"])
        session.commit()
        assert store.method_names(session) == ["Credit", "Cash", "Bank"]
        with pytest.raises(ValidationError):
            store.rename_method(session, "Cash", "bank")
        with pytest.raises(ValidationError):
            store.reposition_methods(session, ["Cash", "Bank"])
    finally:
        session.close()
        path.unlink()


def test_insert_defaults_tag_and_orders_by_date_then_id():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        later = store.insert_transaction(
            session, date(2022, 7, 20), "later", "Cash", None, 500, TxType.EXPENSE, []
        )
        first = store.insert_transaction(
            session, date(2022, 7, 19), "first", "Cash", None, 1000, TxType.INCOME, ["Salary"]
        )
        second = store.insert_transaction(
            session, date(2022, 7, 20), "second", "Bank", None, 200, TxType.EXPENSE, []
        )
        session.commit()

        txs = store.query_transactions(session, Period.monthly(2022, 7))
        assert [t.id for t in txs] == [first.id, later.id, second.id]
        assert later.tag_names == ["Unknown"]
        assert first.tag_names == ["Salary"]
        assert store.query_transactions(session, Period.monthly(2022, 8)) == []
        assert len(store.query_transactions(session, Period.all())) == 3
    finally:
        session.close()
        path.unlink()


def test_display_order_puts_ordered_rows_first_within_a_day():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        a = store.insert_transaction(session, date(2022, 3, 1), "a", "Cash", None, 1, TxType.INCOME, [])
        b = store.insert_transaction(
            session, date(2022, 3, 1), "b", "Cash", None, 1, TxType.INCOME, [], display_order=1
        )
        session.commit()
        assert [t.id for t in store.transactions_on(session, date(2022, 3, 1))] == [b.id, a.id]
    finally:
        session.close()
        path.unlink()


def test_transfer_requires_to_method():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        with pytest.raises(PersistenceError):
            store.insert_transaction(
                session, date(2022, 1, 1), None, "Cash", None, 100, TxType.TRANSFER, []
            )
        with pytest.raises(PersistenceError):
            store.insert_transaction(
                session, date(2022, 1, 1), None, "Cash", "Bank", 100, TxType.INCOME, []
            )
        with pytest.raises(PersistenceError):
            store.insert_transaction(
                session, date(2022, 1, 1), None, "Wallet", None, 100, TxType.INCOME, []
            )
    finally:
        session.close()
        path.unlink()


def test_delete_removes_row_and_tag_links():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        txn = store.insert_transaction(
            session, date(2022, 1, 1), None, "Cash", None, 100, TxType.INCOME, ["A", "B"]
        )
        session.commit()
        store.delete_transaction(session, txn.id)
        session.commit()
        assert session.query(Transaction).count() == 0
        assert session.execute(tx_tags.select()).fetchall() == []
        with pytest.raises(NotFoundError):
            store.delete_transaction(session, txn.id)
    finally:
        session.close()
        path.unlink()


def test_snapshot_cells_are_optional():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        cash = store.get_method(session, "Cash")
        assert store.get_balance_snapshot(session, 2022, 5) == {"Cash": None, "Bank": None}
        store.update_balance_snapshot(session, 2022, 5, {cash.id: 0})
        store.update_balance_snapshot(session, 2022, 6, {cash.id: 250})
        session.commit()
        assert store.get_balance_snapshot(session, 2022, 5) == {"Cash": 0, "Bank": None}
        store.update_balance_snapshot(session, 2022, 6, {cash.id: 300})
        assert store.snapshot_rows(session, 2022, 6) == {cash.id: 300}
        assert store.last_snapshot_month(session) == (2022, 6)
    finally:
        session.close()
        path.unlink()


def test_search_filters_combine():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        store.insert_transaction(
            session, date(2022, 2, 1), "Coffee beans", "Cash", None, 1200, TxType.EXPENSE, ["Food"]
        )
        store.insert_transaction(
            session, date(2022, 2, 3), "Rent", "Bank", None, 90000, TxType.EXPENSE, ["Home"]
        )
        store.insert_transaction(
            session, date(2022, 3, 1), "Move", "Bank", "Cash", 5000, TxType.TRANSFER, []
        )
        session.commit()

        assert [t.details for t in store.search_transactions(session, details="coffee")] == [
            "Coffee beans"
        ]
        big = store.search_transactions(session, amount=5000, amount_op=">=")
        assert [t.details for t in big] == ["Rent", "Move"]
        feb = store.search_transactions(session, period=Period.monthly(2022, 2), from_method="Bank")
        assert [t.details for t in feb] == ["Rent"]
        assert [t.details for t in store.search_transactions(session, to_method="Cash")] == ["Move"]
        assert [t.details for t in store.search_transactions(session, tags=["Home", "Food"])] == [
            "Coffee beans",
            "Rent",
        ]
        transfers = store.search_transactions(session, tx_type=TxType.TRANSFER)
        assert len(transfers) == 1
        with pytest.raises(ValueError):
            store.search_transactions(session, amount=1, amount_op="~")
    finally:
        session.close()
        path.unlink()


def test_corrupt_stored_values_raise_typed_error():
    Session, path = get_temp_session()
    session = Session()
    try:
        with_methods(session)
        txn = store.insert_transaction(
            session, date(2022, 1, 1), None, "Cash", None, 100, TxType.INCOME, []
        )
        session.commit()
        txn.tx_type = "Borrow"
        with pytest.raises(CorruptDataError):
            txn.kind
        txn.amount = "12,5"
        with pytest.raises(CorruptDataError):
            txn.cents
    finally:
        session.close()
        path.unlink()
