"""Persistence layer: methods, tags, transactions and balance snapshots.

Every function takes the caller's ``session`` and never commits; grouping
writes into one atomic unit is the job of :func:`pocketledger.database.atomic`.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from .errors import NotFoundError, PersistenceError, ValidationError
from .logging_setup import get_logger
from .models import Balance, Tag, Transaction, TxMethod, TxType
from .periods import Period

log = get_logger(__name__)

DEFAULT_TAG = "Unknown"
FINAL_YEAR = 0
FINAL_MONTH = 0


# --- methods ---------------------------------------------------------------


def get_methods(session: Session) -> list[TxMethod]:
    """All methods in display order."""
    return session.query(TxMethod).order_by(TxMethod.position, TxMethod.id).all()


def method_names(session: Session) -> list[str]:
    return [m.name for m in get_methods(session)]


def get_method(session: Session, name: str) -> TxMethod:
    method = session.query(TxMethod).filter(TxMethod.name == name).one_or_none()
    if method is None:
        raise NotFoundError(f"Unknown method {name!r}")
    return method


def add_methods(session: Session, names: Iterable[str]) -> list[TxMethod]:
    """Create methods after the current last position.

    Each new method also receives its zero absolute-final-balance row.
    """
    existing = {n.lower() for n in method_names(session)}
    last_position = session.query(func.max(TxMethod.position)).scalar() or 0
    created = []
    for raw in names:
        name = raw.strip()
        if not name:
            raise ValidationError("Tx Method", "Method name cannot be empty")
        if name.lower() in existing:
            raise ValidationError("Tx Method", f"Method {name!r} already exists", name)
        last_position += 1
        method = TxMethod(name=name, position=last_position)
        session.add(method)
        session.flush()
        session.add(
            Balance(
                method_id=method.id,
                year=FINAL_YEAR,
                month=FINAL_MONTH,
                balance=0,
                is_final_balance=True,
            )
        )
        existing.add(name.lower())
        created.append(method)
    session.flush()
    return created


def rename_method(session: Session, old_name: str, new_name: str) -> TxMethod:
    method = get_method(session, old_name)
    new_name = new_name.strip()
    if not new_name:
        raise ValidationError("Tx Method", "Method name cannot be empty")
    clash = (
        session.query(TxMethod)
        .filter(func.lower(TxMethod.name) == new_name.lower(), TxMethod.id != method.id)
        .first()
    )
    if clash is not None:
        raise ValidationError("Tx Method", f"Method {new_name!r} already exists", old_name)
    method.name = new_name
    session.flush()
    return method


def reposition_methods(session: Session, ordered_names: list[str]) -> None:
    """Rewrite method positions to follow ``ordered_names``."""
    methods = {m.name: m for m in get_methods(session)}
    if sorted(ordered_names) != sorted(methods):
        raise ValidationError(
            "Tx Method", "New order must list every method exactly once"
        )
    for position, name in enumerate(ordered_names, start=1):
        methods[name].position = position
    session.flush()


# --- tags ------------------------------------------------------------------


def get_tags(session: Session) -> list[Tag]:
    return session.query(Tag).order_by(Tag.name).all()


def get_or_create_tags(session: Session, names: Iterable[str]) -> list[Tag]:
    tags = []
    for name in names:
        tag = session.query(Tag).filter(Tag.name == name).one_or_none()
        if tag is None:
            tag = Tag(name=name)
            session.add(tag)
            session.flush()
        tags.append(tag)
    return tags


# --- transactions ----------------------------------------------------------


def _ordering():
    # Rows with an explicit display order come first within a day.
    return (
        Transaction.date,
        case((Transaction.display_order == 0, 1), else_=0),
        Transaction.display_order,
        Transaction.id,
    )


def insert_transaction(
    session: Session,
    tx_date: date,
    details: Optional[str],
    from_method: str,
    to_method: Optional[str],
    amount: int,
    tx_type: TxType,
    tags: list[str],
    explicit_id: Optional[int] = None,
    display_order: int = 0,
) -> Transaction:
    """Insert one transaction. ``amount`` is in cents.

    ``explicit_id`` is only used when re-inserting an edited transaction.
    """
    try:
        source = get_method(session, from_method)
        target = get_method(session, to_method) if to_method else None
    except NotFoundError as exc:
        raise PersistenceError(str(exc)) from exc
    if (tx_type is TxType.TRANSFER) != (target is not None):
        raise PersistenceError(
            f"{tx_type.value} transaction has an invalid method reference"
        )

    txn = Transaction(
        id=explicit_id,
        date=tx_date,
        details=details or None,
        from_method_id=source.id,
        to_method_id=target.id if target else None,
        amount=amount,
        tx_type=tx_type.value,
        display_order=display_order,
    )
    names = list(dict.fromkeys(tags)) or [DEFAULT_TAG]
    txn.tags = get_or_create_tags(session, names)
    session.add(txn)
    session.flush()
    return txn


def get_transaction(session: Session, tx_id: int) -> Transaction:
    txn = session.get(Transaction, tx_id)
    if txn is None:
        raise NotFoundError(f"Transaction {tx_id} does not exist")
    return txn


def delete_transaction(session: Session, tx_id: int) -> None:
    """Remove the row and its tag links."""
    txn = get_transaction(session, tx_id)
    session.delete(txn)
    session.flush()


def query_transactions(session: Session, period: Period) -> list[Transaction]:
    """Transactions of ``period`` ordered by date, display order then id."""
    query = session.query(Transaction)
    bounds = period.bounds()
    if bounds is not None:
        start, end = bounds
        query = query.filter(Transaction.date >= start, Transaction.date <= end)
    return query.order_by(*_ordering()).all()


def transactions_between(session: Session, start: date, end: date) -> list[Transaction]:
    return (
        session.query(Transaction)
        .filter(Transaction.date >= start, Transaction.date <= end)
        .order_by(*_ordering())
        .all()
    )


def detail_values(session: Session) -> list[str]:
    """Distinct non-empty details, oldest first."""
    rows = (
        session.query(Transaction.details)
        .filter(Transaction.details.isnot(None), Transaction.details != "")
        .group_by(Transaction.details)
        .order_by(func.min(Transaction.id))
    )
    return [r.details for r in rows]


def transactions_on(session: Session, tx_date: date) -> list[Transaction]:
    return transactions_between(session, tx_date, tx_date)


def first_transaction_date(session: Session) -> Optional[date]:
    return session.query(func.min(Transaction.date)).scalar()


def last_transaction_date(session: Session) -> Optional[date]:
    return session.query(func.max(Transaction.date)).scalar()


AMOUNT_FILTERS = {
    "=": lambda col, v: col == v,
    ">": lambda col, v: col > v,
    ">=": lambda col, v: col >= v,
    "<": lambda col, v: col < v,
    "<=": lambda col, v: col <= v,
}


def search_transactions(
    session: Session,
    *,
    period: Optional[Period] = None,
    on_date: Optional[date] = None,
    details: Optional[str] = None,
    from_method: Optional[str] = None,
    to_method: Optional[str] = None,
    amount: Optional[int] = None,
    amount_op: str = "=",
    tx_type: Optional[TxType] = None,
    tags: Optional[list[str]] = None,
) -> list[Transaction]:
    """Filter transactions. Every criterion is optional; tags match any."""
    query = session.query(Transaction)
    if on_date is not None:
        query = query.filter(Transaction.date == on_date)
    elif period is not None and period.bounds() is not None:
        start, end = period.bounds()
        query = query.filter(Transaction.date >= start, Transaction.date <= end)
    if details:
        query = query.filter(Transaction.details.ilike(f"%{details}%"))
    if from_method:
        query = query.filter(Transaction.from_method_id == get_method(session, from_method).id)
    if to_method:
        query = query.filter(Transaction.to_method_id == get_method(session, to_method).id)
    if amount is not None:
        try:
            compare = AMOUNT_FILTERS[amount_op]
        except KeyError as exc:
            raise ValueError(f"Unknown amount comparison {amount_op!r}") from exc
        query = query.filter(compare(Transaction.amount, amount))
    if tx_type is not None:
        query = query.filter(Transaction.tx_type == tx_type.value)
    if tags:
        query = query.filter(or_(*[Transaction.tags.any(Tag.name == t) for t in tags]))
    return query.order_by(*_ordering()).all()


# --- balance snapshots -----------------------------------------------------


def snapshot_rows(session: Session, year: int, month: int) -> dict[int, int]:
    """Present monthly snapshot cells keyed by method id."""
    rows = (
        session.query(Balance)
        .filter(
            Balance.year == year,
            Balance.month == month,
            Balance.is_final_balance.is_(False),
        )
        .all()
    )
    return {r.method_id: r.balance for r in rows}


def get_balance_snapshot(session: Session, year: int, month: int) -> dict[str, Optional[int]]:
    """Ending balance of every method for a month; ``None`` when never computed."""
    cells = snapshot_rows(session, year, month)
    return {m.name: cells.get(m.id) for m in get_methods(session)}


def update_balance_snapshot(
    session: Session, year: int, month: int, balances: dict[int, int]
) -> None:
    """Upsert monthly cells from a method-id keyed mapping."""
    existing = {
        r.method_id: r
        for r in session.query(Balance).filter(
            Balance.year == year,
            Balance.month == month,
            Balance.is_final_balance.is_(False),
        )
    }
    for method_id, value in balances.items():
        row = existing.get(method_id)
        if row is None:
            session.add(
                Balance(
                    method_id=method_id,
                    year=year,
                    month=month,
                    balance=value,
                    is_final_balance=False,
                )
            )
        elif row.balance != value:
            row.balance = value
    session.flush()


def clear_monthly_snapshots(
    session: Session, after: Optional[tuple[int, int]] = None
) -> None:
    """Delete monthly snapshot rows, only those past ``after`` when given."""
    query = session.query(Balance).filter(Balance.is_final_balance.is_(False))
    if after is not None:
        year, month = after
        query = query.filter(
            (Balance.year > year) | ((Balance.year == year) & (Balance.month > month))
        )
    removed = query.delete(synchronize_session="fetch")
    session.flush()
    log.debug("cleared %d monthly snapshot row(s)", removed)


def last_snapshot_month(session: Session) -> Optional[tuple[int, int]]:
    row = (
        session.query(Balance.year, Balance.month)
        .filter(Balance.is_final_balance.is_(False))
        .order_by(Balance.year.desc(), Balance.month.desc())
        .first()
    )
    return (row.year, row.month) if row else None


def final_balance_rows(session: Session) -> dict[int, int]:
    rows = session.query(Balance).filter(Balance.is_final_balance.is_(True)).all()
    return {r.method_id: r.balance for r in rows}


def get_absolute_final_balance(session: Session) -> dict[str, int]:
    cells = final_balance_rows(session)
    return {m.name: cells.get(m.id, 0) for m in get_methods(session)}


def update_absolute_final_balance(session: Session, balances: dict[int, int]) -> None:
    existing = {
        r.method_id: r
        for r in session.query(Balance).filter(Balance.is_final_balance.is_(True))
    }
    for method_id, value in balances.items():
        row = existing.get(method_id)
        if row is None:
            session.add(
                Balance(
                    method_id=method_id,
                    year=FINAL_YEAR,
                    month=FINAL_MONTH,
                    balance=value,
                    is_final_balance=True,
                )
            )
        else:
            row.balance = value
    session.flush()
