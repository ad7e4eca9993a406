"""Create, edit and delete transactions while keeping balances consistent.

Every public function here is one atomic unit: the transaction row, the
monthly snapshots it affects, the absolute final balance and the activity
record are written together or not at all.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from . import balances, store
from .activity import ActivityType, log_activity, log_search, snapshot_tx
from .database import atomic
from .errors import ValidationError
from .logging_setup import get_logger
from .models import Transaction, TxMethod, TxType
from .money import parse_cents
from .periods import Period
from .verifier import (
    DateType,
    Outcome,
    split_tags,
    verify_amount,
    verify_date,
    verify_method,
    verify_tx_type,
)

log = get_logger(__name__)


@dataclass
class TxFields:
    """Raw text of the transaction form."""

    date: str
    from_method: str
    amount: str
    tx_type: str
    details: str = ""
    to_method: str = ""
    tags: str = ""


@dataclass
class ParsedTx:
    date: date
    details: Optional[str]
    from_method: str
    to_method: Optional[str]
    amount: int
    tx_type: TxType
    tags: list[str]


def _check(field: str, result: tuple[str, Outcome], required: bool = True) -> str:
    value, outcome = result
    if outcome.is_error:
        raise ValidationError(field, outcome.message(field).partition(": ")[2], value)
    if outcome is Outcome.NOTHING and required:
        raise ValidationError(field, f"{field} cannot be empty")
    return value


def parse_fields(session: Session, fields: TxFields) -> ParsedTx:
    """Run every form field through the verifier.

    Raises :class:`ValidationError` for the first field that is not accepted,
    carrying the corrected suggestion.
    """
    methods = store.method_names(session)

    date_text = _check("Date", verify_date(fields.date.strip(), DateType.EXACT))
    from_method = _check("Tx Method", verify_method(fields.from_method, methods))
    amount_text = _check("Amount", verify_amount(fields.amount.strip()))
    amount = parse_cents(amount_text)
    if amount <= 0:
        _check("Amount", (amount_text, Outcome.AMOUNT_BELOW_ZERO))
    tx_type = TxType(_check("Tx Type", verify_tx_type(fields.tx_type)))

    to_method = None
    if tx_type is TxType.TRANSFER:
        to_method = _check("Tx Method", verify_method(fields.to_method, methods))
        if to_method == from_method:
            raise ValidationError("Tx Method", "Transfer needs two different methods", "")
    elif fields.to_method.strip():
        raise ValidationError(
            "Tx Method", f"{tx_type.value} transactions take a single method", ""
        )

    return ParsedTx(
        date=date.fromisoformat(date_text),
        details=fields.details.strip() or None,
        from_method=from_method,
        to_method=to_method,
        amount=amount,
        tx_type=tx_type,
        tags=split_tags(fields.tags) or [store.DEFAULT_TAG],
    )


def _insert(session: Session, parsed: ParsedTx, **kwargs) -> Transaction:
    return store.insert_transaction(
        session,
        parsed.date,
        parsed.details,
        parsed.from_method,
        parsed.to_method,
        parsed.amount,
        parsed.tx_type,
        parsed.tags,
        **kwargs,
    )


def _shift_final(session: Session, deltas: dict[int, int], sign: int = 1) -> None:
    final = store.final_balance_rows(session)
    balances.apply_deltas(final, deltas, sign)
    store.update_absolute_final_balance(session, final)


def add_transaction(session: Session, fields: TxFields) -> Transaction:
    parsed = parse_fields(session, fields)
    with atomic(session):
        latest = balances.latest_month(session)
        txn = _insert(session, parsed)
        month = (txn.date.year, txn.date.month)
        replayed = balances.replay_forward(session, *month)
        if latest is not None and month < latest:
            store.update_absolute_final_balance(session, replayed)
        else:
            _shift_final(session, balances.tx_deltas(txn))
        log_activity(session, ActivityType.NEW_TX, txn)
    log.info("added tx %s on %s (%s)", txn.id, txn.date, txn.tx_type)
    return txn


def delete_transaction(session: Session, tx_id: int) -> None:
    with atomic(session):
        txn = store.get_transaction(session, tx_id)
        log_activity(session, ActivityType.DELETE_TX, txn)
        deltas = balances.tx_deltas(txn)
        month = (txn.date.year, txn.date.month)
        store.delete_transaction(session, tx_id)
        _shift_final(session, deltas, -1)
        balances.replay_forward(session, *month)
        balances.trim_trailing_snapshots(session, month)
    log.info("deleted tx %s", tx_id)


def edit_transaction(session: Session, tx_id: int, fields: TxFields) -> Transaction:
    """Replace a transaction's contents, keeping its id.

    The display order survives when the date does not change.
    """
    parsed = parse_fields(session, fields)
    with atomic(session):
        old = store.get_transaction(session, tx_id)
        before = snapshot_tx(old)
        old_date = old.date
        display_order = old.display_order if old_date == parsed.date else 0
        _shift_final(session, balances.tx_deltas(old), -1)
        store.delete_transaction(session, tx_id)

        txn = _insert(session, parsed, explicit_id=tx_id, display_order=display_order)
        _shift_final(session, balances.tx_deltas(txn))
        months = [(old_date.year, old_date.month), (txn.date.year, txn.date.month)]
        balances.replay_forward(session, *min(months))
        balances.trim_trailing_snapshots(session, max(months))
        log_activity(session, ActivityType.EDIT_TX, before, txn)
    log.info("edited tx %s", tx_id)
    return txn


def switch_position(session: Session, id_a: int, id_b: int) -> bool:
    """Swap the order of two transactions on the same day.

    Returns False without changing anything when the dates differ.
    """
    with atomic(session):
        first = store.get_transaction(session, id_a)
        second = store.get_transaction(session, id_b)
        if first.date != second.date or first.id == second.id:
            return False
        day = store.transactions_on(session, first.date)
        for position, txn in enumerate(day, start=1):
            txn.display_order = position
        first.display_order, second.display_order = (
            second.display_order,
            first.display_order,
        )
        session.flush()
        log_activity(session, ActivityType.ID_NUM_SWAP, first, second)
    log.debug("swapped tx %s and %s", id_a, id_b)
    return True


def search_transactions(session: Session, **filters) -> list[Transaction]:
    """Search and record the search in the activity log."""
    with atomic(session):
        found = store.search_transactions(session, **filters)
        recorded = dict(filters)
        period: Optional[Period] = recorded.pop("period", None)
        on_date = recorded.pop("on_date", None)
        if on_date is not None:
            recorded["date"] = on_date.isoformat()
        elif period is not None:
            recorded["date"] = period.label()
        log_search(session, recorded)
    return found


def add_methods(session: Session, names: list[str]) -> list[TxMethod]:
    with atomic(session):
        created = store.add_methods(session, names)
    log.info("added method(s) %s", ", ".join(m.name for m in created))
    return created


def rename_method(session: Session, old_name: str, new_name: str) -> TxMethod:
    with atomic(session):
        method = store.rename_method(session, old_name, new_name)
    log.info("renamed method %r to %r", old_name, method.name)
    return method


def reposition_methods(session: Session, ordered_names: list[str]) -> None:
    with atomic(session):
        store.reposition_methods(session, ordered_names)
    log.info("reordered methods: %s", ", ".join(ordered_names))


def rebuild_balances(session: Session) -> dict[int, int]:
    with atomic(session):
        return balances.rebuild_all(session)
