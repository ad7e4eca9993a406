from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from .models import Activity, ActivityTx, Transaction
from .periods import add_months


class ActivityType(str, Enum):
    NEW_TX = "NewTX"
    EDIT_TX = "EditTX"
    DELETE_TX = "DeleteTX"
    ID_NUM_SWAP = "IDNumSwap"
    SEARCH_TX = "SearchTX"

    def describe(self, count: int) -> str:
        if self is ActivityType.NEW_TX:
            return "Added a transaction"
        if self is ActivityType.EDIT_TX:
            return "Edited a transaction"
        if self is ActivityType.DELETE_TX:
            return "Deleted a transaction"
        if self is ActivityType.ID_NUM_SWAP:
            return f"Swapped the position of {count} transactions"
        return "Searched for transactions"


def snapshot_tx(txn: Transaction) -> ActivityTx:
    """Detached copy of ``txn`` for the activity log."""
    return ActivityTx(
        tx_id=txn.id,
        date=txn.date.isoformat(),
        details=txn.details,
        from_method=txn.from_method.name if txn.from_method else None,
        to_method=txn.to_method.name if txn.to_method else None,
        amount=txn.amount,
        tx_type=txn.tx_type,
        tags=", ".join(txn.tag_names),
        display_order=txn.display_order,
    )


def log_activity(
    session: Session, activity_type: ActivityType, *txs: Union[Transaction, ActivityTx]
) -> Activity:
    """Append an activity with a copy of each affected transaction."""
    activity = Activity(activity_type=activity_type.value, created_at=datetime.now())
    activity.txs = [t if isinstance(t, ActivityTx) else snapshot_tx(t) for t in txs]
    session.add(activity)
    session.flush()
    return activity


def log_search(session: Session, filters: dict) -> Activity:
    """Record a search. Only the filters the user filled in are stored."""
    amount_type: Optional[str] = None
    if filters.get("amount") is not None:
        amount_type = filters.get("amount_op", "=")
    tx_type = filters.get("tx_type")
    entry = ActivityTx(
        date=filters.get("date"),
        details=filters.get("details"),
        from_method=filters.get("from_method"),
        to_method=filters.get("to_method"),
        amount=filters.get("amount"),
        amount_type=amount_type,
        tx_type=tx_type.value if hasattr(tx_type, "value") else tx_type,
        tags=", ".join(filters.get("tags") or []) or None,
    )
    activity = Activity(activity_type=ActivityType.SEARCH_TX.value, created_at=datetime.now())
    activity.txs = [entry]
    session.add(activity)
    session.flush()
    return activity


def get_activities(session: Session, year: int, month: int) -> list[Activity]:
    """Activities recorded during ``year``/``month``, newest first."""
    start = datetime(year, month, 1)
    ny, nm = add_months(year, month, 1)
    end = datetime(ny, nm, 1)
    return (
        session.query(Activity)
        .filter(Activity.created_at >= start, Activity.created_at < end)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .all()
    )
