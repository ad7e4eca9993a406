"""String tables consumed by the terminal UI."""
from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from . import store
from .balances import Reconstruction, tx_deltas
from .models import Transaction, TxType
from .money import format_cents

TX_HEADER = ["Date", "Details", "TX Method", "Amount", "TX Type", "Tags"]


def method_label(txn: Transaction) -> str:
    if txn.kind is TxType.TRANSFER:
        return f"{txn.from_method.name} → {txn.to_method.name}"
    return txn.from_method.name


def transaction_rows(txs: Iterable[Transaction]) -> list[list[str]]:
    return [
        [
            txn.date.isoformat(),
            txn.details or "",
            method_label(txn),
            format_cents(txn.cents),
            txn.kind.value,
            ", ".join(txn.tag_names),
        ]
        for txn in txs
    ]


def format_change(cents: int) -> str:
    if cents > 0:
        return f"↑{format_cents(cents)}"
    if cents < 0:
        return f"↓{format_cents(-cents)}"
    return "0.00"


def _with_total(label: str, values: list[int], fmt=format_cents) -> list[str]:
    return [label] + [fmt(v) for v in values] + [fmt(sum(values))]


def balance_rows(
    session: Session, reconstruction: Reconstruction, index: Optional[int] = None
) -> list[list[str]]:
    """Balance panel for the viewed period.

    With ``index`` the Balance and Changes rows describe the state right after
    that transaction; without it Balance shows the absolute final balance.
    """
    methods = store.get_methods(session)
    ids = [m.id for m in methods]

    if index is None:
        final = store.final_balance_rows(session)
        balance = [final.get(i, 0) for i in ids]
        changes = [0] * len(ids)
        selected_day = None
    else:
        row = reconstruction.rows[index]
        balance = [row.balances.get(i, 0) for i in ids]
        deltas = tx_deltas(row.tx)
        changes = [deltas.get(i, 0) for i in ids]
        selected_day = row.tx.date

    income = dict.fromkeys(ids, 0)
    expense = dict.fromkeys(ids, 0)
    daily_income = dict.fromkeys(ids, 0)
    daily_expense = dict.fromkeys(ids, 0)
    for txn in reconstruction.txs:
        kind = txn.kind
        if kind is TxType.TRANSFER:
            continue
        target = income if kind is TxType.INCOME else expense
        target[txn.from_method_id] += txn.cents
        if txn.date == selected_day:
            daily = daily_income if kind is TxType.INCOME else daily_expense
            daily[txn.from_method_id] += txn.cents

    return [
        [""] + [m.name for m in methods] + ["Total"],
        _with_total("Balance", balance),
        _with_total("Changes", changes, format_change),
        _with_total("Income", [income[i] for i in ids]),
        _with_total("Expense", [expense[i] for i in ids]),
        _with_total("Daily Income", [daily_income[i] for i in ids]),
        _with_total("Daily Expense", [daily_expense[i] for i in ids]),
    ]
