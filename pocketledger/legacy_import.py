"""One-time import of the older single-file ledger format.

The legacy file keeps transactions in ``tx_all`` with amounts stored as text
and transfers encoded as ``"A to B"``, and one ``balance_all`` column per
method. Balances are not copied; they are rebuilt from the imported rows.
"""
from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path

from sqlalchemy.orm import Session

from . import balances, store
from .database import atomic
from .errors import CorruptDataError, LedgerError
from .logging_setup import get_logger
from .models import TxType
from .money import parse_cents
from .verifier import split_tags

log = get_logger(__name__)

REQUIRED_TX_COLUMNS = {"date", "details", "tx_method", "amount", "tx_type", "id_num"}


def _connect_readonly(path: Path) -> sqlite3.Connection:
    uri = f"file:{path.resolve()}?mode=ro"
    con = sqlite3.connect(uri, uri=True)
    con.row_factory = sqlite3.Row
    return con


def _columns(con: sqlite3.Connection, table: str) -> list[str]:
    return [row["name"] for row in con.execute(f"pragma table_info({table})")]


def _require_legacy_schema(con: sqlite3.Connection) -> None:
    tables = {
        r[0]
        for r in con.execute(
            "select name from sqlite_master where type='table' and name not like 'sqlite_%'"
        )
    }
    missing = {"tx_all", "balance_all"} - tables
    if missing:
        raise CorruptDataError(f"Legacy DB missing tables: {', '.join(sorted(missing))}")
    missing_cols = REQUIRED_TX_COLUMNS - set(_columns(con, "tx_all"))
    if missing_cols:
        raise CorruptDataError(
            f"Legacy DB table 'tx_all' missing columns: {', '.join(sorted(missing_cols))}"
        )


def legacy_methods(con: sqlite3.Connection) -> list[str]:
    return [c for c in _columns(con, "balance_all") if c != "id_num"]


def split_transfer(value: str, methods: list[str]) -> tuple[str, str]:
    """Split ``"A to B"`` using the known method names."""
    for name in methods:
        prefix = f"{name} to "
        if value.startswith(prefix) and value[len(prefix):] in methods:
            return name, value[len(prefix):]
    raise CorruptDataError(f"Cannot read transfer methods {value!r}")


def _parse_row(row: sqlite3.Row, methods: list[str], has_tags: bool) -> dict:
    ident = row["id_num"]
    try:
        tx_type = TxType(str(row["tx_type"]).strip())
    except ValueError as exc:
        raise CorruptDataError(f"Legacy tx {ident} has unknown type {row['tx_type']!r}") from exc
    try:
        tx_date = date.fromisoformat(str(row["date"]).strip())
    except ValueError as exc:
        raise CorruptDataError(f"Legacy tx {ident} has invalid date {row['date']!r}") from exc
    try:
        amount = parse_cents(row["amount"])
    except ValueError as exc:
        raise CorruptDataError(f"Legacy tx {ident} has invalid amount {row['amount']!r}") from exc
    if amount <= 0:
        raise CorruptDataError(f"Legacy tx {ident} has non-positive amount {row['amount']!r}")

    method_text = str(row["tx_method"]).strip()
    if tx_type is TxType.TRANSFER:
        from_method, to_method = split_transfer(method_text, methods)
    elif method_text in methods:
        from_method, to_method = method_text, None
    else:
        raise CorruptDataError(f"Legacy tx {ident} uses unknown method {method_text!r}")

    return {
        "tx_date": tx_date,
        "details": row["details"],
        "from_method": from_method,
        "to_method": to_method,
        "amount": amount,
        "tx_type": tx_type,
        "tags": split_tags(row["tags"] or "") if has_tags else [],
        "explicit_id": int(ident),
    }


def import_legacy(session: Session, path: Path) -> int:
    """Import every legacy transaction and rebuild balances.

    Returns the number of imported transactions. Nothing is written when any
    row is unreadable.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    if store.first_transaction_date(session) is not None:
        raise LedgerError("Legacy data can only be imported into an empty ledger")

    con = _connect_readonly(path)
    try:
        _require_legacy_schema(con)
        methods = legacy_methods(con)
        has_tags = "tags" in _columns(con, "tx_all")
        rows = [
            _parse_row(r, methods, has_tags)
            for r in con.execute("select * from tx_all order by date, id_num")
        ]
    finally:
        con.close()

    with atomic(session):
        known = {n.lower() for n in store.method_names(session)}
        store.add_methods(session, [m for m in methods if m.lower() not in known])
        for values in rows:
            store.insert_transaction(session, **values)
        balances.rebuild_all(session)
    log.info("imported %d legacy transaction(s) from %s", len(rows), path)
    return len(rows)
