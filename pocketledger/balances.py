"""Running-balance reconstruction over monthly snapshots."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from . import store
from .logging_setup import get_logger
from .models import Balance, Transaction, TxType
from .periods import FetchNature, Period, add_months, month_end, month_span

log = get_logger(__name__)


def tx_deltas(txn: Transaction) -> dict[int, int]:
    """Signed effect of ``txn`` on each method it touches, keyed by method id."""
    amount = txn.cents
    kind = txn.kind
    if kind is TxType.INCOME:
        return {txn.from_method_id: amount}
    if kind is TxType.EXPENSE:
        return {txn.from_method_id: -amount}
    deltas = {txn.from_method_id: -amount}
    deltas[txn.to_method_id] = deltas.get(txn.to_method_id, 0) + amount
    return deltas


def apply_deltas(balances: dict[int, int], deltas: dict[int, int], sign: int = 1) -> None:
    for method_id, value in deltas.items():
        balances[method_id] = balances.get(method_id, 0) + sign * value


@dataclass
class RunningRow:
    """A transaction together with every method's balance right after it."""

    tx: Transaction
    balances: dict[int, int]


@dataclass
class Reconstruction:
    period: Period
    baseline: dict[int, int]
    rows: list[RunningRow] = field(default_factory=list)
    final: dict[int, int] = field(default_factory=dict)

    @property
    def txs(self) -> list[Transaction]:
        return [r.tx for r in self.rows]


def baseline_before(session: Session, year: int, month: int) -> dict[int, int]:
    """Balance of every method just before ``year``/``month`` starts.

    For each method the most recent stored monthly snapshot strictly before
    the month is used. A method with no earlier snapshot starts at 0.
    """
    method_ids = [m.id for m in store.get_methods(session)]
    baseline = {mid: 0 for mid in method_ids}
    pending = set(method_ids)
    rows = (
        session.query(Balance)
        .filter(
            Balance.is_final_balance.is_(False),
            (Balance.year < year) | ((Balance.year == year) & (Balance.month < month)),
        )
        .order_by(Balance.year.desc(), Balance.month.desc())
    )
    for row in rows.yield_per(200):
        if row.method_id in pending:
            baseline[row.method_id] = row.balance
            pending.discard(row.method_id)
            if not pending:
                break
    return baseline


def _within_data(session: Session, period: Period) -> bool:
    last_tx = store.last_transaction_date(session)
    return last_tx is not None and (period.year, period.month) <= (last_tx.year, last_tx.month)


def reconstruct(session: Session, period: Period, persist: bool = True) -> Reconstruction:
    """Replay ``period`` from its baseline and return per-transaction balances.

    Monthly reconstructions also store the month's ending balance when
    ``persist`` is set and the month is not past the last transaction.
    """
    if period.nature is FetchNature.ALL:
        baseline = {m.id: 0 for m in store.get_methods(session)}
    elif period.nature is FetchNature.YEARLY:
        baseline = baseline_before(session, period.year, 1)
    else:
        baseline = baseline_before(session, period.year, period.month)

    running = dict(baseline)
    result = Reconstruction(period=period, baseline=dict(baseline))
    for txn in store.query_transactions(session, period):
        apply_deltas(running, tx_deltas(txn))
        result.rows.append(RunningRow(txn, dict(running)))
    result.final = running

    if persist and period.nature is FetchNature.MONTHLY and _within_data(session, period):
        store.update_balance_snapshot(session, period.year, period.month, running)
    return result


def latest_month(session: Session) -> Optional[tuple[int, int]]:
    """Latest month holding a transaction or a stored snapshot."""
    candidates = []
    last_tx = store.last_transaction_date(session)
    if last_tx is not None:
        candidates.append((last_tx.year, last_tx.month))
    last_snap = store.last_snapshot_month(session)
    if last_snap is not None:
        candidates.append(last_snap)
    return max(candidates) if candidates else None


def _replay_start(session: Session, year: int, month: int) -> tuple[int, int]:
    """Move the start back over months whose snapshots were never written."""
    row = (
        session.query(Balance.year, Balance.month)
        .filter(
            Balance.is_final_balance.is_(False),
            (Balance.year < year) | ((Balance.year == year) & (Balance.month < month)),
        )
        .order_by(Balance.year.desc(), Balance.month.desc())
        .first()
    )
    if row is None:
        first = store.first_transaction_date(session)
        if first is not None and (first.year, first.month) < (year, month):
            return first.year, first.month
        return year, month
    return add_months(row.year, row.month, 1)


def replay_forward(session: Session, year: int, month: int) -> dict[int, int]:
    """Recompute every monthly snapshot from ``year``/``month`` onwards.

    Returns the balances after the latest replayed month, which equal the
    absolute final balance.
    """
    end = latest_month(session)
    start = _replay_start(session, year, month)
    balances = baseline_before(session, *start)
    if end is None or start > end:
        return balances

    by_month: dict[tuple[int, int], list[Transaction]] = defaultdict(list)
    for txn in store.transactions_between(
        session, date(start[0], start[1], 1), month_end(*end)
    ):
        by_month[(txn.date.year, txn.date.month)].append(txn)

    count = 0
    for y, m in month_span(start, end):
        for txn in by_month.get((y, m), ()):
            apply_deltas(balances, tx_deltas(txn))
        store.update_balance_snapshot(session, y, m, balances)
        count += 1
    log.debug("replayed %d month(s) from %04d-%02d", count, *start)
    return dict(balances)


def trim_trailing_snapshots(session: Session, through: tuple[int, int]) -> None:
    """Drop monthly snapshots past the last transaction once nothing follows ``through``.

    Those months only repeat the last transaction month's ending balance.
    """
    last_snap = store.last_snapshot_month(session)
    if last_snap is None or last_snap > through:
        return
    last_tx = store.last_transaction_date(session)
    store.clear_monthly_snapshots(
        session, after=(last_tx.year, last_tx.month) if last_tx else None
    )


def rebuild_all(session: Session) -> dict[int, int]:
    """Drop every monthly snapshot and rebuild them from the transaction log."""
    store.clear_monthly_snapshots(session)
    first = store.first_transaction_date(session)
    if first is None:
        final = {m.id: 0 for m in store.get_methods(session)}
    else:
        final = replay_forward(session, first.year, first.month)
    store.update_absolute_final_balance(session, final)
    log.info("rebuilt balances from the transaction log")
    return final


@dataclass(frozen=True)
class Inconsistency:
    year: int
    month: int
    method_id: int
    stored: int
    expected: int


def find_inconsistencies(session: Session) -> list[Inconsistency]:
    """Check every stored snapshot against the transaction log.

    The absolute final balance is reported with ``year == month == 0``.
    """
    problems = []
    method_ids = [m.id for m in store.get_methods(session)]
    running = {mid: 0 for mid in method_ids}

    first = store.first_transaction_date(session)
    end = latest_month(session)
    if first is not None and end is not None:
        by_month: dict[tuple[int, int], list[Transaction]] = defaultdict(list)
        for txn in store.query_transactions(session, Period.all()):
            by_month[(txn.date.year, txn.date.month)].append(txn)
        start = min((first.year, first.month), end)
        for y, m in month_span(start, end):
            for txn in by_month.get((y, m), ()):
                apply_deltas(running, tx_deltas(txn))
            for method_id, stored in store.snapshot_rows(session, y, m).items():
                if stored != running.get(method_id, 0):
                    problems.append(
                        Inconsistency(y, m, method_id, stored, running.get(method_id, 0))
                    )

    for method_id, stored in store.final_balance_rows(session).items():
        if stored != running.get(method_id, 0):
            problems.append(Inconsistency(0, 0, method_id, stored, running.get(method_id, 0)))
    return problems
