"""Totals, shares and period-over-period changes for a month, a year or all time."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from . import store
from .models import TxType
from .money import format_cents
from .periods import FetchNature, Period


@dataclass
class NetSummary:
    total_income: int
    total_expense: int
    income_pct: float
    expense_pct: float
    average_income: Optional[float] = None
    average_expense: Optional[float] = None


@dataclass
class MethodSummary:
    name: str
    income: int
    expense: int
    income_pct: float
    expense_pct: float
    average_income: Optional[float] = None
    average_expense: Optional[float] = None


@dataclass
class LargestMovement:
    kind: TxType
    amount: int = 0
    method: Optional[str] = None
    date: Optional[date] = None


@dataclass
class PeakMovement:
    kind: TxType
    amount: int = 0
    year: Optional[int] = None
    month: Optional[int] = None


@dataclass
class TagSummary:
    name: str
    income: int
    expense: int
    income_pct: float
    expense_pct: float


@dataclass
class Summary:
    period: Period
    net: NetSummary
    methods: list[MethodSummary]
    largest: list[LargestMovement]
    peak: list[PeakMovement]
    tags: list[TagSummary]
    months_checked: int = 0


@dataclass
class DeltaView:
    """Rendered changes against the previous period.

    Every value is a string such as ``"↑12.34"``, or ``None`` when the
    comparison does not apply.
    """

    net_income: Optional[str] = None
    net_expense: Optional[str] = None
    methods: dict[str, tuple[Optional[str], Optional[str]]] = field(default_factory=dict)
    tags: dict[str, tuple[Optional[str], Optional[str]]] = field(default_factory=dict)


def get_percentages(value1: float, value2: float) -> tuple[float, float]:
    """Share of each value in their sum; ``(0, 0)`` when both are zero."""
    if value1 == 0 and value2 == 0:
        return 0.0, 0.0
    total = value1 + value2
    return value1 / total * 100.0, value2 / total * 100.0


def _share(part: int, total: int) -> float:
    return part / total * 100.0 if part and total else 0.0


def previous_period(period: Period) -> Optional[Period]:
    return period.previous()


def aggregate(session: Session, period: Period) -> Summary:
    txs = store.query_transactions(session, period)
    methods = store.get_methods(session)

    total_income = total_expense = 0
    method_income = {m.id: 0 for m in methods}
    method_expense = {m.id: 0 for m in methods}
    tag_income: dict[str, int] = defaultdict(int)
    tag_expense: dict[str, int] = defaultdict(int)
    monthly_income: dict[tuple[int, int], int] = defaultdict(int)
    monthly_expense: dict[tuple[int, int], int] = defaultdict(int)
    months = []
    largest_income = LargestMovement(TxType.INCOME)
    largest_expense = LargestMovement(TxType.EXPENSE)

    for txn in txs:
        month = (txn.date.year, txn.date.month)
        if not months or months[-1] != month:
            months.append(month)
        kind = txn.kind
        amount = txn.cents
        if kind is TxType.INCOME:
            total_income += amount
            method_income[txn.from_method_id] = method_income.get(txn.from_method_id, 0) + amount
            monthly_income[month] += amount
            for name in txn.tag_names:
                tag_income[name] += amount
            if largest_income.amount < amount:
                largest_income = LargestMovement(kind, amount, txn.from_method.name, txn.date)
        elif kind is TxType.EXPENSE:
            total_expense += amount
            method_expense[txn.from_method_id] = method_expense.get(txn.from_method_id, 0) + amount
            monthly_expense[month] += amount
            for name in txn.tag_names:
                tag_expense[name] += amount
            if largest_expense.amount < amount:
                largest_expense = LargestMovement(kind, amount, txn.from_method.name, txn.date)

    months_checked = max(len(months), 1)
    monthly = period.nature is FetchNature.MONTHLY

    def average(total: int) -> Optional[float]:
        if monthly:
            return None
        return total / months_checked if total else 0.0

    income_pct, expense_pct = get_percentages(total_income, total_expense)
    net = NetSummary(
        total_income,
        total_expense,
        income_pct,
        expense_pct,
        average(total_income),
        average(total_expense),
    )

    method_summaries = [
        MethodSummary(
            m.name,
            method_income[m.id],
            method_expense[m.id],
            _share(method_income[m.id], total_income),
            _share(method_expense[m.id], total_expense),
            average(method_income[m.id]),
            average(method_expense[m.id]),
        )
        for m in methods
    ]

    peaks = []
    for kind, per_month in ((TxType.INCOME, monthly_income), (TxType.EXPENSE, monthly_expense)):
        best = PeakMovement(kind)
        for month in months:
            # strict comparison keeps the earliest month on ties
            if per_month.get(month, 0) > best.amount:
                best = PeakMovement(kind, per_month[month], *month)
        peaks.append(best)

    tag_summaries = [
        TagSummary(
            name,
            tag_income.get(name, 0),
            tag_expense.get(name, 0),
            _share(tag_income.get(name, 0), total_income),
            _share(tag_expense.get(name, 0), total_expense),
        )
        for name in sorted(set(tag_income) | set(tag_expense))
    ]

    return Summary(
        period=period,
        net=net,
        methods=method_summaries,
        largest=[largest_income, largest_expense],
        peak=peaks,
        tags=tag_summaries,
        months_checked=len(months),
    )


def format_delta(current: int, previous: int) -> str:
    """Percentage change from ``previous`` to ``current``."""
    if previous == 0:
        return "∞" if current else "0.00"
    change = (current - previous) / previous * 100.0
    if change > 0:
        return f"↑{change:.2f}"
    if change < 0:
        return f"↓{abs(change):.2f}"
    return "0.00"


def diff(
    current: Summary, previous: Optional[Summary], no_mom_yoy: Optional[bool] = None
) -> DeltaView:
    """Compare two summaries metric by metric.

    ``no_mom_yoy`` defaults to True for all-time summaries, where nothing is
    compared. Without a previous summary every metric reads ``"∞"``.
    """
    if no_mom_yoy is None:
        no_mom_yoy = current.period.nature is FetchNature.ALL
    view = DeltaView()
    if no_mom_yoy:
        return view

    if previous is None:
        view.net_income = view.net_expense = "∞"
        view.methods = {m.name: ("∞", "∞") for m in current.methods}
        view.tags = {t.name: ("∞", "∞") for t in current.tags}
        return view

    view.net_income = format_delta(current.net.total_income, previous.net.total_income)
    view.net_expense = format_delta(current.net.total_expense, previous.net.total_expense)
    before_methods = {m.name: m for m in previous.methods}
    for m in current.methods:
        old = before_methods.get(m.name)
        view.methods[m.name] = (
            format_delta(m.income, old.income if old else 0),
            format_delta(m.expense, old.expense if old else 0),
        )
    before_tags = {t.name: t for t in previous.tags}
    for t in current.tags:
        old = before_tags.get(t.name)
        view.tags[t.name] = (
            format_delta(t.income, old.income if old else 0),
            format_delta(t.expense, old.expense if old else 0),
        )
    return view


def summarize(session: Session, period: Period) -> tuple[Summary, DeltaView]:
    """Aggregate ``period`` and diff it against the period before it."""
    current = aggregate(session, period)
    before = previous_period(period)
    previous = aggregate(session, before) if before is not None else None
    return current, diff(current, previous)


# --- row projections -------------------------------------------------------


def _pct(value: float) -> str:
    return f"{value:.2f}"


def _avg(value: Optional[float]) -> str:
    return format_cents(round(value)) if value is not None else ""


def net_rows(summary: Summary, delta: Optional[DeltaView] = None) -> list[list[str]]:
    net = summary.net
    row = ["Net", format_cents(net.total_income), format_cents(net.total_expense)]
    if net.average_income is not None:
        row += [_avg(net.average_income), _avg(net.average_expense)]
    row += [_pct(net.income_pct), _pct(net.expense_pct)]
    if delta is not None and delta.net_income is not None:
        row += [delta.net_income, delta.net_expense]
    return [row]


def method_rows(summary: Summary, delta: Optional[DeltaView] = None) -> list[list[str]]:
    rows = []
    for m in summary.methods:
        row = [m.name, format_cents(m.income), format_cents(m.expense)]
        if m.average_income is not None:
            row += [_avg(m.average_income), _avg(m.average_expense)]
        row += [_pct(m.income_pct), _pct(m.expense_pct)]
        if delta is not None and m.name in delta.methods:
            row += list(delta.methods[m.name])
        rows.append(row)
    return rows


def largest_rows(summary: Summary) -> list[list[str]]:
    rows = []
    for item in summary.largest:
        label = "Largest Earning" if item.kind is TxType.INCOME else "Largest Expense"
        rows.append(
            [
                label,
                item.method or "-",
                format_cents(item.amount),
                item.date.isoformat() if item.date else "-",
            ]
        )
    return rows


def peak_rows(summary: Summary) -> list[list[str]]:
    rows = []
    for item in summary.peak:
        label = "Peak Earning" if item.kind is TxType.INCOME else "Peak Expense"
        when = f"{item.month:02d}-{item.year}" if item.year else "-"
        rows.append([label, format_cents(item.amount), when])
    return rows


def tag_rows(summary: Summary, delta: Optional[DeltaView] = None) -> list[list[str]]:
    rows = []
    for t in summary.tags:
        row = [
            t.name,
            format_cents(t.income),
            format_cents(t.expense),
            _pct(t.income_pct),
            _pct(t.expense_pct),
        ]
        if delta is not None and t.name in delta.tags:
            row += list(delta.tags[t.name])
        rows.append(row)
    return rows
