"""Curses interface for the ledger."""
from __future__ import annotations

import curses
from contextlib import contextmanager
from curses import panel
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from . import balances, mutator, store, views
from .activity import ActivityType, get_activities
from .autofill import apply_tag_completion, autofill_details, autofill_method, autofill_tags
from .database import SessionLocal, atomic, init_db
from .errors import LedgerError, ValidationError
from .logging_setup import get_logger
from .models import Transaction, TxType
from .money import format_cents
from .mutator import TxFields
from .periods import EPOCH_YEAR, FetchNature, Period
from .stepper import step_amount, step_date, step_method, step_tags, step_tx_type
from .summary import largest_rows, method_rows, net_rows, peak_rows, summarize, tag_rows
from .verifier import (
    DateType,
    Outcome,
    verify_amount,
    verify_date,
    verify_method,
    verify_tags,
    verify_tags_forced,
    verify_tx_type,
)

log = get_logger(__name__)

MODES = [
    ("Monthly", FetchNature.MONTHLY),
    ("Yearly", FetchNature.YEARLY),
    ("All time", FetchNature.ALL),
]

# Search date input by number of dashes; EXACT searches a single day.
SEARCH_DATES = [
    (DateType.YEARLY, FetchNature.YEARLY),
    (DateType.MONTHLY, FetchNature.MONTHLY),
    (DateType.EXACT, None),
]

LEDGER_KEYS = {"a": "add", "e": "edit", "d": "delete", "b": "balances", "u": "up", "n": "down"}

_ENTER = (curses.KEY_ENTER, 10, 13)
_BACKSPACE = (curses.KEY_BACKSPACE, 127, 8)
_ESCAPE = 27
_TAB = 9


def _balance_footer() -> str:
    """Total of every method's absolute final balance."""
    with SessionLocal() as s:
        total = sum(store.get_absolute_final_balance(s).values())
    return format_cents(total)


def _put(win, y: int, x: int, line: str, width: int, attr: int = curses.A_NORMAL) -> None:
    """Write at most ``width`` characters, dropping what falls off the window."""
    if width <= 0:
        return
    try:
        win.addnstr(y, x, line, width, attr)
    except curses.error:
        pass


@contextmanager
def input_mode(win, cursor: int = 0):
    """Read keys through the keypad with the cursor set to ``cursor``; both restored."""
    try:
        previous = curses.curs_set(cursor)
    except curses.error:  # pragma: no cover - terminals without cursor control
        previous = None
    win.keypad(True)
    try:
        yield win
    finally:
        win.keypad(False)
        if previous is not None:
            curses.curs_set(previous)


@contextmanager
def popup(stdscr, height: int, width: int, title: str = ""):
    """Bordered window centered over ``stdscr`` on its own panel."""
    rows, cols = stdscr.getmaxyx()
    height, width = min(height, rows), min(width, cols)
    win = curses.newwin(height, width, max(0, (rows - height) // 2), max(0, (cols - width) // 2))
    win.box()
    if title:
        _put(win, 0, 2, f" {title} ", width - 4)
    layer = panel.new_panel(win)
    panel.update_panels()
    try:
        with input_mode(win, cursor=1):
            yield win
    finally:
        layer.hide()
        panel.update_panels()
        curses.doupdate()


def toast(stdscr, msg: str, ms: int = 1400) -> None:
    """Flash ``msg`` on the bottom line."""
    rows, cols = stdscr.getmaxyx()
    _put(stdscr, rows - 1, 0, msg.ljust(cols - 1), cols - 1, curses.A_REVERSE)
    stdscr.refresh()
    curses.napms(ms)


def confirm(stdscr, message: str) -> bool:
    """Yes/no question; ``y`` or Enter confirms."""
    hint = "y/Enter: yes   any other key: no"
    width = max(len(message), len(hint)) + 4
    with popup(stdscr, 4, width) as win:
        _put(win, 1, 2, message, width - 4)
        _put(win, 2, 2, hint, width - 4, curses.A_DIM)
        win.refresh()
        return win.getch() in (ord("y"), ord("Y")) + _ENTER


def ask(
    stdscr,
    label: str,
    value: str = "",
    complete: Optional[Callable[[str], str]] = None,
    step: Optional[Callable[[str, int], tuple[str, Outcome]]] = None,
) -> Optional[str]:
    """Edit one line of text starting from ``value``.

    ``complete`` maps the text to a replacement offered under the input, taken
    with Tab. ``step`` moves the value with the up and down arrows. Returns the
    stripped text on Enter and ``None`` on Escape.
    """
    _, cols = stdscr.getmaxyx()
    width = max(24, min(cols, 64))
    inner = width - 4
    buffer, note = value, ""
    with popup(stdscr, 4, width, label) as win:
        while True:
            offer = complete(buffer) if complete else ""
            _put(win, 1, 2, buffer[-inner:].ljust(inner), inner)
            below = f"Tab: {offer}" if offer else note
            _put(win, 2, 2, below.ljust(inner), inner, curses.A_DIM)
            win.move(1, 2 + min(len(buffer), inner - 1))
            win.refresh()

            key = win.getch()
            if key in _ENTER:
                return buffer.strip()
            if key == _ESCAPE:
                return None
            if key in _BACKSPACE:
                buffer = buffer[:-1]
            elif key == _TAB and offer:
                buffer = offer
            elif key in (curses.KEY_UP, curses.KEY_DOWN) and step is not None:
                buffer, outcome = step(buffer, 1 if key == curses.KEY_UP else -1)
                note = outcome.message(label) if outcome.is_error else ""
            elif 32 <= key < 127:
                buffer += chr(key)


def pick(
    stdscr,
    rows: list[str],
    index: int = 0,
    title: str = "",
    hint: str = "q: back",
    keys: Optional[dict[str, str]] = None,
    total: str = "",
):
    """Full-screen list of ``rows``.

    Returns ``("open", index)`` on Enter, ``(keys[ch], index)`` for a key in
    ``keys`` and ``None`` on ``q`` or Escape. The footer carries ``hint`` on
    the left and ``total`` with the position on the right.
    """
    keys = keys or {}
    with input_mode(stdscr):
        while True:
            height, width = stdscr.getmaxyx()
            body = max(1, height - 2)
            index = min(max(index, 0), max(len(rows) - 1, 0))
            top = min(max(0, index - body // 2), max(0, len(rows) - body))

            stdscr.erase()
            _put(stdscr, 0, 0, title, width - 1, curses.A_BOLD)
            for offset, row in enumerate(rows[top : top + body]):
                attr = curses.A_REVERSE if top + offset == index else curses.A_NORMAL
                _put(stdscr, 1 + offset, 0, row, width - 1, attr)
            right = f"{total}  {index + 1 if rows else 0}/{len(rows)}".strip()
            _put(stdscr, height - 1, 0, hint, width - len(right) - 2)
            _put(stdscr, height - 1, max(0, width - len(right) - 1), right, len(right))
            stdscr.refresh()

            key = stdscr.getch()
            if key == curses.KEY_RESIZE:
                curses.update_lines_cols()
            elif key == curses.KEY_UP:
                index -= 1
            elif key == curses.KEY_DOWN:
                index += 1
            elif key == curses.KEY_PPAGE:
                index -= body
            elif key == curses.KEY_NPAGE:
                index += body
            elif key in _ENTER and rows:
                return "open", index
            elif key in (ord("q"), _ESCAPE):
                return None
            elif 0 <= key < 256 and chr(key) in keys:
                return keys[chr(key)], index


def choose(stdscr, title: str, choices, default=None):
    """Pick one of ``choices``, strings or ``(label, value)`` pairs.

    Returns the chosen value, ``None`` on quit.
    """
    labels = [c[0] if isinstance(c, tuple) else c for c in choices]
    values = [c[1] if isinstance(c, tuple) else c for c in choices]
    start = values.index(default) if default in values else 0
    res = pick(stdscr, labels, start, title, "Enter: select   q: back", total=_balance_footer())
    return None if res is None else values[res[1]]


def table_lines(header: list[str], rows: list[list[str]]) -> list[str]:
    """Render ``rows`` as ``|``-separated lines with aligned columns."""
    widths = [len(h) for h in header]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(cell))
            else:
                widths.append(len(cell))

    def fmt(row):
        return " | ".join(f"{c:<{widths[i]}}" for i, c in enumerate(row))

    return [fmt(header)] + [fmt(r) for r in rows]


def _report(stdscr, session, exc: LedgerError) -> None:
    """Show a failed operation and reload state from the store."""
    if not isinstance(exc, ValidationError):
        log.warning("operation failed: %s", exc)
    toast(stdscr, str(exc))
    session.expire_all()


@dataclass
class FormField:
    """One editable entry of the transaction form."""

    name: str
    label: str
    prompt: str
    verify: Optional[Callable[[str], tuple[str, Outcome]]] = None
    complete: Optional[Callable[[str], str]] = None
    step: Optional[Callable[[str, int], tuple[str, Outcome]]] = None


def _tag_completer(known: list[str]) -> Callable[[str], str]:
    def complete(value: str) -> str:
        suggestion = autofill_tags(value, known)
        return apply_tag_completion(value, suggestion) if suggestion else ""

    return complete


def form_fields(session) -> dict[str, FormField]:
    """Transaction form entries wired to the stored methods, tags and details."""
    methods = store.method_names(session)
    tags = [t.name for t in store.get_tags(session)]
    details = store.detail_values(session)

    def method_field(name: str, label: str) -> FormField:
        return FormField(
            name,
            label,
            label,
            verify=lambda v: verify_method(v, methods),
            complete=lambda v: autofill_method(v, methods),
            step=lambda v, d: step_method(v, d, methods),
        )

    entries = [
        FormField(
            "date",
            "Date",
            "Date (YYYY-MM-DD)",
            verify=lambda v: verify_date(v, DateType.EXACT),
            step=lambda v, d: step_date(v, d, DateType.EXACT),
        ),
        FormField("details", "Details", "Details", complete=lambda v: autofill_details(v, details)),
        method_field("from_method", "Tx Method"),
        method_field("to_method", "To Method"),
        FormField("amount", "Amount", "Amount (12.50, 5+7)", verify_amount, step=step_amount),
        FormField("tx_type", "Tx Type", "Tx Type (E/I/T)", verify_tx_type, step=step_tx_type),
        FormField(
            "tags",
            "Tags",
            "Tags (comma separated)",
            verify_tags,
            complete=_tag_completer(tags),
            step=lambda v, d: step_tags(v, d, tags),
        ),
    ]
    return {entry.name: entry for entry in entries}


def transaction_form(stdscr, session, fields: TxFields):
    """Interactive form for transaction fields.

    Every entry is run through the verifier; a rejected entry is replaced by
    its suggested correction. Returns the fields when saved, otherwise ``None``.
    """
    entries = form_fields(session)
    while True:
        shown = ["date", "details", "from_method"]
        if fields.tx_type == TxType.TRANSFER.value:
            shown.append("to_method")
        shown += ["amount", "tx_type", "tags"]
        choices = [(f"{entries[n].label}: {getattr(fields, n)}", n) for n in shown]
        choice = choose(stdscr, "Transaction", choices + [("Save", "save"), ("Cancel", "cancel")])
        if choice == "save":
            return fields
        if choice in (None, "cancel"):
            return None

        entry = entries[choice]
        raw = ask(stdscr, entry.prompt, getattr(fields, choice), entry.complete, entry.step)
        if raw is None:
            continue
        value = raw
        if entry.verify is not None:
            value, outcome = entry.verify(raw)
            if outcome.is_error:
                toast(stdscr, outcome.message(entry.label))
        setattr(fields, choice, value)
        if choice == "tx_type" and fields.tx_type != TxType.TRANSFER.value:
            fields.to_method = ""


def fields_from(txn: Transaction) -> TxFields:
    return TxFields(
        date=txn.date.isoformat(),
        from_method=txn.from_method.name,
        amount=format_cents(txn.cents),
        tx_type=txn.kind.value,
        details=txn.details or "",
        to_method=txn.to_method.name if txn.to_method else "",
        tags=", ".join(txn.tag_names),
    )


def add_transaction(stdscr, on_date: date | None = None) -> None:
    """Prompt user for transaction data and persist it."""
    session = SessionLocal()
    blank = TxFields(
        date=(on_date or date.today()).isoformat(), from_method="", amount="", tx_type=""
    )
    form = transaction_form(stdscr, session, blank)
    if form is not None:
        try:
            mutator.add_transaction(session, form)
        except LedgerError as exc:
            _report(stdscr, session, exc)
    session.close()


def edit_transaction(stdscr, session, txn: Transaction) -> None:
    """Edit an existing transaction, keeping its id."""
    form = transaction_form(stdscr, session, fields_from(txn))
    if form is None:
        return
    try:
        mutator.edit_transaction(session, txn.id, form)
    except LedgerError as exc:
        _report(stdscr, session, exc)


def ask_date(stdscr, prompt: str, date_type: DateType, initial: str) -> Optional[str]:
    """Ask until the verifier accepts a date; ``None`` when cancelled or left empty."""
    value = initial
    while True:
        raw = ask(stdscr, prompt, value, step=lambda v, d: step_date(v, d, date_type))
        if not raw:
            return None
        value, outcome = verify_date(raw, date_type)
        if not outcome.is_error:
            return value
        toast(stdscr, outcome.message("Date"))


def pick_period(stdscr) -> Period | None:
    """Ask for a mode and, unless all-time, the month or year to view."""
    nature = choose(stdscr, "View", MODES)
    if nature is None:
        return None
    if nature is FetchNature.ALL:
        return Period.all()

    current = date.today()
    if nature is FetchNature.MONTHLY:
        value = ask_date(
            stdscr, "Month (YYYY-MM)", DateType.MONTHLY, f"{current.year}-{current.month:02d}"
        )
    else:
        value = ask_date(stdscr, "Year (YYYY)", DateType.YEARLY, str(current.year))
    return None if value is None else _period_from(value, nature)


def _period_from(value: str, nature: FetchNature) -> Period:
    """Period for a verified ``YYYY-MM`` or ``YYYY`` string."""
    parts = [int(p) for p in value.split("-")] + [1]
    return Period.from_indices(parts[1] - 1, parts[0] - EPOCH_YEAR, nature)


def show_balances(stdscr, session, reconstruction, index: int | None) -> None:
    rows = views.balance_rows(session, reconstruction, index)
    lines = table_lines(rows[0], rows[1:])
    pick(stdscr, lines[1:], 0, title=lines[0], hint="q: close")


def _move(stdscr, session, txs: list[Transaction], idx: int, step: int) -> None:
    other = idx + step
    if not 0 <= other < len(txs):
        return
    try:
        swapped = mutator.switch_position(session, txs[idx].id, txs[other].id)
    except LedgerError as exc:
        _report(stdscr, session, exc)
        return
    if not swapped:
        toast(stdscr, "Only transactions on the same day can be reordered")


def list_transactions(stdscr, period: Period | None = None) -> None:
    """Ledger of one period with running balances.

    Enter or ``e`` edits the highlighted transaction, ``a`` adds one dated in
    the period, ``d`` deletes, ``b`` shows every method's balance after the
    row and ``u``/``n`` swap it with the row above or below on the same day.
    """
    period = period or Period.containing(date.today())
    session = SessionLocal()
    index = 0
    while True:
        with atomic(session):
            reconstruction = balances.reconstruct(session, period)
        txs = reconstruction.txs
        lines = table_lines(views.TX_HEADER, views.transaction_rows(txs))
        res = pick(
            stdscr,
            lines[1:],
            index,
            title=f"{period.label()}  {lines[0]}",
            hint="e:edit a:add d:delete b:balances u/n:move q:back",
            keys=LEDGER_KEYS,
            total=_balance_footer(),
        )
        if res is None:
            break
        action, index = res
        if action == "add":
            session.close()
            on_date = None
            if period.nature is FetchNature.MONTHLY:
                on_date = date(period.year, period.month, 1)
            add_transaction(stdscr, on_date)
            session = SessionLocal()
            continue
        if index >= len(txs):
            continue
        if action in ("open", "edit"):
            edit_transaction(stdscr, session, txs[index])
        elif action == "balances":
            show_balances(stdscr, session, reconstruction, index)
        elif action == "up":
            _move(stdscr, session, txs, index, -1)
        elif action == "down":
            _move(stdscr, session, txs, index, 1)
        elif action == "delete" and confirm(stdscr, "Delete this transaction?"):
            try:
                mutator.delete_transaction(session, txs[index].id)
            except LedgerError as exc:
                _report(stdscr, session, exc)
    session.close()


def summary_view(stdscr) -> None:
    period = pick_period(stdscr)
    if period is None:
        return
    session = SessionLocal()
    try:
        current, delta = summarize(session, period)
    except LedgerError as exc:
        _report(stdscr, session, exc)
        return
    finally:
        session.close()

    changes = period.nature is not FetchNature.ALL
    average = [] if period.nature is FetchNature.MONTHLY else ["Avg Income", "Avg Expense"]
    mom = ["Income Δ", "Expense Δ"] if changes else []
    shares = ["Income %", "Expense %"]
    lines = []
    lines += table_lines(
        ["", "Income", "Expense"] + average + shares + mom, net_rows(current, delta)
    )
    lines.append("")
    lines += table_lines(
        ["Method", "Income", "Expense"] + average + shares + mom, method_rows(current, delta)
    )
    lines.append("")
    lines += table_lines(["", "Method", "Amount", "Date"], largest_rows(current))
    lines.append("")
    lines += table_lines(["", "Amount", "Month"], peak_rows(current))
    lines.append("")
    lines += table_lines(["Tag", "Income", "Expense"] + shares + mom, tag_rows(current, delta))
    pick(stdscr, lines, 0, title=f"Summary: {period.label()}")


def activity_lines(session, year: int, month: int) -> list[str]:
    lines = []
    for act in get_activities(session, year, month):
        kind = ActivityType(act.activity_type)
        lines.append(f"{act.created_at:%Y-%m-%d %H:%M} | {kind.describe(len(act.txs))}")
        for item in act.txs:
            lines.append(
                f"    {item.date or '-'} | {item.details or ''} | {item.from_method or ''}"
                f"{' → ' + item.to_method if item.to_method else ''} | "
                f"{format_cents(item.amount) if item.amount is not None else ''} | "
                f"{item.tx_type or ''} | {item.tags or ''}"
            )
    return lines


def activity_view(stdscr) -> None:
    today = date.today()
    value = ask_date(stdscr, "Month (YYYY-MM)", DateType.MONTHLY, f"{today.year}-{today.month:02d}")
    if value is None:
        return
    year, month = (int(p) for p in value.split("-"))
    session = SessionLocal()
    lines = activity_lines(session, year, month)
    session.close()
    pick(stdscr, lines or ["No activity"], 0, title=f"Activity {value}")


def search_filters(stdscr, session) -> dict:
    """Collect search filters; blank answers are skipped."""
    filters = {}
    methods = store.method_names(session)
    known_tags = [t.name for t in store.get_tags(session)]

    raw_date = ask(stdscr, "Date (YYYY-MM-DD, YYYY-MM or YYYY)")
    if raw_date:
        date_type, nature = SEARCH_DATES[min(raw_date.count("-"), 2)]
        value, outcome = verify_date(raw_date, date_type)
        if outcome.is_error:
            toast(stdscr, outcome.message("Date"))
        elif nature is None:
            filters["on_date"] = date.fromisoformat(value)
        else:
            filters["period"] = _period_from(value, nature)

    details = ask(
        stdscr,
        "Details contain",
        complete=lambda v: autofill_details(v, store.detail_values(session)),
    )
    if details:
        filters["details"] = details

    raw_method = ask(
        stdscr,
        "Tx Method",
        complete=lambda v: autofill_method(v, methods),
        step=lambda v, d: step_method(v, d, methods),
    )
    method, outcome = verify_method(raw_method or "", methods)
    if outcome.is_error:
        toast(stdscr, outcome.message("Tx Method"))
    elif method:
        filters["from_method"] = method

    tx_type, _ = verify_tx_type(ask(stdscr, "Tx Type (E/I/T)", step=step_tx_type) or "")
    if tx_type:
        filters["tx_type"] = TxType(tx_type)

    raw_tags = ask(
        stdscr,
        "Tags",
        complete=_tag_completer(known_tags),
        step=lambda v, d: step_tags(v, d, known_tags),
    )
    tags, outcome = verify_tags_forced(raw_tags or "", known_tags)
    if outcome is Outcome.NON_EXISTING_TAG:
        toast(stdscr, outcome.message("Tags"))
    if tags:
        filters["tags"] = [t.strip() for t in tags.split(",")]
    return filters


def search_view(stdscr) -> None:
    session = SessionLocal()
    try:
        found = mutator.search_transactions(session, **search_filters(stdscr, session))
    except LedgerError as exc:
        _report(stdscr, session, exc)
        found = []
    lines = table_lines(views.TX_HEADER, views.transaction_rows(found))
    session.close()
    pick(stdscr, lines[1:] or ["No match"], 0, title=lines[0])


def methods_menu(stdscr) -> None:
    session = SessionLocal()
    while True:
        names = store.method_names(session)
        choice = choose(
            stdscr,
            "Methods",
            [(n, ("method", n)) for n in names] + [("Add method", ("add", None)), ("Back", None)],
        )
        if choice is None:
            break
        action, name = choice
        try:
            if action == "add":
                new = ask(stdscr, "New method name")
                if new:
                    mutator.add_methods(session, [new])
                continue
            sub = choose(stdscr, name, ["Rename", "Move up", "Move down", "Back"])
            if sub == "Rename":
                new = ask(stdscr, "New name", name)
                if new and new != name:
                    mutator.rename_method(session, name, new)
            elif sub in ("Move up", "Move down"):
                idx = names.index(name)
                other = idx - 1 if sub == "Move up" else idx + 1
                if 0 <= other < len(names):
                    names[idx], names[other] = names[other], names[idx]
                    mutator.reposition_methods(session, names)
        except LedgerError as exc:
            _report(stdscr, session, exc)
    session.close()


def rebuild_menu(stdscr) -> None:
    session = SessionLocal()
    problems = balances.find_inconsistencies(session)
    message = (
        f"{len(problems)} stored balance(s) disagree with the transactions. Rebuild?"
        if problems
        else "Balances are consistent. Rebuild anyway?"
    )
    if confirm(stdscr, message):
        try:
            mutator.rebuild_balances(session)
            toast(stdscr, "Balances rebuilt")
        except LedgerError as exc:
            _report(stdscr, session, exc)
    session.close()


def _transactions_entry(stdscr) -> None:
    period = pick_period(stdscr)
    if period is not None:
        list_transactions(stdscr, period)


MAIN_MENU = {
    "Transactions": _transactions_entry,
    "Add transaction": add_transaction,
    "Summary": summary_view,
    "Search": search_view,
    "Activity": activity_view,
    "Methods": methods_menu,
    "Rebuild balances": rebuild_menu,
}


def main(stdscr) -> None:
    try:
        curses.use_default_colors()
    except curses.error:  # pragma: no cover - terminals without color
        pass
    init_db()
    while True:
        choice = choose(stdscr, "pocketledger", list(MAIN_MENU) + ["Quit"])
        if choice is None or choice == "Quit":
            break
        MAIN_MENU[choice](stdscr)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    curses.wrapper(main)
