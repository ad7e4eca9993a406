"""First-run setup, before the curses session takes over the terminal."""
from __future__ import annotations

from pathlib import Path

import questionary

from . import mutator, store
from .database import SessionLocal
from .errors import LedgerError
from .legacy_import import import_legacy
from .logging_setup import get_logger

log = get_logger(__name__)


def needs_setup(session) -> bool:
    return not store.method_names(session)


def run_starter() -> None:
    """Ask for the methods to track, or import a legacy ledger file."""
    session = SessionLocal()
    try:
        if not needs_setup(session):
            return
        while needs_setup(session):
            choice = questionary.select(
                "No transaction methods yet. How do you want to start?",
                choices=["Add methods", "Import legacy file", "Quit"],
            ).ask()
            if choice == "Add methods":
                names = questionary.text("Method names, comma separated (e.g. Cash, Bank):").ask()
                if not names:
                    continue
                try:
                    mutator.add_methods(session, [n for n in names.split(",") if n.strip()])
                except LedgerError as exc:
                    print(exc)
            elif choice == "Import legacy file":
                path = questionary.path("Legacy data.sqlite file:").ask()
                if not path:
                    continue
                try:
                    count = import_legacy(session, Path(path).expanduser())
                except (LedgerError, FileNotFoundError) as exc:
                    print(f"Import failed: {exc}")
                    continue
                print(f"Imported {count} transaction(s).")
            else:
                raise SystemExit(0)
        log.info("first-run setup finished")
    finally:
        session.close()
