"""Module entry point for running the ledger via ``python -m pocketledger``.

:func:`pocketledger.cli.main` expects the ``stdscr`` window, so it is run
through :func:`curses.wrapper`, which also restores the terminal on exit.
First-run prompts happen before curses starts.
"""

import curses

from .cli import main
from .database import init_db
from .logging_setup import configure_logging
from .starter import run_starter


def entry_point() -> None:
    """Prepare the store, then wrap the CLI ``main`` function in a curses session."""
    configure_logging()
    init_db()
    run_starter()
    curses.wrapper(main)


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    entry_point()
