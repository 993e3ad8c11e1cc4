"""Quest Board: session registration server for tabletop game nights.

Publishes open game sessions, collects player sign-ups, enforces seat limits
and level-tier eligibility, and drives a FIFO waitlist when a table is full.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("quest-board")
except PackageNotFoundError:
    __version__ = "0.1.0"
