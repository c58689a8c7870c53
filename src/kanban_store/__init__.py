"""
Kanban Store - local persistence core for a desktop kanban/task/notes app.

Boards, tasks and their children live in an embedded SQLite database;
note bodies live in a sibling directory of per-note files. The package
exposes one repository per aggregate plus a thin request/response bridge
that the UI process talks to.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kanban-store")
except PackageNotFoundError:
    __version__ = "0.3.0"
