"""Mini README: HTTP interface for piggyledger.

Exports the FastAPI application factory serving the ledger API. The
command line entry point lives in ``manage_ledger.py`` at the repository root.
"""

from .web_app import create_application

__all__ = ["create_application"]
