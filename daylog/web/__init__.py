"""Web interface and JSON API for the journal.

Provides the FastAPI application with session login, the entry API used by
the command-line client, and HTMX-driven pages.
"""

from .app import create_app

__all__ = ["create_app"]
