"""FastAPI application serving the journal API and web pages."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from ..auth import authenticate
from ..config import Config
from ..entries import (
    ALL_CATEGORIES,
    Category,
    LogEntry,
    category_display_name,
    compute_progress,
    filter_entries,
    motivational_message,
    parse_timestamp,
    preview,
)
from ..entries.models import DEFAULT_IMPORTANCE, generate_id, utc_now
from ..errors import AuthenticationError, EntryNotFoundError, InvalidEntryError, NotificationError
from ..notify import EmailNotifier, NotificationQueue
from ..storage import JournalDatabase, SQLiteEntryRepository
from ..sync.service import merge_into

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"

SESSION_USER_KEY = "username"


def _importance(value: Any) -> Any:
    """Accept form strings like "4" for the importance field."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return value


def _entry_from_payload(payload: dict[str, Any]) -> LogEntry:
    """Build a new entry from a create request.

    The server assigns the id. A valid client timestamp is kept so entries
    written offline retain their creation time.
    """
    timestamp = utc_now()
    if payload.get("timestamp"):
        try:
            timestamp = parse_timestamp(payload["timestamp"])
        except InvalidEntryError:
            logger.debug(f"Ignoring invalid client timestamp {payload['timestamp']!r}")

    return LogEntry.create(
        title=payload.get("title") or "",
        content=payload.get("content") or "",
        category=payload.get("category") or Category.OTHER.value,
        importance=_importance(payload.get("importance", DEFAULT_IMPORTANCE)),
        now=timestamp,
        entry_id=generate_id(),
    )


def create_app(
    config: Config,
    db: JournalDatabase,
    notifications: NotificationQueue | None = None,
) -> FastAPI:
    """Create the journal web application.

    Args:
        config: Application configuration.
        db: Connected database holding entries and accounts.
        notifications: Queue for new-entry emails. Built from
            ``config.email`` when omitted.

    Returns:
        Configured FastAPI application.
    """
    if notifications is None:
        notifications = NotificationQueue(EmailNotifier(config.email))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await notifications.start()
        try:
            yield
        finally:
            await notifications.stop()

    app = FastAPI(
        title="Daily Logger",
        description="Personal learning journal",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.server.secret_key,
        max_age=config.server.session_max_age_seconds,
        https_only=config.server.is_production,
    )

    # Store references for route handlers
    app.state.config = config
    app.state.db = db
    app.state.notifications = notifications

    # Set up Jinja2 templates
    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters["category_name"] = category_display_name
    templates.env.filters["preview"] = preview
    templates.env.filters["display_date"] = lambda ts: ts.astimezone().strftime("%b %d, %Y %I:%M %p")

    # ==================== Errors ====================

    @app.exception_handler(AuthenticationError)
    async def auth_error(request: Request, exc: AuthenticationError):
        return JSONResponse({"error": str(exc)}, status_code=401)

    @app.exception_handler(InvalidEntryError)
    async def invalid_entry(request: Request, exc: InvalidEntryError):
        return JSONResponse({"error": str(exc)}, status_code=422)

    @app.exception_handler(EntryNotFoundError)
    async def entry_not_found(request: Request, exc: EntryNotFoundError):
        return JSONResponse({"error": "Log not found"}, status_code=404)

    # ==================== Session helpers ====================

    def current_user(request: Request) -> str:
        username = request.session.get(SESSION_USER_KEY)
        if not username:
            raise AuthenticationError("Not authenticated")
        return username

    def user_entries(username: str = Depends(current_user)) -> SQLiteEntryRepository:
        return db.entries_for(username)

    def entry_context(
        repo: SQLiteEntryRepository,
        category: str | None,
        search: str | None,
    ) -> dict[str, Any]:
        entries = repo.read_all()
        return {
            "entries": filter_entries(entries.values(), category, search),
            "progress": compute_progress(entries.values(), config.progress.target_days),
            "categories": [c.value for c in Category],
            "category": category or ALL_CATEGORIES,
            "search": search or "",
        }

    # ==================== HTML Routes ====================

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request, category: str | None = None, search: str | None = None):
        """Journal page."""
        username = request.session.get(SESSION_USER_KEY)
        if not username:
            return RedirectResponse("/login", status_code=303)

        context = {
            "username": username,
            "today": datetime.now().strftime("%A, %B %d, %Y"),
            "page": "index",
        }
        context.update(entry_context(db.entries_for(username), category, search))
        return templates.TemplateResponse(request, "index.html", context)

    @app.get("/login", response_class=HTMLResponse)
    async def login_page(request: Request):
        return templates.TemplateResponse(request, "login.html", {"error": None, "page": "login"})

    @app.post("/login", response_class=HTMLResponse)
    async def login_form(request: Request):
        form = await request.form()
        try:
            username = authenticate(db, str(form.get("username", "")), str(form.get("password", "")))
        except AuthenticationError as e:
            return templates.TemplateResponse(
                request, "login.html", {"error": str(e), "page": "login"}, status_code=401
            )

        request.session[SESSION_USER_KEY] = username
        return RedirectResponse("/", status_code=303)

    @app.get("/logout")
    async def logout_page(request: Request):
        request.session.clear()
        return RedirectResponse("/login", status_code=303)

    # ==================== HTMX Partials ====================

    @app.get("/htmx/entries", response_class=HTMLResponse)
    async def htmx_entries(
        request: Request,
        category: str | None = None,
        search: str | None = None,
        repo: SQLiteEntryRepository = Depends(user_entries),
    ):
        """HTMX partial for the filtered entry list."""
        return templates.TemplateResponse(
            request, "partials/entries_list.html", entry_context(repo, category, search)
        )

    @app.post("/htmx/entries", response_class=HTMLResponse)
    async def htmx_create_entry(
        request: Request,
        repo: SQLiteEntryRepository = Depends(user_entries),
    ):
        """Create an entry from the page form and return the refreshed list."""
        form = await request.form()
        context: dict[str, Any] = {"message": None, "error": None}
        try:
            entry = _entry_from_payload(dict(form))
        except InvalidEntryError as e:
            context["error"] = str(e)
        else:
            repo.upsert(entry)
            notifications.submit(entry)
            context["message"] = motivational_message(entry.category)

        context.update(entry_context(repo, None, None))
        return templates.TemplateResponse(request, "partials/entries_list.html", context)

    @app.delete("/htmx/entries/{entry_id}", response_class=HTMLResponse)
    async def htmx_delete_entry(
        request: Request,
        entry_id: str,
        repo: SQLiteEntryRepository = Depends(user_entries),
    ):
        if not repo.delete(entry_id):
            raise EntryNotFoundError(entry_id)
        return templates.TemplateResponse(
            request, "partials/entries_list.html", entry_context(repo, None, None)
        )

    # ==================== Auth API ====================

    @app.post("/api/login")
    async def api_login(request: Request, payload: dict[str, Any]) -> dict[str, Any]:
        username = authenticate(db, str(payload.get("username", "")), str(payload.get("password", "")))
        request.session[SESSION_USER_KEY] = username
        return {"success": True, "username": username}

    @app.post("/api/logout")
    async def api_logout(request: Request) -> dict[str, Any]:
        request.session.clear()
        return {"success": True}

    @app.get("/api/user")
    async def api_user(username: str = Depends(current_user)) -> dict[str, Any]:
        return {"authenticated": True, "username": username}

    # ==================== Entries API ====================

    @app.get("/api/logs")
    async def api_list_logs(
        category: str | None = None,
        search: str | None = None,
        repo: SQLiteEntryRepository = Depends(user_entries),
    ) -> list[dict[str, Any]]:
        """Entries matching the filters, newest first."""
        return [e.to_dict() for e in filter_entries(repo.read_all().values(), category, search)]

    @app.post("/api/logs", status_code=201)
    async def api_create_log(
        payload: dict[str, Any],
        repo: SQLiteEntryRepository = Depends(user_entries),
    ) -> dict[str, Any]:
        entry = _entry_from_payload(payload)
        repo.upsert(entry)
        notifications.submit(entry)
        logger.info(f"Created entry {entry.id} for {repo.owner}")

        data = entry.to_dict()
        data["message"] = motivational_message(entry.category)
        return data

    @app.post("/api/logs/sync")
    async def api_sync_logs(
        payload: dict[str, Any],
        repo: SQLiteEntryRepository = Depends(user_entries),
    ):
        """Merge a client's cached entries into the user's collection."""
        logs = payload.get("logs") or []
        if not isinstance(logs, list) or not logs:
            return JSONResponse({"error": "No logs to sync"}, status_code=400)

        result = merge_into(repo, logs)
        for entry_id in result.added_ids:
            notifications.submit(result.entries[entry_id])

        return result.to_response()

    @app.put("/api/logs/{entry_id}")
    async def api_update_log(
        entry_id: str,
        payload: dict[str, Any],
        repo: SQLiteEntryRepository = Depends(user_entries),
    ) -> dict[str, Any]:
        """Edit an entry; its id and creation timestamp are preserved."""
        existing = repo.get(entry_id)
        if existing is None:
            raise EntryNotFoundError(entry_id)

        updated = existing.edited(
            title=payload.get("title"),
            category=payload.get("category"),
            content=payload.get("content"),
            importance=_importance(payload.get("importance")),
        )
        repo.upsert(updated)
        return updated.to_dict()

    @app.delete("/api/logs/{entry_id}", status_code=204)
    async def api_delete_log(
        entry_id: str,
        repo: SQLiteEntryRepository = Depends(user_entries),
    ) -> Response:
        if not repo.delete(entry_id):
            raise EntryNotFoundError(entry_id)
        return Response(status_code=204)

    @app.get("/api/progress")
    async def api_progress(repo: SQLiteEntryRepository = Depends(user_entries)) -> dict[str, Any]:
        """Distinct days logged against the course target."""
        return compute_progress(repo.read_all().values(), config.progress.target_days).to_dict()

    # ==================== Service API ====================

    @app.get("/api/test-email")
    async def api_test_email(username: str = Depends(current_user)):
        """Send a test email with the configured SMTP settings."""
        if not notifications.notifier.enabled:
            return JSONResponse(
                {"success": False, "message": "Email notifications are not configured or disabled"},
                status_code=400,
            )

        try:
            await notifications.notifier.send_test()
        except NotificationError as e:
            logger.error(f"Error sending test email: {e}")
            return JSONResponse(
                {"success": False, "message": f"Failed to send test email: {e}"},
                status_code=500,
            )

        return {"success": True, "message": "Test email sent successfully!"}

    @app.get("/api/status")
    async def api_status() -> dict[str, Any]:
        return {
            "status": "online",
            "environment": config.server.environment,
            "storage_type": db.storage_type,
            "email_enabled": notifications.notifier.enabled,
        }

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring and load balancers.

        Always returns 200 OK; component problems are reported in the body.
        """
        health: dict[str, Any] = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "notifications_running": notifications.running,
                "notifications_pending": notifications.pending,
            },
        }

        try:
            health["components"].update(db.get_stats())
        except Exception as e:
            health["status"] = "degraded"
            health["components"]["store_error"] = str(e)

        return health

    return app
