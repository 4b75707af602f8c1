"""Starlette web server for Daybook."""

import json
from datetime import date

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from ..agents import SynthesizerAgent
from ..bulk_import import ImportOrchestrator
from ..config import ModelConfig
from ..exceptions import (
    CategoryProtectedError,
    EntryExistsError,
    NothingToReportError,
    PersistenceError,
    RecordNotFoundError,
    UniqueConstraintError,
    UnsupportedReportError,
)
from ..journal import save_day_entry
from ..llm import ModelClient
from ..reports import request_weekly_report
from ..schemas import ActivityInput, CategoryInput, CategoryUpdate, ReportStatus
from ..storage import JournalStore
from ..workflow import create_search_workflow, run_search


def _get_client(app: Starlette) -> ModelClient:
    """Get or create the ModelClient singleton from app.state."""
    if getattr(app.state, "client", None) is None:
        app.state.client = ModelClient(app.state.config)
    return app.state.client


def _get_search_workflow(app: Starlette):
    """Get or create the compiled search workflow from app.state."""
    if getattr(app.state, "search_workflow", None) is None:
        app.state.search_workflow = create_search_workflow(
            app.state.store, _get_client(app)
        )
    return app.state.search_workflow


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


async def _read_json(request: Request) -> dict | None:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return None
    return body if isinstance(body, dict) else None


async def api_import(request: Request):
    """Stream import progress as newline-terminated text lines."""
    body = await _read_json(request)
    journal_text = body.get("journalText") if body else None
    if not journal_text or not isinstance(journal_text, str):
        return JSONResponse({"error": "journalText is required"}, status_code=400)

    orchestrator = ImportOrchestrator(request.app.state.store, _get_client(request.app))

    async def lines():
        async for line in orchestrator.stream(journal_text):
            yield (line + "\n").encode("utf-8")

    return StreamingResponse(
        lines(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache"},
    )


async def api_search(request: Request) -> JSONResponse:
    """Answer a free-text query over the journal."""
    body = await _read_json(request)
    query = body.get("query") if body else None
    if not query or not isinstance(query, str):
        return JSONResponse(
            {"error": "Query is required and must be a string"}, status_code=400
        )

    result = await run_search(query, _get_search_workflow(request.app))
    return JSONResponse(_dump(result))


async def api_journal_list(request: Request) -> JSONResponse:
    """List journal entries with their activities, newest first."""
    store: JournalStore = request.app.state.store
    entries = []
    for entry in await store.list_entries():
        activities = await store.list_activities(entry.id)
        entries.append({**_dump(entry), "activities": [_dump(a) for a in activities]})
    return JSONResponse(entries)


async def api_journal_create(request: Request) -> JSONResponse:
    """Save a hand-written day entry; 409 if it exists and force is not set."""
    body = await _read_json(request)
    if body is None:
        return JSONResponse({"error": "Invalid input"}, status_code=400)

    entry_date = body.get("date")
    try:
        date.fromisoformat(entry_date)
        activities = [ActivityInput.model_validate(a) for a in body.get("activities", [])]
    except (TypeError, ValueError, ValidationError) as e:
        return JSONResponse({"error": "Invalid input", "details": str(e)}, status_code=400)

    try:
        created = await save_day_entry(
            request.app.state.store, entry_date, activities, bool(body.get("force"))
        )
    except EntryExistsError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    except PersistenceError as e:
        return JSONResponse({"error": "Invalid input", "details": str(e)}, status_code=400)

    return JSONResponse(
        {"date": entry_date, "activities": [_dump(a) for a in created]}, status_code=201
    )


async def api_journal_get(request: Request) -> JSONResponse:
    """Return one journal entry with its activities."""
    store: JournalStore = request.app.state.store
    entry = await store.get_entry_by_id(request.path_params["id"])
    if entry is None:
        return JSONResponse({"error": "Journal entry not found"}, status_code=404)

    activities = await store.list_activities(entry.id)
    return JSONResponse({**_dump(entry), "activities": [_dump(a) for a in activities]})


async def api_journal_delete(request: Request) -> JSONResponse:
    """Delete a journal entry and its activities."""
    store: JournalStore = request.app.state.store
    entry = await store.get_entry_by_id(request.path_params["id"])
    if entry is None:
        return JSONResponse({"error": "Journal entry not found"}, status_code=404)

    try:
        deleted = await store.delete_entry(entry.id)
    except RecordNotFoundError:
        return JSONResponse({"error": "Journal entry not found"}, status_code=404)

    return JSONResponse(
        {
            "message": "Journal entry deleted successfully",
            "deletedEntry": {"id": entry.id, "date": entry.date, "activitiesCount": deleted},
        }
    )


async def _dump_category(store: JournalStore, category) -> dict:
    return {**_dump(category), "activityCount": await store.count_activities(category.id)}


async def api_categories_list(request: Request) -> JSONResponse:
    categories = await request.app.state.store.list_categories()
    return JSONResponse([_dump(c) for c in categories])


async def api_categories_create(request: Request) -> JSONResponse:
    body = await _read_json(request)
    try:
        fields = CategoryInput.model_validate(body)
    except ValidationError as e:
        return JSONResponse({"error": "Invalid input", "details": str(e)}, status_code=400)

    try:
        category = await request.app.state.store.create_category(
            fields.name,
            description=fields.description,
            color=fields.color,
            icon=fields.icon,
        )
    except UniqueConstraintError:
        return JSONResponse(
            {"error": "Category with this name already exists"}, status_code=409
        )
    return JSONResponse(_dump(category), status_code=201)


async def api_category_get(request: Request) -> JSONResponse:
    store: JournalStore = request.app.state.store
    category = await store.get_category(request.path_params["id"])
    if category is None:
        return JSONResponse({"error": "Category not found"}, status_code=404)
    return JSONResponse(await _dump_category(store, category))


async def api_category_update(request: Request) -> JSONResponse:
    """Update a category; 409 if the new name belongs to another category."""
    store: JournalStore = request.app.state.store
    body = await _read_json(request)
    try:
        changes = CategoryUpdate.model_validate(body)
    except ValidationError as e:
        return JSONResponse({"error": "Invalid input", "details": str(e)}, status_code=400)

    try:
        category = await store.update_category(
            request.path_params["id"],
            name=changes.name,
            description=changes.description,
            color=changes.color,
            icon=changes.icon,
        )
    except RecordNotFoundError:
        return JSONResponse({"error": "Category not found"}, status_code=404)
    except UniqueConstraintError:
        return JSONResponse(
            {"error": "Category with this name already exists"}, status_code=409
        )
    return JSONResponse(await _dump_category(store, category))


async def api_category_delete(request: Request) -> JSONResponse:
    """Delete a custom category that has no activities."""
    try:
        await request.app.state.store.delete_category(request.path_params["id"])
    except RecordNotFoundError:
        return JSONResponse({"error": "Category not found"}, status_code=404)
    except CategoryProtectedError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse({"message": "Category deleted successfully"})


async def api_reports_list(request: Request) -> JSONResponse:
    """List completed reports, newest week first."""
    reports = await request.app.state.store.list_reports(ReportStatus.COMPLETED)
    return JSONResponse([_dump(r) for r in reports])


async def api_report_get(request: Request) -> JSONResponse:
    """Return one report; 202 while it is still being generated."""
    report = await request.app.state.store.get_report(request.path_params["id"])
    if report is None:
        return JSONResponse({"error": "Report not found"}, status_code=404)
    if report.status == ReportStatus.PENDING:
        return JSONResponse(
            {"error": "Report generation is still in progress."}, status_code=202
        )
    return JSONResponse(_dump(report))


async def api_reports_create(request: Request) -> JSONResponse:
    """Return the week's completed report or generate it."""
    body = await _read_json(request) or {}
    if not body.get("date"):
        return JSONResponse({"error": "Date is required"}, status_code=400)

    synthesizer = SynthesizerAgent(_get_client(request.app))
    try:
        report, generated = await request_weekly_report(
            request.app.state.store, synthesizer, body.get("type"), str(body["date"])
        )
    except UnsupportedReportError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except NothingToReportError as e:
        return JSONResponse({"error": str(e)}, status_code=404)

    if report.status == ReportStatus.FAILED:
        return JSONResponse(
            {"error": "Failed to generate report content."}, status_code=500
        )
    return JSONResponse(_dump(report), status_code=201 if generated else 200)


def create_app(store: JournalStore, config: ModelConfig, client: ModelClient | None = None) -> Starlette:
    """Create the Starlette application.

    Args:
        store: Journal store shared by all requests.
        config: Model endpoint configuration.
        client: Optional pre-built model client (used by tests).

    Returns:
        Configured Starlette application.
    """
    routes = [
        Route("/api/import", api_import, methods=["POST"]),
        Route("/api/journal/search", api_search, methods=["POST"]),
        Route("/api/journal", api_journal_list, methods=["GET"]),
        Route("/api/journal", api_journal_create, methods=["POST"]),
        Route("/api/journal/{id}", api_journal_get, methods=["GET"]),
        Route("/api/journal/{id}", api_journal_delete, methods=["DELETE"]),
        Route("/api/categories", api_categories_list, methods=["GET"]),
        Route("/api/categories", api_categories_create, methods=["POST"]),
        Route("/api/categories/{id}", api_category_get, methods=["GET"]),
        Route("/api/categories/{id}", api_category_update, methods=["PUT"]),
        Route("/api/categories/{id}", api_category_delete, methods=["DELETE"]),
        Route("/api/reports", api_reports_list, methods=["GET"]),
        Route("/api/reports", api_reports_create, methods=["POST"]),
        Route("/api/reports/{id}", api_report_get, methods=["GET"]),
    ]

    app = Starlette(routes=routes)
    app.state.store = store
    app.state.config = config
    # Lazily populated on first access
    app.state.client = client
    app.state.search_workflow = None

    return app
