"""Daybook - personal activity journal with LLM-powered import, search and reports."""

from .bulk_import import ImportOrchestrator, ImportSummary
from .config import ModelConfig
from .exceptions import DaybookError, ModelError
from .journal import save_day_entry
from .llm import ModelClient
from .reports import request_weekly_report
from .schemas import Activity, Category, Report, SearchResult, Summary
from .storage import JournalStore, JsonJournalStore, MemoryJournalStore
from .workflow import create_search_workflow, run_search

__all__ = [
    "create_search_workflow",
    "run_search",
    "request_weekly_report",
    "save_day_entry",
    "ImportOrchestrator",
    "ImportSummary",
    "ModelClient",
    "ModelConfig",
    "JournalStore",
    "JsonJournalStore",
    "MemoryJournalStore",
    "Activity",
    "Category",
    "Report",
    "SearchResult",
    "Summary",
    "DaybookError",
    "ModelError",
]
