"""Bulk journal import for Daybook."""

from .parser import JournalDayEntry, is_valid_date, split_journal
from .processor import ImportOrchestrator, ImportSummary, classifiable_categories
from .progress import ProgressLog

__all__ = [
    "JournalDayEntry",
    "split_journal",
    "is_valid_date",
    "ImportOrchestrator",
    "ImportSummary",
    "classifiable_categories",
    "ProgressLog",
]
