"""Bulk import processor - extracts, classifies and saves journal days."""

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

import logfire
from pydantic_ai.settings import ModelSettings

from ..config import IMPORT_SETTINGS
from ..contracts import Invalid, render_schema, validate_import
from ..exceptions import ConfigurationError, ContractError, TransportError
from ..llm import ModelClient
from ..prompts import import_prompt
from ..schemas import Category, JournalImport
from ..storage import JournalStore, ensure_tags
from .parser import JournalDayEntry, is_valid_date, preview, split_journal
from .progress import ProgressLog


@dataclass
class ImportSummary:
    """Outcome of one import run."""

    succeeded: int = 0
    failed: int = 0
    total_activities: int = 0
    elapsed_seconds: float = 0.0
    failures: list[tuple[str, str]] = field(default_factory=list)
    aborted: str | None = None  # Reason the run stopped before the entry loop

    def record_failure(self, date: str, reason: str) -> None:
        self.failed += 1
        self.failures.append((date, reason))


def classifiable_categories(categories: Sequence[Category]) -> list[Category]:
    """Return the user-defined categories, checking they can drive classification.

    Raises:
        ConfigurationError: There are no custom categories, or some lack a
            description.
    """
    custom = [c for c in categories if not c.is_default]
    if not custom:
        raise ConfigurationError(
            "No custom categories found. Please create at least one custom "
            "category with a description before importing."
        )

    undescribed = [c for c in custom if not (c.description or "").strip()]
    if undescribed:
        names = ", ".join(f'"{c.name}"' for c in undescribed)
        raise ConfigurationError(
            "All custom categories must have a description for the AI to work. "
            f"Please add descriptions for: {names}."
        )
    return custom


def _flatten(text: str) -> str:
    return " ".join(text.split())


class ImportOrchestrator:
    """Imports a multi-day journal, one day at a time.

    Days are processed strictly in input order. A failing day is logged and
    counted, never allowed to stop the others. Each day's writes are atomic:
    if saving any activity fails, the day is left exactly as it was.
    """

    def __init__(
        self,
        store: JournalStore,
        client: ModelClient,
        settings: ModelSettings = IMPORT_SETTINGS,
    ):
        self.store = store
        self.client = client
        self.settings = settings

    async def stream(self, journal_text: str) -> AsyncIterator[str]:
        """Run an import and yield its progress lines as they are produced.

        If the consumer stops iterating, the run is cancelled (best effort);
        the day being saved at that moment is rolled back.
        """
        log = ProgressLog()
        task = asyncio.create_task(self._run_and_close(journal_text, log))
        try:
            async for line in log.lines():
                yield line
        finally:
            if not task.done():
                task.cancel()

    async def _run_and_close(self, journal_text: str, log: ProgressLog) -> ImportSummary | None:
        try:
            return await self.run(journal_text, log)
        except Exception as e:
            logfire.error("Import run crashed", error=str(e))
            log.emit(f"✗ An unexpected error occurred on the server: {e}")
            return None
        finally:
            log.close()

    @logfire.instrument("import_journal")
    async def run(self, journal_text: str, log: ProgressLog) -> ImportSummary:
        """Import `journal_text`, reporting progress to `log`.

        Args:
            journal_text: Full journal; each day starts with a YYYY-MM-DD line.
            log: Output channel for progress lines. Not closed here.

        Returns:
            Counts for the run; `aborted` is set when it stopped before any
            entry was attempted.
        """
        started = time.monotonic()
        summary = ImportSummary()

        log.emit("Starting journal import...")
        log.emit(f"Journal text length: {len(journal_text)} characters")

        # 1. Categories
        try:
            log.emit("Fetching categories from database...")
            categories = await self.store.list_categories()
            log.emit(f"✓ Found {len(categories)} total categories in database")
        except Exception as e:
            logfire.error("Could not fetch categories", error=str(e))
            log.emit(f"✗ Database error: could not fetch categories. {e}")
            summary.aborted = f"category fetch failed: {e}"
            return summary

        try:
            classifiable = classifiable_categories(categories)
        except ConfigurationError as e:
            logfire.warn("Import aborted by category configuration", error=str(e))
            log.emit(f"✗ Validation failed: {e}")
            summary.aborted = str(e)
            return summary

        log.emit(f"✓ Category validation passed. Using {len(classifiable)} categories:")
        for category in classifiable:
            log.emit(f'   • {category.name}: "{category.description}"')

        # 2. Entries
        log.emit("Parsing journal entries...")
        entries = split_journal(journal_text)
        if not entries:
            log.emit(
                "✗ No valid entries found. Make sure each day starts with a date "
                "in YYYY-MM-DD format."
            )
            summary.aborted = "no entries found"
            return summary
        log.emit(f"✓ Found {len(entries)} daily entries to process")

        # 3. One entry at a time, in input order
        for index, entry in enumerate(entries, 1):
            await self._process_entry(entry, index, len(entries), classifiable, log, summary)

        summary.elapsed_seconds = time.monotonic() - started
        self._emit_summary(summary, log)
        logfire.info(
            "Journal import finished",
            succeeded=summary.succeeded,
            failed=summary.failed,
            activities=summary.total_activities,
        )
        return summary

    async def _process_entry(
        self,
        entry: JournalDayEntry,
        index: int,
        total: int,
        categories: list[Category],
        log: ProgressLog,
        summary: ImportSummary,
    ) -> None:
        date = entry.date
        log.emit(f"Processing entry {index}/{total}: {date}")
        log.emit(f'   Content preview: "{preview(_flatten(entry.raw_text))}"')

        if not is_valid_date(date):
            log.emit(f'⚠ Invalid date format: "{date}". Expected YYYY-MM-DD. Skipping entry.')
            summary.record_failure(date, "invalid date format")
            return

        try:
            extracted = await self.extract(entry, categories, log)
        except Exception as e:
            self._log_extraction_error(e, date, log)
            log.emit("⚠ Failed to process entry. Skipping.", date)
            summary.record_failure(date, str(e))
            return

        try:
            saved = await self.persist(date, extracted, log)
        except Exception as e:
            logfire.error("Failed to save entry", date=date, error=str(e))
            log.emit(f"✗ Database error while saving entry: {e}", date)
            log.emit("   No changes were kept for this date.", date)
            summary.record_failure(date, str(e))
            return

        summary.succeeded += 1
        summary.total_activities += saved

    async def extract(
        self, entry: JournalDayEntry, categories: list[Category], log: ProgressLog
    ) -> JournalImport:
        """Extract and classify one day's activities.

        Raises:
            ModelError: The model call failed, or its output broke the contract
                (including any category id outside `categories`).
        """
        date = entry.date
        prompt = import_prompt(entry.raw_text, categories, render_schema(JournalImport))

        log.emit("Sending entry to LLM for processing...", date)
        started = time.monotonic()
        raw = await self.client.generate(
            prompt,
            schema=JournalImport,
            schema_name="classified_activities",
            settings=self.settings,
            label=f"extraction for {date}",
        )
        elapsed_ms = round((time.monotonic() - started) * 1000)
        log.emit(f"✓ LLM processing completed in {elapsed_ms}ms", date)

        log.emit("Validating LLM response structure...", date)
        result = validate_import(raw, [c.id for c in categories])
        if isinstance(result, Invalid):
            log.emit(f"✗ LLM response validation failed: {result.message}", date)
            for error in result.errors:
                log.emit(f"   {error}", date)
            raise ContractError(result.message, result.errors)

        activities = result.value.activities
        noun = "activity" if len(activities) == 1 else "activities"
        log.emit(f"✓ Successfully extracted {len(activities)} {noun}", date)

        names = {c.id: c.name for c in categories}
        for i, activity in enumerate(activities, 1):
            duration = (
                f"{activity.duration_minutes}m"
                if activity.duration_minutes is not None
                else "no duration"
            )
            log.emit(
                f'   {i}. "{activity.description}" ({names[activity.category_id]}, {duration})',
                date,
            )
        return result.value

    def _log_extraction_error(self, error: Exception, date: str, log: ProgressLog) -> None:
        logfire.error("Extraction failed", date=date, error=str(error))
        log.emit(f"✗ LLM processing error: {error}", date)
        if isinstance(error, ContractError) and "JSON" in str(error):
            log.emit("   This might be a JSON parsing error. Check LLM response format.", date)
        elif isinstance(error, TransportError):
            log.emit("   Network error. Check LLM server connectivity.", date)

    async def persist(self, date: str, extracted: JournalImport, log: ProgressLog) -> int:
        """Replace the stored activities for `date` with `extracted`.

        Re-importing a date overwrites rather than accumulates. All writes for
        the date happen in one transaction.

        Returns:
            Number of activities created.
        """
        activities = extracted.activities
        log.emit(f"Saving {len(activities)} activities to database...", date)

        async with self.store.transaction():
            entry = await self.store.upsert_entry(date)
            deleted = await self.store.delete_activities(entry.id)
            if deleted:
                log.emit(f"Removed {deleted} existing activities", date)

            for i, activity in enumerate(activities, 1):
                try:
                    tags = await ensure_tags(self.store, activity.tag_names)
                    await self.store.create_activity(
                        entry.id,
                        description=activity.description,
                        duration_minutes=activity.duration_minutes,
                        notes=activity.notes,
                        category_id=activity.category_id,
                        tags=tags,
                    )
                except Exception as e:
                    log.emit(f"   ✗ Failed to save activity {i}: {e}", date)
                    raise
                log.emit(f'   ✓ Saved activity {i}: "{activity.description}"', date)

        log.emit(f"✓ Successfully saved entry with {len(activities)} activities", date)
        return len(activities)

    def _emit_summary(self, summary: ImportSummary, log: ProgressLog) -> None:
        minutes, seconds = divmod(int(summary.elapsed_seconds), 60)
        log.emit("Import Summary:")
        log.emit(f"   Entries: {summary.succeeded} succeeded, {summary.failed} failed")
        log.emit(f"   Total activities created: {summary.total_activities}")
        log.emit(f"   Total processing time: {minutes}m {seconds}s")
        if summary.succeeded > 0:
            log.emit("✓ Journal import completed successfully!")
        else:
            log.emit("✗ Import failed - no entries were processed successfully.")
