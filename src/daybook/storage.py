"""Persistence boundary for journal entries, activities, categories, tags and reports.

The pipeline only needs single-row upserts, simple deletes and a way to make
one entry's writes atomic. `MemoryJournalStore` provides that in memory;
`JsonJournalStore` adds a JSON file on disk.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol
from uuid import uuid4

import logfire

from .exceptions import (
    CategoryProtectedError,
    PersistenceError,
    RecordNotFoundError,
    UniqueConstraintError,
)
from .schemas import (
    Activity,
    Category,
    JournalEntry,
    Report,
    ReportStatus,
    Tag,
    WeeklyReportContent,
)


class JournalStore(Protocol):
    """What the pipeline needs from storage."""

    async def list_categories(self) -> list[Category]: ...

    async def get_category(self, category_id: str) -> Category | None: ...

    async def create_category(
        self,
        name: str,
        description: str | None = None,
        color: str = "#6B7280",
        icon: str | None = None,
        is_default: bool = False,
    ) -> Category: ...

    async def update_category(
        self,
        category_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
        icon: str | None = None,
    ) -> Category: ...

    async def delete_category(self, category_id: str) -> Category: ...

    async def count_activities(self, category_id: str) -> int: ...

    async def get_entry(self, date: str) -> JournalEntry | None: ...

    async def get_entry_by_id(self, entry_id: str) -> JournalEntry | None: ...

    async def upsert_entry(self, date: str) -> JournalEntry: ...

    async def delete_entry(self, entry_id: str) -> int: ...

    async def list_entries(self) -> list[JournalEntry]: ...

    async def list_activities(self, entry_id: str) -> list[Activity]: ...

    async def delete_activities(self, entry_id: str) -> int: ...

    async def create_activity(
        self,
        entry_id: str,
        *,
        description: str,
        duration_minutes: int | None,
        notes: str | None,
        category_id: str,
        tags: list[Tag],
    ) -> Activity: ...

    async def find_tag(self, name: str) -> Tag | None: ...

    async def create_tag(self, name: str) -> Tag: ...

    async def search_activities(
        self, keywords: list[str], limit: int = 200
    ) -> list[Activity]: ...

    async def activities_between(self, start: str, end: str) -> list[Activity]: ...

    async def get_report(self, report_id: str) -> Report | None: ...

    async def find_report(
        self, type: str, start_date: str, status: ReportStatus | None = None
    ) -> Report | None: ...

    async def upsert_report(
        self, type: str, start_date: str, end_date: str, status: ReportStatus
    ) -> Report: ...

    async def update_report(
        self,
        report_id: str,
        status: ReportStatus,
        content: WeeklyReportContent | None = None,
    ) -> Report: ...

    async def list_reports(self, status: ReportStatus | None = None) -> list[Report]: ...

    def transaction(self) -> AbstractAsyncContextManager["JournalStore"]: ...


# Stores with a transaction open in the current task. Tasks spawned inside a
# transaction (e.g. by asyncio.gather) inherit it and write without locking.
_open_transactions: ContextVar[tuple["MemoryJournalStore", ...]] = ContextVar(
    "open_transactions", default=()
)


def _new_id() -> str:
    return uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


class MemoryJournalStore:
    """Dict-backed store. Records are immutable; updates replace them.

    Writes are serialized by a lock. A transaction holds the lock until it
    commits or rolls back, so a rollback never discards writes made by
    other tasks.
    """

    _TABLES = ("categories", "entries", "activities", "tags", "reports")

    def __init__(self) -> None:
        self.categories: dict[str, Category] = {}
        self.entries: dict[str, JournalEntry] = {}
        self.activities: dict[str, Activity] = {}
        self.tags: dict[str, Tag] = {}
        self.reports: dict[str, Report] = {}
        self._lock = asyncio.Lock()

    # --- transactions ---------------------------------------------------

    def _snapshot(self) -> dict[str, dict]:
        return {table: dict(getattr(self, table)) for table in self._TABLES}

    def _restore(self, snapshot: dict[str, dict]) -> None:
        for table, rows in snapshot.items():
            setattr(self, table, rows)

    def _save(self) -> None:
        """Persist state. Nothing to do in memory."""

    def _in_transaction(self) -> bool:
        return any(store is self for store in _open_transactions.get())

    @asynccontextmanager
    async def _savepoint(self) -> AsyncIterator[None]:
        snapshot = self._snapshot()
        try:
            yield
        except BaseException:
            self._restore(snapshot)
            logfire.warn("Transaction rolled back")
            raise

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[None]:
        """Wrap a single write: locked and saved unless a transaction is open."""
        if self._in_transaction():
            yield
            return
        async with self._lock:
            yield
            self._save()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryJournalStore"]:
        """Group writes: on any error every write inside is rolled back.

        A nested transaction rolls back only its own writes.
        """
        if self._in_transaction():
            async with self._savepoint():
                yield self
            return

        async with self._lock:
            token = _open_transactions.set(_open_transactions.get() + (self,))
            try:
                async with self._savepoint():
                    yield self
            finally:
                _open_transactions.reset(token)
            self._save()

    # --- categories -----------------------------------------------------

    async def list_categories(self) -> list[Category]:
        # Default categories first, then by name
        return sorted(
            self.categories.values(), key=lambda c: (not c.is_default, c.name.lower())
        )

    async def get_category(self, category_id: str) -> Category | None:
        return self.categories.get(category_id)

    def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        return any(c.name == name and c.id != exclude_id for c in self.categories.values())

    async def create_category(
        self,
        name: str,
        description: str | None = None,
        color: str = "#6B7280",
        icon: str | None = None,
        is_default: bool = False,
    ) -> Category:
        async with self._write():
            if self._name_taken(name):
                raise UniqueConstraintError("Category", name)
            category = Category(
                id=_new_id(),
                name=name,
                description=description,
                color=color,
                icon=icon,
                is_default=is_default,
            )
            self.categories[category.id] = category
        return category

    async def update_category(
        self,
        category_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
        icon: str | None = None,
    ) -> Category:
        """Change the given fields of a category; None leaves a field unchanged.

        A rename is copied onto the category's activities.

        Raises:
            RecordNotFoundError: No category has that id.
            UniqueConstraintError: Another category already has the new name.
        """
        changes = {
            field: value
            for field, value in (
                ("name", name),
                ("description", description),
                ("color", color),
                ("icon", icon),
            )
            if value is not None
        }
        async with self._write():
            existing = self.categories.get(category_id)
            if existing is None:
                raise RecordNotFoundError("Category", category_id)
            if name is not None and self._name_taken(name, exclude_id=category_id):
                raise UniqueConstraintError("Category", name)

            category = existing.model_copy(update=changes)
            self.categories[category_id] = category
            if category.name != existing.name:
                for activity in list(self.activities.values()):
                    if activity.category_id == category_id:
                        self.activities[activity.id] = activity.model_copy(
                            update={"category_name": category.name}
                        )
        return category

    async def delete_category(self, category_id: str) -> Category:
        """Delete an unused custom category.

        Raises:
            RecordNotFoundError: No category has that id.
            CategoryProtectedError: The category is a default one or has activities.
        """
        async with self._write():
            category = self.categories.get(category_id)
            if category is None:
                raise RecordNotFoundError("Category", category_id)
            if category.is_default:
                raise CategoryProtectedError("Cannot delete default categories")
            if await self.count_activities(category_id):
                raise CategoryProtectedError(
                    "Cannot delete category with existing activities. "
                    "Please reassign or delete activities first."
                )
            del self.categories[category_id]
        return category

    async def count_activities(self, category_id: str) -> int:
        return sum(1 for a in self.activities.values() if a.category_id == category_id)

    # --- entries and activities -----------------------------------------

    async def get_entry(self, date: str) -> JournalEntry | None:
        for entry in self.entries.values():
            if entry.date == date:
                return entry
        return None

    async def get_entry_by_id(self, entry_id: str) -> JournalEntry | None:
        return self.entries.get(entry_id)

    async def upsert_entry(self, date: str) -> JournalEntry:
        async with self._write():
            entry = await self.get_entry(date)
            if entry is None:
                now = _now()
                entry = JournalEntry(id=_new_id(), date=date, created_at=now, updated_at=now)
                self.entries[entry.id] = entry
        return entry

    async def delete_entry(self, entry_id: str) -> int:
        """Delete an entry and its activities; returns how many activities went with it."""
        async with self._write():
            if entry_id not in self.entries:
                raise RecordNotFoundError("Journal entry", entry_id)
            deleted = self._drop_activities(entry_id)
            del self.entries[entry_id]
        return deleted

    async def list_entries(self) -> list[JournalEntry]:
        return sorted(self.entries.values(), key=lambda e: e.date, reverse=True)

    async def list_activities(self, entry_id: str) -> list[Activity]:
        return [a for a in self.activities.values() if a.entry_id == entry_id]

    def _drop_activities(self, entry_id: str) -> int:
        doomed = [a.id for a in self.activities.values() if a.entry_id == entry_id]
        for activity_id in doomed:
            del self.activities[activity_id]
        return len(doomed)

    async def delete_activities(self, entry_id: str) -> int:
        async with self._write():
            return self._drop_activities(entry_id)

    async def create_activity(
        self,
        entry_id: str,
        *,
        description: str,
        duration_minutes: int | None,
        notes: str | None,
        category_id: str,
        tags: list[Tag],
    ) -> Activity:
        async with self._write():
            entry = self.entries.get(entry_id)
            if entry is None:
                raise RecordNotFoundError("Journal entry", entry_id)
            category = self.categories.get(category_id)
            if category is None:
                raise RecordNotFoundError("Category", category_id)

            activity = Activity(
                id=_new_id(),
                entry_id=entry_id,
                date=entry.date,
                description=description,
                duration_minutes=duration_minutes,
                notes=notes,
                category_id=category_id,
                category_name=category.name,
                tags=[tag.name for tag in tags],
            )
            self.activities[activity.id] = activity
        return activity

    # --- tags -----------------------------------------------------------

    async def find_tag(self, name: str) -> Tag | None:
        for tag in self.tags.values():
            if tag.name == name:
                return tag
        return None

    async def create_tag(self, name: str) -> Tag:
        async with self._write():
            if await self.find_tag(name) is not None:
                raise UniqueConstraintError("Tag", name)
            tag = Tag(id=_new_id(), name=name)
            self.tags[tag.id] = tag
        return tag

    # --- retrieval ------------------------------------------------------

    async def search_activities(
        self, keywords: list[str], limit: int = 200
    ) -> list[Activity]:
        """Case-insensitive substring match on description or notes, newest first."""
        terms = [k.lower() for k in keywords if k.strip()]
        if not terms:
            return []

        def matches(activity: Activity) -> bool:
            haystacks = (activity.description.lower(), (activity.notes or "").lower())
            return any(term in text for term in terms for text in haystacks)

        found = [a for a in self.activities.values() if matches(a)]
        found.sort(key=lambda a: a.date, reverse=True)
        return found[:limit]

    async def activities_between(self, start: str, end: str) -> list[Activity]:
        """Activities dated within [start, end] (inclusive), oldest first."""
        found = [a for a in self.activities.values() if start <= a.date <= end]
        found.sort(key=lambda a: a.date)
        return found

    # --- reports --------------------------------------------------------

    async def get_report(self, report_id: str) -> Report | None:
        return self.reports.get(report_id)

    async def find_report(
        self, type: str, start_date: str, status: ReportStatus | None = None
    ) -> Report | None:
        for report in self.reports.values():
            if report.type != type or report.start_date != start_date:
                continue
            if status is None or report.status == status:
                return report
        return None

    async def upsert_report(
        self, type: str, start_date: str, end_date: str, status: ReportStatus
    ) -> Report:
        async with self._write():
            existing = await self.find_report(type, start_date)
            if existing is not None:
                report = existing.model_copy(update={"status": status})
            else:
                report = Report(
                    id=_new_id(),
                    type=type,
                    start_date=start_date,
                    end_date=end_date,
                    status=status,
                    created_at=_now(),
                )
            self.reports[report.id] = report
        return report

    async def update_report(
        self,
        report_id: str,
        status: ReportStatus,
        content: WeeklyReportContent | None = None,
    ) -> Report:
        async with self._write():
            existing = self.reports.get(report_id)
            if existing is None:
                raise RecordNotFoundError("Report", report_id)
            report = existing.model_copy(update={"status": status, "content": content})
            self.reports[report.id] = report
        return report

    async def list_reports(self, status: ReportStatus | None = None) -> list[Report]:
        reports = [r for r in self.reports.values() if status is None or r.status == status]
        return sorted(reports, key=lambda r: r.start_date, reverse=True)


class JsonJournalStore(MemoryJournalStore):
    """A `MemoryJournalStore` persisted to a single JSON file."""

    _MODELS = {
        "categories": Category,
        "entries": JournalEntry,
        "activities": Activity,
        "tags": Tag,
        "reports": Report,
    }

    def __init__(self, path: Path):
        """Initialize the store.

        Args:
            path: JSON file to load from and save to (e.g. 'data/daybook.json')
        """
        super().__init__()
        self.path = path
        self._load()

    def _load(self) -> None:
        """Load state from disk."""
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e

        for table, model in self._MODELS.items():
            rows = [model.model_validate(row) for row in data.get(table, [])]
            setattr(self, table, {row.id: row for row in rows})

    def _save(self) -> None:
        """Save state to disk."""
        data = {
            table: [row.model_dump(mode="json") for row in getattr(self, table).values()]
            for table in self._TABLES
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self.path)


async def get_or_create_tag(store: JournalStore, name: str) -> Tag:
    """Fetch a tag by name, creating it if needed.

    Losing a creation race to another writer is not an error: the
    unique-constraint failure falls back to reading the winner's row.
    """
    tag = await store.find_tag(name)
    if tag is not None:
        return tag
    try:
        return await store.create_tag(name)
    except UniqueConstraintError:
        tag = await store.find_tag(name)
        if tag is None:
            raise
        return tag


async def ensure_tags(
    store: JournalStore, names: Iterable[str], concurrent: bool = False
) -> list[Tag]:
    """Resolve tag names to tags, creating missing ones.

    Args:
        store: The journal store.
        names: Tag names; blanks and duplicates are ignored.
        concurrent: Look up the names concurrently.
    """
    unique: list[str] = []
    for name in names:
        name = name.strip()
        if name and name not in unique:
            unique.append(name)

    if concurrent:
        return list(await asyncio.gather(*(get_or_create_tag(store, n) for n in unique)))
    return [await get_or_create_tag(store, n) for n in unique]
