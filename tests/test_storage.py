"""Tests for the journal stores."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from daybook.exceptions import (
    CategoryProtectedError,
    PersistenceError,
    RecordNotFoundError,
    UniqueConstraintError,
)
from daybook.journal import save_day_entry
from daybook.schemas import ActivityInput, ReportStatus, Tag
from daybook.storage import (
    JsonJournalStore,
    MemoryJournalStore,
    ensure_tags,
    get_or_create_tag,
)

from .conftest import category_id


async def _add_activity(store, date, description, notes=None, category="Work"):
    entry = await store.upsert_entry(date)
    return await store.create_activity(
        entry.id,
        description=description,
        duration_minutes=30,
        notes=notes,
        category_id=await category_id(store, category),
        tags=[],
    )


class TestCategories:
    @pytest.mark.asyncio
    async def test_defaults_listed_first(self, seeded_store):
        names = [c.name for c in await seeded_store.list_categories()]
        assert names == ["Uncategorized", "Health", "Work"]

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, seeded_store):
        with pytest.raises(UniqueConstraintError):
            await seeded_store.create_category("Work", description="again")

    @pytest.mark.asyncio
    async def test_get_category(self, seeded_store):
        work = await category_id(seeded_store, "Work")

        assert (await seeded_store.get_category(work)).name == "Work"
        assert await seeded_store.get_category("nope") is None

    @pytest.mark.asyncio
    async def test_update_category(self, seeded_store):
        await _add_activity(seeded_store, "2024-06-10", "Standup")
        work = await category_id(seeded_store, "Work")

        updated = await seeded_store.update_category(
            work, name="Professional", color="#10B981"
        )

        assert updated.name == "Professional"
        assert updated.color == "#10B981"
        assert updated.description == "Paid professional work"
        [activity] = seeded_store.activities.values()
        assert activity.category_name == "Professional"

    @pytest.mark.asyncio
    async def test_update_keeps_own_name(self, seeded_store):
        work = await category_id(seeded_store, "Work")

        updated = await seeded_store.update_category(work, name="Work", description="Jobs")

        assert updated.description == "Jobs"

    @pytest.mark.asyncio
    async def test_update_name_conflict(self, seeded_store):
        work = await category_id(seeded_store, "Work")

        with pytest.raises(UniqueConstraintError):
            await seeded_store.update_category(work, name="Health")
        assert (await seeded_store.get_category(work)).name == "Work"

    @pytest.mark.asyncio
    async def test_update_missing(self, seeded_store):
        with pytest.raises(RecordNotFoundError):
            await seeded_store.update_category("nope", name="Anything")

    @pytest.mark.asyncio
    async def test_delete_unused_category(self, seeded_store):
        health = await category_id(seeded_store, "Health")

        deleted = await seeded_store.delete_category(health)

        assert deleted.name == "Health"
        assert await seeded_store.get_category(health) is None

    @pytest.mark.asyncio
    async def test_delete_refuses_default_and_used(self, seeded_store):
        await _add_activity(seeded_store, "2024-06-10", "Standup")
        default = await category_id(seeded_store, "Uncategorized")
        work = await category_id(seeded_store, "Work")

        with pytest.raises(CategoryProtectedError, match="default"):
            await seeded_store.delete_category(default)
        with pytest.raises(CategoryProtectedError, match="existing activities"):
            await seeded_store.delete_category(work)
        with pytest.raises(RecordNotFoundError):
            await seeded_store.delete_category("nope")

        assert len(seeded_store.categories) == 3
        assert await seeded_store.count_activities(work) == 1


class TestEntries:
    @pytest.mark.asyncio
    async def test_upsert_entry_is_idempotent(self, store):
        first = await store.upsert_entry("2024-06-10")
        second = await store.upsert_entry("2024-06-10")
        assert first.id == second.id
        assert len(store.entries) == 1

    @pytest.mark.asyncio
    async def test_create_activity_denormalizes(self, seeded_store):
        entry = await seeded_store.upsert_entry("2024-06-10")
        tag = await seeded_store.create_tag("running")

        activity = await seeded_store.create_activity(
            entry.id,
            description="Ran 5k",
            duration_minutes=30,
            notes=None,
            category_id=await category_id(seeded_store, "Health"),
            tags=[tag],
        )

        assert activity.date == "2024-06-10"
        assert activity.category_name == "Health"
        assert activity.tags == ["running"]

    @pytest.mark.asyncio
    async def test_create_activity_unknown_category(self, seeded_store):
        entry = await seeded_store.upsert_entry("2024-06-10")
        with pytest.raises(PersistenceError):
            await seeded_store.create_activity(
                entry.id,
                description="x",
                duration_minutes=None,
                notes=None,
                category_id="nope",
                tags=[],
            )

    @pytest.mark.asyncio
    async def test_delete_activities_counts(self, seeded_store):
        await _add_activity(seeded_store, "2024-06-10", "one")
        await _add_activity(seeded_store, "2024-06-10", "two")
        entry = await seeded_store.get_entry("2024-06-10")

        assert await seeded_store.delete_activities(entry.id) == 2
        assert await seeded_store.list_activities(entry.id) == []

    @pytest.mark.asyncio
    async def test_get_entry_by_id(self, store):
        entry = await store.upsert_entry("2024-06-10")

        assert await store.get_entry_by_id(entry.id) == entry
        assert await store.get_entry_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_delete_entry_removes_activities(self, seeded_store):
        await _add_activity(seeded_store, "2024-06-10", "one")
        await _add_activity(seeded_store, "2024-06-10", "two")
        kept = await _add_activity(seeded_store, "2024-06-11", "other day")
        entry = await seeded_store.get_entry("2024-06-10")

        assert await seeded_store.delete_entry(entry.id) == 2
        assert await seeded_store.get_entry("2024-06-10") is None
        assert list(seeded_store.activities) == [kept.id]

        with pytest.raises(RecordNotFoundError):
            await seeded_store.delete_entry(entry.id)


class TestTransactions:
    @pytest.mark.asyncio
    async def test_rollback_on_error(self, seeded_store):
        await _add_activity(seeded_store, "2024-06-10", "kept")

        with pytest.raises(RuntimeError):
            async with seeded_store.transaction():
                entry = await seeded_store.upsert_entry("2024-06-10")
                await seeded_store.delete_activities(entry.id)
                await seeded_store.upsert_entry("2024-06-11")
                raise RuntimeError("boom")

        assert await seeded_store.get_entry("2024-06-11") is None
        entry = await seeded_store.get_entry("2024-06-10")
        assert [a.description for a in await seeded_store.list_activities(entry.id)] == [
            "kept"
        ]

    @pytest.mark.asyncio
    async def test_commit(self, store):
        async with store.transaction():
            await store.upsert_entry("2024-06-10")
        assert await store.get_entry("2024-06-10") is not None

    @pytest.mark.asyncio
    async def test_rollback_keeps_concurrent_writes(self, seeded_store):
        broken = [ActivityInput(description="Read", category_id="missing", tags="books")]

        results = await asyncio.gather(
            save_day_entry(seeded_store, "2024-06-10", broken),
            seeded_store.create_category("Reading", description="Books"),
            return_exceptions=True,
        )

        assert isinstance(results[0], PersistenceError)
        assert results[1].name == "Reading"
        assert await seeded_store.get_category(results[1].id) == results[1]
        assert await seeded_store.get_entry("2024-06-10") is None
        assert await seeded_store.find_tag("books") is None

    @pytest.mark.asyncio
    async def test_outside_write_waits_for_transaction(self, store):
        order = []

        async def slow_transaction():
            async with store.transaction():
                await store.upsert_entry("2024-06-10")
                await asyncio.sleep(0)
                order.append("transaction")

        async def outside_write():
            await store.create_tag("music")
            order.append("write")

        await asyncio.gather(slow_transaction(), outside_write())

        assert order == ["transaction", "write"]

    @pytest.mark.asyncio
    async def test_nested_rollback_is_partial(self, store):
        async with store.transaction():
            await store.upsert_entry("2024-06-10")
            with pytest.raises(RuntimeError):
                async with store.transaction():
                    await store.upsert_entry("2024-06-11")
                    raise RuntimeError("boom")

        assert await store.get_entry("2024-06-10") is not None
        assert await store.get_entry("2024-06-11") is None


class TestRetrieval:
    @pytest.mark.asyncio
    async def test_search_matches_description_or_notes(self, seeded_store):
        await _add_activity(seeded_store, "2024-06-01", "Fixed Postgres index")
        await _add_activity(seeded_store, "2024-06-03", "Standup", notes="talked about postgres")
        await _add_activity(seeded_store, "2024-06-02", "Lunch")

        found = await seeded_store.search_activities(["POSTGRES", "unrelated"])

        assert [a.date for a in found] == ["2024-06-03", "2024-06-01"]

    @pytest.mark.asyncio
    async def test_search_limit_and_empty_keywords(self, seeded_store):
        for day in range(1, 6):
            await _add_activity(seeded_store, f"2024-06-0{day}", "coding")

        assert len(await seeded_store.search_activities(["coding"], limit=3)) == 3
        assert await seeded_store.search_activities(["  "]) == []

    @pytest.mark.asyncio
    async def test_activities_between_inclusive(self, seeded_store):
        for date in ("2024-06-09", "2024-06-10", "2024-06-16", "2024-06-17"):
            await _add_activity(seeded_store, date, "x")

        found = await seeded_store.activities_between("2024-06-10", "2024-06-16")

        assert [a.date for a in found] == ["2024-06-10", "2024-06-16"]


class TestTags:
    @pytest.mark.asyncio
    async def test_get_or_create_reuses(self, store):
        first = await get_or_create_tag(store, "music")
        second = await get_or_create_tag(store, "music")
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_lost_creation_race_reads_winner(self):
        winner = Tag(id="t1", name="music")
        store = MemoryJournalStore()
        store.find_tag = AsyncMock(side_effect=[None, winner])
        store.create_tag = AsyncMock(side_effect=UniqueConstraintError("Tag", "music"))

        assert await get_or_create_tag(store, "music") == winner

    @pytest.mark.asyncio
    async def test_ensure_tags_dedupes_and_trims(self, store):
        tags = await ensure_tags(store, [" music", "music", "", "guitar "])
        assert [t.name for t in tags] == ["music", "guitar"]

    @pytest.mark.asyncio
    async def test_ensure_tags_concurrent(self, store):
        tags = await ensure_tags(store, ["a", "b", "a"], concurrent=True)
        assert [t.name for t in tags] == ["a", "b"]
        assert len(store.tags) == 2


class TestReports:
    @pytest.mark.asyncio
    async def test_upsert_reuses_week_record(self, store):
        pending = await store.upsert_report("WEEKLY", "2024-06-10", "2024-06-16", ReportStatus.PENDING)
        failed = await store.update_report(pending.id, ReportStatus.FAILED)
        again = await store.upsert_report("WEEKLY", "2024-06-10", "2024-06-16", ReportStatus.PENDING)

        assert failed.status == ReportStatus.FAILED
        assert again.id == pending.id
        assert len(store.reports) == 1

    @pytest.mark.asyncio
    async def test_list_reports_by_status(self, store):
        a = await store.upsert_report("WEEKLY", "2024-06-03", "2024-06-09", ReportStatus.PENDING)
        await store.update_report(a.id, ReportStatus.COMPLETED)
        await store.upsert_report("WEEKLY", "2024-06-10", "2024-06-16", ReportStatus.PENDING)

        completed = await store.list_reports(ReportStatus.COMPLETED)

        assert [r.start_date for r in completed] == ["2024-06-03"]
        assert len(await store.list_reports()) == 2

    @pytest.mark.asyncio
    async def test_get_report(self, store):
        report = await store.upsert_report("WEEKLY", "2024-06-10", "2024-06-16", ReportStatus.PENDING)

        assert await store.get_report(report.id) == report
        assert await store.get_report("nope") is None

    @pytest.mark.asyncio
    async def test_update_missing_report(self, store):
        with pytest.raises(RecordNotFoundError):
            await store.update_report("nope", ReportStatus.FAILED)


class TestJsonJournalStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        path = tmp_path / "daybook.json"
        store = JsonJournalStore(path)
        await store.create_category("Work", description="Paid work")
        await _add_activity(store, "2024-06-10", "Wrote docs")

        reloaded = JsonJournalStore(path)

        entry = await reloaded.get_entry("2024-06-10")
        activities = await reloaded.list_activities(entry.id)
        assert [a.description for a in activities] == ["Wrote docs"]
        assert activities[0].category_name == "Work"

    @pytest.mark.asyncio
    async def test_rolled_back_writes_not_saved(self, tmp_path):
        path = tmp_path / "daybook.json"
        store = JsonJournalStore(path)

        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.upsert_entry("2024-06-10")
                raise RuntimeError("boom")

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_write_during_failed_transaction_is_saved(self, tmp_path):
        path = tmp_path / "daybook.json"
        store = JsonJournalStore(path)

        async def failing_transaction():
            async with store.transaction():
                await store.upsert_entry("2024-06-10")
                await asyncio.sleep(0)
                raise RuntimeError("boom")

        results = await asyncio.gather(
            failing_transaction(),
            store.create_category("Reading", description="Books"),
            return_exceptions=True,
        )

        assert isinstance(results[0], RuntimeError)
        reloaded = JsonJournalStore(path)
        assert [c.name for c in await reloaded.list_categories()] == ["Reading"]
        assert await reloaded.get_entry("2024-06-10") is None

    @pytest.mark.asyncio
    async def test_category_changes_saved(self, tmp_path):
        path = tmp_path / "daybook.json"
        store = JsonJournalStore(path)
        work = await store.create_category("Work", description="Paid work")
        health = await store.create_category("Health", description="Exercise")

        await store.update_category(work.id, name="Professional")
        await store.delete_category(health.id)

        assert [c.name for c in await JsonJournalStore(path).list_categories()] == [
            "Professional"
        ]

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "daybook.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError):
            JsonJournalStore(path)
