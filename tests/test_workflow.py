"""Tests for the search workflow."""

import pytest

from daybook.agents import NOT_FOUND_SUMMARY
from daybook.workflow import NO_KEYWORDS_SUMMARY, create_search_workflow, run_search

from .conftest import FakeModelClient, category_id


async def _add(store, date, description, notes=None):
    entry = await store.upsert_entry(date)
    return await store.create_activity(
        entry.id,
        description=description,
        duration_minutes=45,
        notes=notes,
        category_id=await category_id(store, "Work"),
        tags=[],
    )


@pytest.mark.asyncio
async def test_full_pipeline(seeded_store):
    old = await _add(seeded_store, "2024-06-01", "Tuned postgres vacuum")
    new = await _add(seeded_store, "2024-06-05", "Lunch", notes="chat about postgres")
    await _add(seeded_store, "2024-06-03", "Guitar practice")
    client = FakeModelClient(
        {"keywords": ["postgres", "database", "vacuum"]},
        {"ranked_ids": [old.id]},
        {"mainSummary": "You tuned postgres on June 1."},
    )

    result = await run_search("postgres work?", create_search_workflow(seeded_store, client))

    assert result.keywords == ["postgres", "database", "vacuum"]
    assert [a.id for a in result.activities] == [old.id]
    assert result.summary.main_summary == "You tuned postgres on June 1."
    # Candidates reach the reranker newest first
    rerank_prompt = client.calls[1]["prompt"]
    assert rerank_prompt.index(new.id) < rerank_prompt.index(old.id)
    assert "Guitar" not in rerank_prompt
    assert "Tuned postgres vacuum" in client.calls[2]["prompt"]


@pytest.mark.asyncio
async def test_no_keywords_ends_early(seeded_store):
    await _add(seeded_store, "2024-06-01", "anything")
    client = FakeModelClient("not json")

    result = await run_search("is it ok", create_search_workflow(seeded_store, client))

    assert result.keywords == []
    assert result.activities == []
    assert result.summary == NO_KEYWORDS_SUMMARY
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_no_candidates(seeded_store):
    client = FakeModelClient({"keywords": ["skiing", "snow", "mountain"]})

    result = await run_search("skiing trips", create_search_workflow(seeded_store, client))

    assert result.activities == []
    assert result.summary == NOT_FOUND_SUMMARY
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_ranked_activities_capped_for_synthesis(seeded_store):
    for day in range(1, 31):
        await _add(seeded_store, f"2024-06-{day:02d}", f"coding session {day}")
    candidates = await seeded_store.search_activities(["coding"])
    ids = [a.id for a in candidates]
    client = FakeModelClient(
        {"keywords": ["coding", "programming", "development"]},
        {"ranked_ids": ids[0:10]},
        {"ranked_ids": ids[10:20]},
        {"ranked_ids": ids[20:30]},
        {"mainSummary": "Lots of coding."},
    )

    result = await run_search("coding", create_search_workflow(seeded_store, client))

    assert [a.id for a in result.activities] == ids[:20]
    assert len(client.calls) == 5
