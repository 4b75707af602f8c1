"""Shared fixtures: a scripted model client and a seeded in-memory store."""

import json

import logfire
import pytest
import pytest_asyncio

from daybook.schemas import Activity
from daybook.storage import MemoryJournalStore

logfire.configure(send_to_logfire=False, console=False)


class FakeModelClient:
    """Stands in for `ModelClient`, replaying scripted responses in order.

    Each scripted item is either the raw text to return, a dict (returned as
    JSON), or an exception instance to raise.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def generate(
        self,
        prompt,
        *,
        schema=None,
        schema_name="response",
        settings=None,
        label="generation",
    ):
        self.calls.append(
            {
                "prompt": prompt,
                "schema": schema,
                "schema_name": schema_name,
                "settings": settings,
                "label": label,
            }
        )
        if not self.responses:
            raise AssertionError(f"Unexpected model call: {label}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return json.dumps(item)
        return item


def make_activity(id: str, date: str = "2024-06-10", **kwargs) -> Activity:
    defaults = {
        "entry_id": f"entry-{date}",
        "description": f"Activity {id}",
        "category_id": "cat-work",
        "category_name": "Work",
    }
    defaults.update(kwargs)
    return Activity(id=id, date=date, **defaults)


def report_payload():
    return {
        "title": "Weekly Report: June 10 - June 16, 2024",
        "summary": "A busy week.",
        "timeAnalysis": {
            "totalMinutes": 300,
            "professionalMinutes": 200,
            "projectMinutes": 50,
            "lifeMinutes": 50,
            "breakdownRatio": "67% Professional / 17% Project / 17% Life",
        },
        "keyActivities": [
            {"categoryName": "Work", "description": "Shipped v2", "timeSpent": 120},
            {"categoryName": "Work", "description": "Code review", "timeSpent": 80},
            {"categoryName": "Health", "description": "Ran 10k", "timeSpent": None},
        ],
        "tagAnalysis": [
            {"tag": "release", "minutes": 120, "count": 2},
            {"tag": "review", "minutes": 80, "count": 1},
            {"tag": "running", "minutes": 50, "count": 1},
        ],
        "insightsAndTrends": "- Mostly work.",
    }


@pytest.fixture
def store():
    return MemoryJournalStore()


@pytest_asyncio.fixture
async def seeded_store(store):
    """Store with one default and two described custom categories."""
    await store.create_category("Uncategorized", is_default=True)
    await store.create_category("Work", description="Paid professional work")
    await store.create_category("Health", description="Exercise, sleep and meals")
    return store


async def category_id(store, name: str) -> str:
    for category in await store.list_categories():
        if category.name == name:
            return category.id
    raise KeyError(name)
