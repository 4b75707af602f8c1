"""Saving hand-written journal entries."""

from collections.abc import Sequence

import logfire

from .exceptions import EntryExistsError
from .schemas import Activity, ActivityInput
from .storage import JournalStore, ensure_tags


async def save_day_entry(
    store: JournalStore,
    date: str,
    activities: Sequence[ActivityInput],
    force: bool = False,
) -> list[Activity]:
    """Store a day's activities.

    Args:
        store: The journal store
        date: YYYY-MM-DD
        activities: Activities to store for that day
        force: Replace the day's existing activities instead of refusing

    Returns:
        The created activities

    Raises:
        EntryExistsError: The date already has an entry and `force` is False.
        RecordNotFoundError: An activity names an unknown category; nothing is kept.
    """
    async with store.transaction():
        entry = await store.get_entry(date)
        if entry is not None and not force:
            raise EntryExistsError(date)

        entry = await store.upsert_entry(date)
        deleted = await store.delete_activities(entry.id)

        created = []
        for item in activities:
            tags = await ensure_tags(store, item.tags.split(","), concurrent=True)
            created.append(
                await store.create_activity(
                    entry.id,
                    description=item.description,
                    duration_minutes=item.duration_minutes,
                    notes=item.notes,
                    category_id=item.category_id,
                    tags=tags,
                )
            )

    logfire.info("Saved journal entry", date=date, activities=len(created), replaced=deleted)
    return created
