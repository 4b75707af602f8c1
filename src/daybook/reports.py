"""Weekly report generation."""

from datetime import date, timedelta

import logfire

from .agents import SynthesizerAgent
from .exceptions import NothingToReportError, UnsupportedReportError
from .schemas import Report, ReportStatus
from .storage import JournalStore

WEEKLY = "WEEKLY"


def week_bounds(day: date) -> tuple[date, date]:
    """Return the Monday and Sunday of the week containing `day`."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def parse_day(value: str) -> date:
    """Parse a YYYY-MM-DD string (a longer ISO timestamp is cut to its date)."""
    try:
        return date.fromisoformat(value[:10])
    except ValueError as e:
        raise UnsupportedReportError(f"Invalid date: {value!r}") from e


async def request_weekly_report(
    store: JournalStore,
    synthesizer: SynthesizerAgent,
    report_type: str,
    date_string: str,
) -> tuple[Report, bool]:
    """Return the report for the week containing `date_string`.

    An existing completed report is returned as is. Otherwise the record is
    marked PENDING, generated, and ends COMPLETED (with content) or FAILED.

    Returns:
        The report and whether it was generated by this call.

    Raises:
        UnsupportedReportError: Unknown report type or unparseable date.
        NothingToReportError: No activities in that week.
    """
    if report_type != WEEKLY:
        raise UnsupportedReportError("Only 'WEEKLY' report type is supported for now.")

    start, end = (d.isoformat() for d in week_bounds(parse_day(date_string)))

    existing = await store.find_report(WEEKLY, start, ReportStatus.COMPLETED)
    if existing is not None:
        logfire.info("Found existing completed report", start_date=start)
        return existing, False

    activities = await store.activities_between(start, end)
    if not activities:
        raise NothingToReportError(
            "No activities found for this period to generate a report."
        )

    report = await store.upsert_report(WEEKLY, start, end, ReportStatus.PENDING)
    content = await synthesizer.generate_weekly_report(activities)

    if content is None:
        logfire.warn("Weekly report generation failed", start_date=start)
        return await store.update_report(report.id, ReportStatus.FAILED), True

    logfire.info("Weekly report completed", start_date=start, activities=len(activities))
    return await store.update_report(report.id, ReportStatus.COMPLETED, content), True
