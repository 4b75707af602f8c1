"""Journal text parser for bulk import."""

import re
from dataclasses import dataclass

# A day starts at a line beginning with a YYYY-MM-DD-shaped token
_DAY_BOUNDARY_RE = re.compile(r"\n(?=\d{4}-\d{2}-\d{2})")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class JournalDayEntry:
    """One calendar day's slice of the raw journal."""

    date: str
    raw_text: str


def split_journal(text: str) -> list[JournalDayEntry]:
    """Split a multi-day journal into per-day entries.

    The first line of each segment is taken as its date token; it is only
    checked later (see `is_valid_date`) so a malformed header still produces
    an entry the importer can report on.

    Args:
        text: The full journal text

    Returns:
        Day entries in input order
    """
    entries = []
    for segment in _DAY_BOUNDARY_RE.split(text):
        segment = segment.strip()
        if not segment:
            continue
        first_line, _, rest = segment.partition("\n")
        entries.append(JournalDayEntry(date=first_line.strip(), raw_text=rest))
    return entries


def is_valid_date(token: str) -> bool:
    """Check a date token is exactly YYYY-MM-DD."""
    return bool(_DATE_RE.match(token))


def preview(text: str, length: int = 100) -> str:
    """Shorten `text` for a progress line."""
    if len(text) > length:
        return text[:length] + "..."
    return text
