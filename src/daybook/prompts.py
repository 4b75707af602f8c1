"""Prompt builders for the Daybook agents.

Each function is pure: typed inputs plus a serialized target schema in,
a single instruction string out.
"""

import json
from collections.abc import Sequence

from .schemas import Activity, Category

NOTES_PREVIEW_CHARS = 200


def describe_activity(activity: Activity) -> str:
    """Render an activity as a context block for synthesis prompts."""
    duration = (
        f"{activity.duration_minutes}min"
        if activity.duration_minutes is not None
        else "N/A"
    )
    tags = " ".join(f"#{tag}" for tag in activity.tags)
    return (
        f"Date: {activity.date} | Category: {activity.category_name or 'Unknown'}"
        f" | Duration: {duration} | Tags: {tags}\n"
        f"Description: {activity.description}\n"
        f"Notes: {activity.notes or 'No notes.'}"
    )


def compact_activity(activity: Activity) -> dict[str, str]:
    """Project an activity down to what the reranker needs to judge relevance."""
    notes = activity.notes or ""
    if len(notes) > NOTES_PREVIEW_CHARS:
        notes = notes[:NOTES_PREVIEW_CHARS] + "..."
    return {"id": activity.id, "description": activity.description, "notes": notes}


def planner_prompt(query: str, schema: str) -> str:
    """Prompt turning a free-text question into full-text search keywords."""
    return f"""\
You are a search query planning assistant for a personal journal. Your task is
to analyze a user's natural language query and convert it into a JSON object
containing an array of precise keywords. These keywords will be used for a
database full-text search.

Rules:
- You MUST return ONLY a valid JSON object with a single key "keywords" which is an array of strings.
- Generate between 3 and 7 relevant keywords.
- Include synonyms, related technical terms, and root words to broaden the search scope.
- Exclude conversational words (e.g., "my", "about", "what is", "show me").
- Focus on nouns, verbs, and unique identifiers mentioned in the query.

JSON Schema for your response:
```json
{schema}
```

User Query: "{query}"

Your JSON Output:
"""


def reranker_prompt(query: str, activities: Sequence[Activity], schema: str) -> str:
    """Prompt asking which candidate activities actually answer the query."""
    candidates = json.dumps([compact_activity(a) for a in activities], indent=2)
    return f"""\
You are a relevance ranking assistant for a personal journal. You will receive
a user's query and a list of candidate activities found by keyword search.
Many candidates only share a word with the query and are not relevant.

Rules:
1. Keep only the activities that are genuinely relevant to the query.
2. Order the kept ids from most to least relevant.
3. Use the exact "id" values from the candidate list. Never invent ids.
4. If no candidate is relevant, return an empty "ranked_ids" array.

Respond with JSON only, conforming to this JSON Schema:
```json
{schema}
```

User Query: "{query}"

Candidate activities:
```json
{candidates}
```

Your JSON response:"""


def import_prompt(raw_text: str, categories: Sequence[Category], schema: str) -> str:
    """Prompt extracting and classifying the activities of one journal day."""
    category_context = json.dumps(
        [{"id": c.id, "name": c.name, "description": c.description} for c in categories],
        indent=2,
    )
    return f"""\
You are an expert data extraction and classification assistant. Your task is to
analyze a user's journal entry and convert it into a structured JSON object
containing an array of activities.

For each activity found in the text, you must perform the following:
1. **Extract**: Pull out the description, duration, notes, and tags.
   - Convert durations in hours (e.g., 1.5h) or days (e.g. 1d) to minutes (e.g., 90).
     If no duration is specified, use null.
   - Tags are a comma-separated string of relevant keywords; use "" if none are obvious.
2. **Classify**: Assign the activity to one of the provided categories. Use the
   category's `name` and `description` to make the most accurate choice.
3. **Assign ID**: You MUST use the exact `id` of the chosen category for the
   `categoryId` field. Never use an id that is not in the list below.

Here are the available categories you MUST use for classification:
```json
{category_context}
```

Your final output MUST be a single JSON object (JSON only, no prose) that strictly
conforms to the following JSON Schema. The root object must have an "activities"
key, which is an array.
```json
{schema}
```

Here is the journal entry to process:
<journal_entry>
{raw_text}
</journal_entry>

Your JSON response:"""


def synthesizer_prompt(query: str, activities: Sequence[Activity], schema: str) -> str:
    """Prompt answering a query from the retrieved activities only."""
    context = "\n---\n".join(describe_activity(a) for a in activities)
    return f"""\
You are a helpful journal analysis assistant. Your task is to synthesize a concise
answer to a user's query based on a set of relevant journal activities provided
as context.

Rules:
- Base your entire answer on the provided context. Do not introduce any information
  that is absent from the context.
- If the context does not contain enough information to answer, state that clearly.
- `mainSummary` answers the query directly in markdown, in under 150 words.
- Use `sections` for key findings or timelines, and `timeSpent` for time totals
  computed from the durations in the context. Use null when they do not apply.
- Refer to specific details like durations, dates and projects from the context.

Respond with JSON only, conforming to this JSON Schema:
```json
{schema}
```

User Query: "{query}"

Context from Journal Entries:
---
{context}
---

Your JSON response:"""


def weekly_report_prompt(activities: Sequence[Activity], schema: str) -> str:
    """Prompt computing a structured weekly report from a week of activities."""
    context = "\n------------------------\n".join(describe_activity(a) for a in activities)
    return f"""\
You are a data analyst assistant. Your task is to analyze a week of journal
activities and generate a structured JSON report.

Rules:
1. Your response MUST be a single JSON object (JSON only) that strictly conforms
   to the provided JSON Schema.
2. Base your analysis ONLY on the provided journal entries. Do not invent information.
3. Calculate time totals by category accurately from the 'Duration' field.
4. `keyActivities` lists the 3-5 most significant activities, most significant first.
5. `tagAnalysis` lists the 3-7 most frequent tags with their count and total minutes.
6. `insightsAndTrends` contains actionable observations based on the data.

JSON Schema for your response:
```json
{schema}
```

Weekly Activities Data:
{context}

Your structured JSON response:"""
