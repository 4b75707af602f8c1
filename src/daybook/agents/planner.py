"""Query planner - turns a free-text question into search keywords."""

import logfire
from pydantic_ai.settings import ModelSettings

from ..config import PLANNER_SETTINGS
from ..contracts import render_schema, require, validate
from ..llm import ModelClient
from ..prompts import planner_prompt
from ..schemas import SearchTerms

MAX_KEYWORDS = 7
MIN_TOKEN_LENGTH = 3


def _dedupe(words: list[str]) -> list[str]:
    """Drop blank and repeated words (case-insensitive), keeping first occurrences."""
    seen: set[str] = set()
    unique = []
    for word in words:
        word = word.strip()
        if not word or word.lower() in seen:
            continue
        seen.add(word.lower())
        unique.append(word)
    return unique


def fallback_keywords(query: str) -> list[str]:
    """Naive keyword extraction used when the model path fails.

    Examples:
        "what did I do on the auth refactor" -> ["what", "did", "the", "auth", "refactor"]
    """
    tokens = [t for t in query.split() if len(t) >= MIN_TOKEN_LENGTH]
    return _dedupe(tokens)[:MAX_KEYWORDS]


class QueryPlannerAgent:
    """Extracts 3-7 generic keywords for full-text retrieval."""

    def __init__(self, client: ModelClient, settings: ModelSettings = PLANNER_SETTINGS):
        self.client = client
        self.settings = settings

    @logfire.instrument("plan_query")
    async def plan(self, query: str) -> list[str]:
        """Return keywords for `query`; never raises.

        Any model failure (timeout, refusal, malformed JSON, schema mismatch)
        falls back to the whitespace heuristic so the search pipeline always
        has something to retrieve with.
        """
        prompt = planner_prompt(query, render_schema(SearchTerms))
        try:
            raw = await self.client.generate(
                prompt,
                settings=self.settings,
                label="keyword generation",
            )
            terms = require(validate(raw, SearchTerms))
            keywords = _dedupe(terms.keywords)[:MAX_KEYWORDS]
            if not keywords:
                raise ValueError("model returned only blank keywords")
            logfire.info("Generated keywords", query=query, keywords=keywords)
            return keywords
        except Exception as e:
            keywords = fallback_keywords(query)
            logfire.warn(
                "Keyword generation failed, using fallback",
                error=str(e),
                keywords=keywords,
            )
            return keywords
