"""Reranker - filters and orders candidate activities by relevance to a query."""

from collections.abc import Sequence

import logfire
from pydantic_ai.settings import ModelSettings

from ..config import RERANK_BATCH_SIZE, RERANK_FALLBACK_COUNT, RERANK_SETTINGS
from ..contracts import render_schema, require, validate
from ..llm import ModelClient
from ..prompts import reranker_prompt
from ..schemas import Activity, RerankResult


def batched(items: Sequence[Activity], size: int) -> list[Sequence[Activity]]:
    """Split `items` into consecutive batches of at most `size`."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class RerankerAgent:
    """Reranks candidates in fixed-size batches.

    Ranking is piecewise: each batch is ordered by the model, and batches are
    concatenated in candidate order (date-descending from retrieval). There is
    no global re-sort across batches.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: ModelSettings = RERANK_SETTINGS,
        batch_size: int = RERANK_BATCH_SIZE,
        fallback_count: int = RERANK_FALLBACK_COUNT,
    ):
        self.client = client
        self.settings = settings
        self.batch_size = batch_size
        self.fallback_count = fallback_count

    async def _rank_batch(self, query: str, batch: Sequence[Activity]) -> list[str]:
        prompt = reranker_prompt(query, batch, render_schema(RerankResult))
        raw = await self.client.generate(
            prompt,
            schema=RerankResult,
            schema_name="reranked_activities",
            settings=self.settings,
            label="rerank",
        )
        return require(validate(raw, RerankResult)).ranked_ids

    @logfire.instrument("rerank")
    async def rerank(self, query: str, candidates: Sequence[Activity]) -> list[Activity]:
        """Return the relevant subset of `candidates`, most relevant first.

        A failing batch is skipped; if nothing survives, the first
        `fallback_count` candidates are returned in their original order.
        """
        if not candidates:
            return []

        ranked_ids: list[str] = []
        batches = batched(candidates, self.batch_size)
        for index, batch in enumerate(batches, 1):
            try:
                batch_ids = await self._rank_batch(query, batch)
            except Exception as e:
                logfire.warn(
                    "Rerank batch failed, skipping",
                    batch=index,
                    total_batches=len(batches),
                    error=str(e),
                )
                continue
            logfire.info("Reranked batch", batch=index, kept=len(batch_ids))
            ranked_ids.extend(batch_ids)

        by_id = {activity.id: activity for activity in candidates}
        seen: set[str] = set()
        ranked: list[Activity] = []
        for activity_id in ranked_ids:
            if activity_id in seen or activity_id not in by_id:
                continue
            seen.add(activity_id)
            ranked.append(by_id[activity_id])

        if not ranked:
            logfire.info(
                "Rerank produced no results, falling back to candidate order",
                fallback_count=min(self.fallback_count, len(candidates)),
            )
            return list(candidates[: self.fallback_count])

        return ranked
