"""Synthesizer - structured answers and weekly reports grounded in activities."""

from collections.abc import Sequence

import logfire
from pydantic_ai.settings import ModelSettings

from ..config import REPORT_SETTINGS, SUMMARY_SETTINGS
from ..contracts import render_schema, require, validate
from ..llm import ModelClient
from ..prompts import synthesizer_prompt, weekly_report_prompt
from ..schemas import Activity, Summary, WeeklyReportContent

NOT_FOUND_SUMMARY = Summary(
    main_summary=(
        "I couldn't find any activities related to your query. "
        "Please try different search terms."
    )
)

ERROR_SUMMARY = Summary(
    main_summary=(
        "I encountered an error while trying to summarize the results. "
        "Please try again."
    )
)


class SynthesizerAgent:
    """Turns retrieved activities into a summary or a weekly report."""

    def __init__(
        self,
        client: ModelClient,
        summary_settings: ModelSettings = SUMMARY_SETTINGS,
        report_settings: ModelSettings = REPORT_SETTINGS,
    ):
        self.client = client
        self.summary_settings = summary_settings
        self.report_settings = report_settings

    @logfire.instrument("summarize")
    async def summarize(self, query: str, activities: Sequence[Activity]) -> Summary:
        """Answer `query` from `activities`; always returns a renderable summary."""
        if not activities:
            return NOT_FOUND_SUMMARY.model_copy(deep=True)

        prompt = synthesizer_prompt(query, activities, render_schema(Summary))
        try:
            raw = await self.client.generate(
                prompt,
                schema=Summary,
                schema_name="search_summary",
                settings=self.summary_settings,
                label="summary synthesis",
            )
            summary = require(validate(raw, Summary))
        except Exception as e:
            logfire.error("Summary synthesis failed", error=str(e))
            return ERROR_SUMMARY.model_copy(deep=True)

        logfire.info("Generated summary", activity_count=len(activities))
        return summary

    @logfire.instrument("generate_weekly_report")
    async def generate_weekly_report(
        self, activities: Sequence[Activity]
    ) -> WeeklyReportContent | None:
        """Build a weekly report, or return None so the caller marks it FAILED."""
        if not activities:
            return None

        prompt = weekly_report_prompt(activities, render_schema(WeeklyReportContent))
        try:
            raw = await self.client.generate(
                prompt,
                schema=WeeklyReportContent,
                schema_name="weekly_report",
                settings=self.report_settings,
                label="weekly report generation",
            )
            report = require(validate(raw, WeeklyReportContent))
        except Exception as e:
            logfire.error("Weekly report generation failed", error=str(e))
            return None

        logfire.info("Generated weekly report", title=report.title)
        return report
