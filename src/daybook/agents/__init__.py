"""LLM agents for the search and report pipelines."""

from .planner import QueryPlannerAgent, fallback_keywords
from .reranker import RerankerAgent
from .synthesizer import ERROR_SUMMARY, NOT_FOUND_SUMMARY, SynthesizerAgent

__all__ = [
    "QueryPlannerAgent",
    "fallback_keywords",
    "RerankerAgent",
    "SynthesizerAgent",
    "NOT_FOUND_SUMMARY",
    "ERROR_SUMMARY",
]
