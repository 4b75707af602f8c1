"""LangGraph workflow for the journal search pipeline.

query -> planner (keywords) -> retrieval (candidates) -> reranker -> synthesizer
"""

from functools import partial

import logfire
from langgraph.graph import END, START, StateGraph

from .agents import QueryPlannerAgent, RerankerAgent, SynthesizerAgent
from .config import CANDIDATE_LIMIT, SYNTHESIS_LIMIT
from .llm import ModelClient
from .schemas import SearchResult, SearchState, Summary
from .storage import JournalStore

NO_KEYWORDS_SUMMARY = Summary(
    main_summary=(
        "I couldn't determine any specific keywords from your query. "
        "Please try being more descriptive."
    )
)


async def planner_node(state: SearchState, planner: QueryPlannerAgent) -> SearchState:
    """Turn the query into search keywords."""
    keywords = await planner.plan(state["query"])
    return {**state, "keywords": keywords}


def no_keywords_node(state: SearchState) -> SearchState:
    """End the search early when no keywords could be found."""
    logfire.info("No keywords for query", query=state["query"])
    return {
        **state,
        "activities": [],
        "summary": NO_KEYWORDS_SUMMARY.model_copy(deep=True),
    }


async def retrieval_node(
    state: SearchState, store: JournalStore, limit: int = CANDIDATE_LIMIT
) -> SearchState:
    """Fetch candidate activities matching any keyword, newest first."""
    candidates = await store.search_activities(state["keywords"], limit=limit)
    logfire.info("Retrieved candidates", count=len(candidates))
    return {**state, "candidates": candidates}


async def reranker_node(
    state: SearchState, reranker: RerankerAgent, limit: int = SYNTHESIS_LIMIT
) -> SearchState:
    """Keep the relevant candidates, best first, capped for synthesis."""
    ranked = await reranker.rerank(state["query"], state.get("candidates", []))
    return {**state, "activities": ranked[:limit]}


async def synthesizer_node(state: SearchState, synthesizer: SynthesizerAgent) -> SearchState:
    """Summarize the ranked activities as an answer to the query."""
    summary = await synthesizer.summarize(state["query"], state.get("activities", []))
    return {**state, "summary": summary}


def _has_keywords(state: SearchState) -> str:
    if state.get("keywords"):
        return "continue"
    return "end"


def create_search_workflow(store: JournalStore, client: ModelClient):
    """Create the search workflow graph.

    Args:
        store: Journal store used for candidate retrieval
        client: Model client shared by the planner, reranker and synthesizer

    Returns:
        Compiled LangGraph StateGraph
    """
    planner = QueryPlannerAgent(client)
    reranker = RerankerAgent(client)
    synthesizer = SynthesizerAgent(client)

    graph = StateGraph(SearchState)

    graph.add_node("planner", partial(planner_node, planner=planner))
    graph.add_node("no_keywords", no_keywords_node)
    graph.add_node("retrieval", partial(retrieval_node, store=store))
    graph.add_node("reranker", partial(reranker_node, reranker=reranker))
    graph.add_node("synthesizer", partial(synthesizer_node, synthesizer=synthesizer))

    graph.add_edge(START, "planner")
    graph.add_conditional_edges(
        "planner",
        _has_keywords,
        {"continue": "retrieval", "end": "no_keywords"},
    )
    graph.add_edge("no_keywords", END)
    graph.add_edge("retrieval", "reranker")
    graph.add_edge("reranker", "synthesizer")
    graph.add_edge("synthesizer", END)

    return graph.compile()


async def run_search(query: str, workflow) -> SearchResult:
    """Run the search workflow for a free-text query.

    Args:
        query: The user's question
        workflow: A compiled graph from `create_search_workflow`

    Returns:
        The summary, the activities it was based on, and the keywords used
    """
    with logfire.span("search {query}", query=query):
        result = await workflow.ainvoke({"query": query})
    return SearchResult(
        summary=result["summary"],
        activities=result.get("activities", []),
        keywords=result.get("keywords", []),
    )
