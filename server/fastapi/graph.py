import asyncio
from typing import Any, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, START, END
from langgraph.config import get_stream_writer

from enrichment import enrich, grounding_sources, STATUS_LINK_LABEL, STATUS_SOURCES_HEADER
from gemini import Generator
from issues import IssueStore
from models import Issue, Location
from prompts import build_status_prompt


class State(TypedDict, total=False):
    """State schema for the status lookup graph."""
    issue_id: str
    user_location: Location | None
    issue: Issue | None
    prompt: str
    raw_text: str
    grounding_metadata: Any
    response: str


def _configurable(config: RunnableConfig) -> dict:
    return (config or {}).get("configurable", {})


def lookup_issue(state: State, config: RunnableConfig):
    """Resolve the complaint ID against the issue store."""
    writer = get_stream_writer()
    writer({"type": "node_start", "node": "lookup_issue"})

    issue_store: IssueStore = _configurable(config)["issue_store"]
    issue = issue_store.get(state["issue_id"])

    writer({"type": "issue_lookup", "issue_id": state["issue_id"], "found": issue is not None})
    return {"issue": issue}


def compose_prompt(state: State):
    writer = get_stream_writer()
    writer({"type": "node_start", "node": "compose_prompt"})
    return {"prompt": build_status_prompt(state.get("issue"), state["issue_id"], state.get("user_location"))}


async def generate_reply(state: State, config: RunnableConfig):
    """Call Gemini with the composed prompt and the user's location bias."""
    writer = get_stream_writer()
    writer({"type": "node_start", "node": "generate_reply"})

    configurable = _configurable(config)
    generator: Generator = configurable["generator"]
    result = await generator.generate(
        state["prompt"],
        state.get("user_location"),
        cancel=configurable.get("cancel"),
    )
    return {"raw_text": result.text, "grounding_metadata": result.grounding_metadata}


def enrich_reply(state: State):
    """Append Maps links, only when the complaint ID matched a known issue."""
    writer = get_stream_writer()
    writer({"type": "node_start", "node": "enrich_reply"})

    sources = grounding_sources(state.get("grounding_metadata"))
    response = enrich(
        state["raw_text"],
        sources,
        state.get("issue") is not None,
        header=STATUS_SOURCES_HEADER,
        label=STATUS_LINK_LABEL,
    )
    return {"response": response}


# Build the graph
graph_builder = StateGraph(State)
graph_builder.add_node("lookup_issue", lookup_issue)
graph_builder.add_node("compose_prompt", compose_prompt)
graph_builder.add_node("generate_reply", generate_reply)
graph_builder.add_node("enrich_reply", enrich_reply)

graph_builder.add_edge(START, "lookup_issue")
graph_builder.add_edge("lookup_issue", "compose_prompt")
graph_builder.add_edge("compose_prompt", "generate_reply")
graph_builder.add_edge("generate_reply", "enrich_reply")
graph_builder.add_edge("enrich_reply", END)

graph = graph_builder.compile()


def build_config(
    issue_store: IssueStore,
    generator: Generator,
    cancel: asyncio.Event | None = None,
) -> RunnableConfig:
    return {"configurable": {"issue_store": issue_store, "generator": generator, "cancel": cancel}}


async def get_status_reply(
    issue_id: str,
    location: Location | None,
    *,
    issue_store: IssueStore,
    generator: Generator,
    cancel: asyncio.Event | None = None,
) -> str:
    """Run the status graph and return the enriched reply. Errors propagate."""
    result = await graph.ainvoke(
        {"issue_id": issue_id, "user_location": location},
        config=build_config(issue_store, generator, cancel),
    )
    return result["response"]
