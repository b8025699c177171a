"""LangGraph workflow definition for the mockup generation pipeline."""

from __future__ import annotations

import asyncio
from typing import Optional

from langgraph.graph import END, StateGraph

from api_client import MockupAPIClient
from mockup_workflow.nodes import (
    build_merge_node,
    build_poll_node,
    build_submit_node,
    build_validator_node,
)
from mockup_workflow.state import MockupState
from mockup_workflow.utils.artifacts import RequestStore
from utils.timing import StepTimer


def build_workflow(
    client: MockupAPIClient,
    store: Optional[RequestStore] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timer: Optional[StepTimer] = None,
) -> StateGraph:
    timer = timer or StepTimer()
    graph = StateGraph(MockupState)

    graph.add_node("validator", build_validator_node(timer))
    graph.add_node("merge", build_merge_node(client, timer))
    graph.add_node("submit", build_submit_node(client, store, timer))
    graph.add_node("poll", build_poll_node(client, store, cancel_event, timer))

    graph.set_entry_point("validator")
    graph.add_conditional_edges(
        "validator",
        lambda state: "MERGE" if state.needs_merge() else "SUBMIT",
        {
            "MERGE": "merge",
            "SUBMIT": "submit",
        },
    )
    graph.add_edge("merge", "submit")
    graph.add_edge("submit", "poll")
    graph.add_edge("poll", END)

    return graph
