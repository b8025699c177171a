"""Merge node collapsing multi-design placements into uploaded composites."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from api_client import MockupAPIClient
from mockup_workflow.state import MockupState
from placement_merge import create_composite_images_for_placements
from utils.timing import StepTimer


def build_merge_node(
    client: MockupAPIClient, timer: StepTimer
) -> Callable[[MockupState], Awaitable[Dict[str, Any]]]:
    async def node(state: MockupState) -> Dict[str, Any]:
        with timer.time_step("merge"):
            outcome = await create_composite_images_for_placements(
                state.designs,
                state.run.print_files,
                client,
                policy=state.run.merge_policy,
            )
        events = [
            f"Composite for {placement} failed, kept the most recent design: {error}"
            for placement, error in outcome.fallbacks.items()
        ]
        events.append(f"Merged placements, {len(outcome.designs)} file(s) remain")
        return {
            "merged_designs": outcome.designs,
            "fallbacks": outcome.fallbacks,
            "phase": "merged",
            "events": events,
        }

    return node
