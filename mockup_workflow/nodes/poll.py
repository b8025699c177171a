"""Poll node waiting for the mockup task to finish."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from api_client import MockupAPIClient
from errors import MockupError
from mockup_workflow.state import MockupState
from mockup_workflow.utils.artifacts import RequestStore
from utils.timing import StepTimer


def build_poll_node(
    client: MockupAPIClient,
    store: Optional[RequestStore],
    cancel_event: Optional[asyncio.Event],
    timer: StepTimer,
) -> Callable[[MockupState], Awaitable[Dict[str, Any]]]:
    async def node(state: MockupState) -> Dict[str, Any]:
        task = state.task
        if task is None:
            raise MockupError("No mockup task to poll")
        messages: List[str] = []
        with timer.time_step("poll"):
            status = await client.poll_mockup_status(
                task.task_key,
                state.run.max_attempts,
                state.run.delay,
                on_status_update=lambda message, _attempt: messages.append(message),
                cancel_event=cancel_event,
                task=task,
            )
        if not status.mockups:
            raise MockupError("No mockup URLs in completed task result")
        if store is not None:
            store.save_result(state.product_id, status.mockups)
        return {
            "task": task,
            "mockups": status.mockups,
            "phase": "completed",
            "events": messages + [f"{len(status.mockups)} mockup image(s) generated"],
        }

    return node
