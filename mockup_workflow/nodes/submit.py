"""Submit node creating the remote mockup task."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from api_client import MockupAPIClient, MockupTask, build_mockup_payload
from mockup_workflow.state import MockupState
from mockup_workflow.utils.artifacts import RequestStore
from utils.timing import StepTimer


def build_submit_node(
    client: MockupAPIClient,
    store: Optional[RequestStore],
    timer: StepTimer,
) -> Callable[[MockupState], Awaitable[Dict[str, Any]]]:
    async def node(state: MockupState) -> Dict[str, Any]:
        payload = build_mockup_payload(state.run.request, state.final_designs())
        if store is not None:
            store.save_request(state.product_id, payload)
        with timer.time_step("submit"):
            task_key = await client.create_mockup_task(state.product_id, payload)
        return {
            "payload": payload,
            "task": MockupTask(task_key=task_key, product_id=state.product_id),
            "phase": "submitted",
            "events": [f"Mockup task {task_key} created"],
        }

    return node
