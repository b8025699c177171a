"""Workflow orchestration helpers for the mockup pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from api_client import MockupAPIClient, MockupRequest
from layout_constraints import DesignFile, PrintFilesData
from mockup_workflow.graph import build_workflow
from mockup_workflow.state import MockupRunContext, MockupState
from mockup_workflow.utils import LayoutBundle
from mockup_workflow.utils.artifacts import RequestStore
from placement_merge import MergeFailurePolicy
from utils.timing import StepTimer


logger = logging.getLogger(__name__)


def initialize_state(
    request: MockupRequest,
    designs: List[DesignFile],
    print_files: PrintFilesData,
    *,
    validate: bool = True,
    max_attempts: Optional[int] = None,
    delay: Optional[float] = None,
    merge_policy: Optional[MergeFailurePolicy] = None,
    run_root: Optional[Path] = None,
) -> MockupState:
    """Create an initial MockupState for one product."""

    if not request.variant_ids:
        raise ValueError("At least one variant id is required")
    if run_root is not None:
        run_root.mkdir(parents=True, exist_ok=True)

    run_context = MockupRunContext(
        request=request,
        print_files=print_files,
        validate=validate,
        max_attempts=max_attempts,
        delay=delay,
        merge_policy=merge_policy,
        run_root=run_root,
    )
    return MockupState(run=run_context, designs=list(designs))


def state_from_bundle(bundle: LayoutBundle, **options: Any) -> MockupState:
    return initialize_state(bundle.request, bundle.designs, bundle.print_files, **options)


def compile_workflow(
    client: MockupAPIClient,
    store: Optional[RequestStore] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timer: Optional[StepTimer] = None,
):
    """Build and compile the LangGraph workflow."""

    return build_workflow(client, store=store, cancel_event=cancel_event, timer=timer).compile()


async def run_mockup_workflow(
    state: MockupState,
    client: MockupAPIClient,
    store: Optional[RequestStore] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timer: Optional[StepTimer] = None,
) -> Dict[str, Any]:
    """Run validate → merge → submit → poll and return the final state values."""

    timer = timer or StepTimer()
    app = compile_workflow(client, store=store, cancel_event=cancel_event, timer=timer)
    initial = {f.name: getattr(state, f.name) for f in fields(state)}
    with timer.time_step("workflow"):
        result = await app.ainvoke(initial)
    logger.info(
        "Mockup workflow for product %s finished: %s",
        state.product_id,
        ", ".join(timer.to_lines()),
    )
    return result
