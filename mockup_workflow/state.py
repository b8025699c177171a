"""Workflow state definitions for the mockup generation pipeline."""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from api_client import MockupImage, MockupRequest, MockupTask
from layout_constraints import DesignFile, PrintFilesData, group_by_placement
from placement_merge import MergeFailurePolicy


@dataclass
class MockupRunContext:
    request: MockupRequest
    print_files: PrintFilesData
    validate: bool = True
    max_attempts: Optional[int] = None
    delay: Optional[float] = None
    merge_policy: Optional[MergeFailurePolicy] = None
    run_root: Optional[Path] = None


@dataclass
class MockupState:
    """Workflow state propagated through the LangGraph pipeline."""

    # Immutable input context -------------------------------------------------
    run: MockupRunContext
    designs: List[DesignFile]

    # Progress log ------------------------------------------------------------
    events: Annotated[List[str], operator.add] = field(default_factory=list)
    phase: str = "validate"  # validate → merge → submit → poll → completed

    # Validation --------------------------------------------------------------
    validation_warnings: List[str] = field(default_factory=list)

    # Merge output ------------------------------------------------------------
    merged_designs: List[DesignFile] = field(default_factory=list)
    fallbacks: Dict[str, str] = field(default_factory=dict)

    # Remote task -------------------------------------------------------------
    payload: Optional[Dict[str, Any]] = None
    task: Optional[MockupTask] = None
    mockups: List[MockupImage] = field(default_factory=list)

    @property
    def product_id(self) -> int:
        return self.run.request.product_id

    @property
    def variant_ids(self) -> List[int]:
        return self.run.request.variant_ids

    def needs_merge(self) -> bool:
        """True when some placement holds more than one design."""

        return any(len(group) > 1 for group in group_by_placement(self.designs).values())

    def final_designs(self) -> List[DesignFile]:
        return self.merged_designs or self.designs
