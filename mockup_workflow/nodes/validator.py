"""Validation node checking every design against its print area."""

from __future__ import annotations

from typing import Any, Callable, Dict

from errors import DesignValidationError
from layout_constraints import validate_designs
from mockup_workflow.state import MockupState
from utils.timing import StepTimer


def build_validator_node(timer: StepTimer) -> Callable[[MockupState], Dict[str, Any]]:
    def node(state: MockupState) -> Dict[str, Any]:
        if not state.run.validate:
            return {"phase": "validated", "events": ["Design validation skipped"]}
        with timer.time_step("validate"):
            result = validate_designs(state.designs, state.run.print_files, state.variant_ids)
        if not result.is_valid:
            raise DesignValidationError(result.errors)
        return {
            "phase": "validated",
            "validation_warnings": result.warnings,
            "events": [f"Validated {len(result.validated_designs)} design(s)"],
        }

    return node
