"""Graph node factories for the mockup workflow."""

from .validator import build_validator_node
from .merge import build_merge_node
from .submit import build_submit_node
from .poll import build_poll_node

__all__ = [
    "build_validator_node",
    "build_merge_node",
    "build_submit_node",
    "build_poll_node",
]
