"""Layout bundle loading helpers for the mockup workflow."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from api_client import MockupRequest
from layout_constraints import DesignFile, PrintFilesData
from utils.placements import is_known_placement


logger = logging.getLogger(__name__)


@dataclass
class LayoutBundle:
    request: MockupRequest
    designs: List[DesignFile]
    print_files: PrintFilesData


def parse_layout(data: Dict[str, Any], base_dir: Path | None = None) -> LayoutBundle:
    """Build a bundle from its JSON form.

    Relative design paths are resolved against ``base_dir``.
    """

    missing = [key for key in ("product_id", "variant_ids", "print_files", "designs") if key not in data]
    if missing:
        raise ValueError("Layout is missing required keys: " + ", ".join(missing))

    designs = [DesignFile.from_dict(item) for item in data["designs"]]
    for design in designs:
        if not is_known_placement(design.placement):
            logger.warning("Design %s uses unrecognized placement %r", design.id, design.placement)
    if base_dir is not None:
        for design in designs:
            if "://" in design.url or design.url.startswith("data:"):
                continue
            candidate = Path(design.url)
            if not candidate.is_absolute():
                design.url = str(base_dir / candidate)

    request = MockupRequest(
        product_id=int(data["product_id"]),
        variant_ids=[int(v) for v in data["variant_ids"]],
        format=data.get("format", "jpg"),
        width=data.get("width"),
        product_options=data.get("product_options"),
        option_groups=list(data.get("option_groups") or []),
        options=list(data.get("options") or []),
        product_template_id=data.get("product_template_id"),
    )
    print_files = PrintFilesData.from_dict(
        {"product_id": data["product_id"], **data["print_files"]}
    )
    return LayoutBundle(request=request, designs=designs, print_files=print_files)


def load_layout(path: Path) -> LayoutBundle:
    """Load a layout bundle JSON file from disk."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Layout file missing: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_layout(data, base_dir=path.parent)
