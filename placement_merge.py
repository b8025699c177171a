"""Merge multi-design placements into one uploaded composite per placement."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from api_client import MockupAPIClient
from compositor import merge_designs_into_composite
from errors import CompositeMergeError, MockupError, UploadError
from layout_constraints import (
    DesignFile,
    PrintFilesData,
    full_area_position,
    group_by_placement,
    resolve_print_area,
)
from settings import get_settings


logger = logging.getLogger(__name__)


class MergeFailurePolicy(str, Enum):
    FALLBACK = "fallback"  # keep the most recent design of the placement
    RAISE = "raise"


@dataclass
class UploadedFile:
    url: str
    filename: str


@dataclass
class MergeOutcome:
    designs: List[DesignFile]
    # placement -> error that forced a fallback
    fallbacks: Dict[str, str] = field(default_factory=dict)


async def upload_composite_image(client: MockupAPIClient, data: bytes, filename: str) -> UploadedFile:
    """Upload a composite PNG; the response must carry ``result.file_url``."""
    response = await client.upload_file_directly(filename, data, content_type="image/png")
    result = response.get("result") if isinstance(response, dict) else None
    file_url = result.get("file_url") if isinstance(result, dict) else None
    if not file_url:
        raise UploadError("Upload response did not include a file URL", response=response)
    return UploadedFile(url=str(file_url), filename=filename)


def most_recent_design(designs: List[DesignFile]) -> DesignFile:
    return max(designs, key=lambda d: d.id)


async def _merge_placement(
    placement: str,
    designs: List[DesignFile],
    print_files: PrintFilesData,
    client: MockupAPIClient,
    next_id: int,
) -> DesignFile:
    print_file = resolve_print_area(print_files, placement)
    if print_file is None:
        raise MockupError(f"No print file found for placement: {placement}")

    logger.info("Merging %s designs for placement: %s", len(designs), placement)
    composite = await merge_designs_into_composite(designs, print_file, placement, client=client)
    uploaded = await upload_composite_image(client, composite.data, composite.filename)
    logger.info("Created composite design for %s: %s", placement, uploaded.url)
    return DesignFile(
        id=next_id,
        filename=uploaded.filename,
        url=uploaded.url,
        placement=placement,
        position=full_area_position(print_file),
    )


async def create_composite_images_for_placements(
    designs: List[DesignFile],
    print_files: PrintFilesData,
    client: MockupAPIClient,
    policy: Optional[MergeFailurePolicy] = None,
) -> MergeOutcome:
    """Collapse every placement to a single design file.

    Placements with one design are returned untouched. Placements with more
    are composited onto the full print area and uploaded; on failure the
    ``policy`` decides between keeping the newest design and raising.
    """
    if policy is None:
        policy = MergeFailurePolicy(get_settings().MERGE_FAILURE_POLICY)

    outcome = MergeOutcome(designs=[])
    next_id = max([int(time.time() * 1000)] + [d.id + 1 for d in designs])

    for placement, placement_designs in group_by_placement(designs).items():
        if len(placement_designs) == 1:
            outcome.designs.append(placement_designs[0])
            continue
        try:
            merged = await _merge_placement(placement, placement_designs, print_files, client, next_id)
        except MockupError as e:
            if policy is MergeFailurePolicy.RAISE:
                raise CompositeMergeError(placement, e) from e
            fallback = most_recent_design(placement_designs)
            logger.warning(
                "Failed to create composite for %s, keeping design %s only: %s",
                placement,
                fallback.id,
                e,
            )
            outcome.fallbacks[placement] = str(e)
            outcome.designs.append(fallback)
            continue
        next_id += 1
        outcome.designs.append(merged)

    return outcome
