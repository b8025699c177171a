from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from utils.placements import normalize_placement


logger = logging.getLogger(__name__)


QuickPosition = str


QUICK_POSITIONS: List[QuickPosition] = [
    "top-left",
    "top-center",
    "top-right",
    "center-left",
    "center",
    "center-right",
    "bottom-left",
    "bottom-center",
    "bottom-right",
]

# Relative overlay size outside this band only produces a warning
MIN_SIZE_RATIO = 0.1
MAX_SIZE_RATIO = 0.8
ASPECT_TOLERANCE = 0.5


@dataclass
class DesignPosition:
    """Overlay box inside a placement's print area (pixels of the print file)."""

    area_width: float
    area_height: float
    width: float
    height: float
    top: float = 0
    left: float = 0
    limit_to_print_area: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DesignPosition":
        return cls(
            area_width=data["area_width"],
            area_height=data["area_height"],
            width=data["width"],
            height=data["height"],
            top=data.get("top", 0),
            left=data.get("left", 0),
            limit_to_print_area=bool(data.get("limit_to_print_area", True)),
        )

    def to_dict(self, include_limit: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "area_width": self.area_width,
            "area_height": self.area_height,
            "width": self.width,
            "height": self.height,
            "top": self.top,
            "left": self.left,
        }
        if include_limit:
            out["limit_to_print_area"] = self.limit_to_print_area
        return out

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """Rounded (x1, y1, x2, y2) box of the overlay."""
        x1 = int(round(self.left))
        y1 = int(round(self.top))
        return x1, y1, x1 + max(1, int(round(self.width))), y1 + max(1, int(round(self.height)))


@dataclass
class DesignFile:
    id: int
    filename: str
    url: str
    placement: str
    position: DesignPosition
    type: str = "design"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DesignFile":
        return cls(
            id=int(data["id"]),
            filename=str(data.get("filename") or f"design-{data['id']}"),
            url=str(data["url"]),
            placement=normalize_placement(data["placement"]),
            position=DesignPosition.from_dict(data["position"]),
            type=data.get("type", "design"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "url": self.url,
            "type": self.type,
            "placement": self.placement,
            "position": self.position.to_dict(),
        }


@dataclass
class PrintFile:
    printfile_id: int
    width: int
    height: int
    dpi: Optional[int] = None
    fill_mode: Optional[str] = None
    can_rotate: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrintFile":
        return cls(
            printfile_id=int(data["printfile_id"]),
            width=int(data["width"]),
            height=int(data["height"]),
            dpi=data.get("dpi"),
            fill_mode=data.get("fill_mode"),
            can_rotate=bool(data.get("can_rotate", False)),
        )

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass
class VariantPrintFiles:
    variant_id: int
    placements: Dict[str, int]


@dataclass
class PrintFilesData:
    """Print-file catalog of one product as returned by the backend."""

    product_id: int
    printfiles: List[PrintFile] = field(default_factory=list)
    variant_printfiles: List[VariantPrintFiles] = field(default_factory=list)
    available_placements: Dict[str, str] = field(default_factory=dict)
    option_groups: List[str] = field(default_factory=list)
    options: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrintFilesData":
        return cls(
            product_id=int(data.get("product_id", 0)),
            printfiles=[PrintFile.from_dict(pf) for pf in data.get("printfiles") or [] if pf],
            variant_printfiles=[
                VariantPrintFiles(
                    variant_id=int(vp["variant_id"]),
                    placements={
                        normalize_placement(k): int(v)
                        for k, v in (vp.get("placements") or {}).items()
                        if v
                    },
                )
                for vp in data.get("variant_printfiles") or []
            ],
            available_placements=dict(data.get("available_placements") or {}),
            option_groups=list(data.get("option_groups") or []),
            options=list(data.get("options") or []),
        )

    def find_printfile(self, printfile_id: int) -> Optional[PrintFile]:
        for pf in self.printfiles:
            if pf.printfile_id == printfile_id:
                return pf
        return None


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class DesignsValidation:
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    validated_designs: List[DesignFile]


def group_by_placement(designs: Iterable[DesignFile]) -> Dict[str, List[DesignFile]]:
    """Group designs by placement, keeping first-appearance and input order."""
    groups: Dict[str, List[DesignFile]] = {}
    for design in designs:
        groups.setdefault(design.placement, []).append(design)
    return groups


def resolve_print_area(print_files: Optional[PrintFilesData], placement: str) -> Optional[PrintFile]:
    """Look up the print file of ``placement``.

    Only the first variant's mapping is consulted; every variant of a product
    is expected to share one print-file layout.
    """
    if print_files is None or not print_files.variant_printfiles:
        return None
    key = normalize_placement(placement)
    first = print_files.variant_printfiles[0]
    printfile_id = first.placements.get(key)
    if not printfile_id:
        return None

    diverging = [
        vp.variant_id
        for vp in print_files.variant_printfiles[1:]
        if vp.placements.get(key) not in (None, printfile_id)
    ]
    if diverging:
        logger.warning(
            "Variants %s map placement '%s' to a different print file than variant %s",
            diverging,
            key,
            first.variant_id,
        )
    return print_files.find_printfile(printfile_id)


def get_active_print_file(
    print_files: Optional[PrintFilesData],
    selected_variants: List[int],
    placement: str,
) -> Optional[PrintFile]:
    """Print file of ``placement`` for the first selected variant in catalog order."""
    if print_files is None or not selected_variants or not placement:
        return None
    selected = set(selected_variants)
    key = normalize_placement(placement)
    for vp in print_files.variant_printfiles:
        if vp.variant_id in selected:
            printfile_id = vp.placements.get(key)
            if not printfile_id:
                return None
            return print_files.find_printfile(printfile_id)
    return None


def full_area_position(print_file: PrintFile) -> DesignPosition:
    return DesignPosition(
        area_width=print_file.width,
        area_height=print_file.height,
        width=print_file.width,
        height=print_file.height,
        top=0,
        left=0,
        limit_to_print_area=True,
    )


def clamp_position(position: DesignPosition) -> DesignPosition:
    """Keep the overlay inside its area, as the editor does after a drag."""
    max_left = max(0, position.area_width - position.width)
    max_top = max(0, position.area_height - position.height)
    return replace(
        position,
        left=max(0, min(position.left, max_left)),
        top=max(0, min(position.top, max_top)),
    )


def apply_quick_position(position: DesignPosition, quick: QuickPosition) -> DesignPosition:
    """Snap the overlay to one of the nine ``QUICK_POSITIONS``."""
    if quick not in QUICK_POSITIONS:
        raise ValueError(f"Unknown quick position '{quick}'")
    idx = QUICK_POSITIONS.index(quick)
    row, col = idx // 3, idx % 3
    free_w = position.area_width - position.width
    free_h = position.area_height - position.height
    left = (0, free_w / 2, free_w)[col]
    top = (0, free_h / 2, free_h)[row]
    return clamp_position(replace(position, left=left, top=top))


def validate_design_for_print_file(design: DesignFile, print_file: PrintFile) -> ValidationResult:
    result = ValidationResult()
    pos = design.position
    area_w, area_h = print_file.width, print_file.height

    def fail(message: str) -> None:
        result.errors.append(message)
        result.is_valid = False

    if pos.limit_to_print_area is not True:
        fail("Design must have limit_to_print_area set to true")
    if pos.area_width != area_w or pos.area_height != area_h:
        fail(
            f"Area dimensions mismatch: expected {area_w}x{area_h}, "
            f"got {pos.area_width}x{pos.area_height}"
        )
    if pos.width <= 0 or pos.height <= 0:
        fail("Design dimensions must be positive")
        return result
    if pos.width > area_w or pos.height > area_h:
        fail(f"Design size {pos.width}x{pos.height} exceeds print area {area_w}x{area_h}")
    if pos.left < 0 or pos.top < 0:
        fail("Design position cannot be negative")
    if pos.left + pos.width > area_w or pos.top + pos.height > area_h:
        fail("Design extends outside print area bounds")

    design_ratio = pos.width / pos.height
    area_ratio = area_w / area_h
    if abs(design_ratio - area_ratio) / area_ratio > ASPECT_TOLERANCE:
        result.warnings.append(
            f"Design aspect ratio ({design_ratio:.2f}) differs from print area ({area_ratio:.2f})"
        )

    size_ratio = (pos.width * pos.height) / float(area_w * area_h)
    if size_ratio < MIN_SIZE_RATIO:
        result.warnings.append("Design is very small relative to print area")
    elif size_ratio > MAX_SIZE_RATIO:
        result.warnings.append("Design is very large - ensure adequate margins")
    return result


def validate_designs(
    designs: List[DesignFile],
    print_files: Optional[PrintFilesData],
    selected_variants: List[int],
) -> DesignsValidation:
    if not designs:
        return DesignsValidation(False, ["No design files provided"], [], [])
    if print_files is None:
        return DesignsValidation(False, ["Print files are not loaded"], [], [])
    if not selected_variants:
        return DesignsValidation(False, ["No variants selected for the product"], [], [])

    errors: List[str] = []
    warnings: List[str] = []
    validated: List[DesignFile] = []
    for design in designs:
        print_file = get_active_print_file(print_files, selected_variants, design.placement)
        if print_file is None:
            errors.append(
                f"No print file found for placement \"{design.placement}\" in design: {design.filename}"
            )
            continue
        outcome = validate_design_for_print_file(design, print_file)
        if outcome.is_valid:
            validated.append(design)
        else:
            errors.append(f"{design.filename}: {', '.join(outcome.errors)}")
        warnings.extend(f"{design.filename}: {w}" for w in outcome.warnings)

    if not validated and not errors:
        errors.append("No valid designs after validation")
    return DesignsValidation(not errors, errors, warnings, validated)
