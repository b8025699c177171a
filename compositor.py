from __future__ import annotations

import asyncio
import base64
import io
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from urllib.parse import unquote, unquote_to_bytes, urlparse

import httpx
from PIL import Image

from api_client import MockupAPIClient
from errors import AssetLoadError, CompositeError
from layout_constraints import DesignFile, DesignPosition, PrintFile
from settings import get_settings
from text_image import is_text_design, render_text_design


Layer = Tuple[Image.Image, DesignPosition]


@dataclass
class CompositeImageResult:
    """Merged raster of every design on one placement."""

    filename: str
    data: bytes
    width: int
    height: int

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


def composite_filename(placement: str) -> str:
    return f"composite-{placement}-{int(time.time() * 1000)}.png"


def _decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if header.endswith(";base64"):
        return base64.b64decode(payload)
    return unquote_to_bytes(payload)


async def _read_source(design: DesignFile, client: Optional[MockupAPIClient]) -> bytes:
    url = design.url
    if url.startswith("data:"):
        return _decode_data_url(url)
    if url.startswith(("http://", "https://")):
        if client is not None:
            return await client.fetch_bytes(url)
        async with httpx.AsyncClient(timeout=get_settings().HTTP_TIMEOUT, follow_redirects=True) as http:
            response = await http.get(url)
            response.raise_for_status()
            return response.content
    path = Path(unquote(urlparse(url).path)) if url.startswith("file://") else Path(url)
    return await asyncio.to_thread(path.read_bytes)


async def load_design_image(
    design: DesignFile, index: int, client: Optional[MockupAPIClient] = None
) -> Image.Image:
    """Load one design as RGBA. Text designs are rendered, never fetched."""
    try:
        if is_text_design(design):
            return render_text_design(design)
        data = await _read_source(design, client)
        with Image.open(io.BytesIO(data)) as im:
            return im.convert("RGBA")
    except Exception as e:
        raise AssetLoadError(index, design.filename, str(e)) from e


def composite_layers(layers: Sequence[Layer], size: Tuple[int, int]) -> Image.Image:
    """Draw layers onto a transparent canvas of ``size`` in sequence order.

    Each image is resized to its position box; later layers cover earlier ones.
    """
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    for image, position in layers:
        x1, y1, x2, y2 = position.box
        resized = image.convert("RGBA").resize((x2 - x1, y2 - y1), Image.LANCZOS)
        # paste clips negative offsets and overflow, alpha_composite does not
        layer = Image.new("RGBA", size, (0, 0, 0, 0))
        layer.paste(resized, (x1, y1))
        canvas = Image.alpha_composite(canvas, layer)
    return canvas


async def merge_designs_into_composite(
    designs: List[DesignFile],
    print_file: PrintFile,
    placement: str,
    client: Optional[MockupAPIClient] = None,
) -> CompositeImageResult:
    """Merge ``designs`` of one placement into a PNG the size of ``print_file``.

    Every image is loaded before anything is drawn, so layering follows list
    order regardless of which load finishes first. The first failed load in
    list order aborts the merge.
    """
    if not designs:
        raise CompositeError("No designs to merge")
    if print_file.width <= 0 or print_file.height <= 0:
        raise CompositeError(
            f"Invalid print area {print_file.width}x{print_file.height} for placement: {placement}"
        )

    loaded = await asyncio.gather(
        *(load_design_image(design, i, client) for i, design in enumerate(designs)),
        return_exceptions=True,
    )
    for outcome in loaded:
        if isinstance(outcome, BaseException):
            raise outcome

    buf = io.BytesIO()
    try:
        canvas = composite_layers(
            [(image, design.position) for image, design in zip(loaded, designs)],
            print_file.size,
        )
        canvas.save(buf, format="PNG")
    except (OSError, ValueError) as e:
        raise CompositeError(f"Failed to create composite image blob: {e}") from e
    return CompositeImageResult(
        filename=composite_filename(placement),
        data=buf.getvalue(),
        width=print_file.width,
        height=print_file.height,
    )


def composite_to_file(result: CompositeImageResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(result.data)
    return path
