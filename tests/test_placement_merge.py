import asyncio
import base64
import io

import httpx
import pytest
from PIL import Image

from api_client import MockupAPIClient
from errors import CompositeMergeError, UploadError
from layout_constraints import DesignFile, DesignPosition, PrintFilesData
from placement_merge import (
    MergeFailurePolicy,
    create_composite_images_for_placements,
    upload_composite_image,
)
from settings import Settings


PRINT_FILES = PrintFilesData.from_dict(
    {
        "product_id": 71,
        "printfiles": [
            {"printfile_id": 1, "width": 120, "height": 160},
            {"printfile_id": 2, "width": 80, "height": 80},
        ],
        "variant_printfiles": [{"variant_id": 4011, "placements": {"front": 1, "back": 2}}],
    }
)


def _data_url(color):
    buf = io.BytesIO()
    Image.new("RGBA", (8, 8), color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode()


def _design(design_id, placement, area=(120, 160)):
    return DesignFile(
        id=design_id,
        filename=f"d{design_id}.png",
        url=_data_url((design_id * 20 % 256, 0, 0, 255)),
        placement=placement,
        position=DesignPosition(area[0], area[1], 40, 40, top=10, left=10),
    )


class _UploadServer:
    def __init__(self, response=None):
        self.response = response
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.response is not None:
            return httpx.Response(200, json=self.response)
        return httpx.Response(
            200, json={"result": {"file_url": f"https://cdn.test/upload-{len(self.requests)}.png"}}
        )


def _merge(server, designs, print_files=PRINT_FILES, policy=MergeFailurePolicy.FALLBACK):
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            client = MockupAPIClient(base_url="http://api.test", http_client=http, settings=Settings())
            return await create_composite_images_for_placements(designs, print_files, client, policy=policy)

    return asyncio.run(main())


def test_single_design_placements_pass_through_untouched():
    server = _UploadServer()
    front, back = _design(1, "front"), _design(2, "back", area=(80, 80))

    outcome = _merge(server, [front, back])

    assert outcome.designs[0] is front
    assert outcome.designs[1] is back
    assert outcome.fallbacks == {}
    assert server.requests == []


def test_multi_design_placement_becomes_one_full_area_composite():
    server = _UploadServer()
    designs = [_design(3, "front"), _design(9, "front"), _design(4, "back", area=(80, 80))]

    outcome = _merge(server, designs)

    assert len(server.requests) == 1
    upload = server.requests[0]
    assert upload.url.path == "/api/printful/files/upload"
    assert b"\x89PNG" in upload.content
    assert b"composite-front-" in upload.content

    merged, back = outcome.designs
    assert back is designs[2]
    assert merged.placement == "front"
    assert merged.url == "https://cdn.test/upload-1.png"
    assert merged.id > 9
    assert merged.position.to_dict() == {
        "area_width": 120,
        "area_height": 160,
        "width": 120,
        "height": 160,
        "top": 0,
        "left": 0,
        "limit_to_print_area": True,
    }


def test_placement_order_follows_first_appearance():
    server = _UploadServer()
    designs = [_design(1, "back", area=(80, 80)), _design(2, "front"), _design(3, "front")]

    outcome = _merge(server, designs)

    assert [d.placement for d in outcome.designs] == ["back", "front"]


def test_failed_upload_falls_back_to_most_recent_design():
    server = _UploadServer(response={"result": {}})
    designs = [_design(12, "front"), _design(30, "front"), _design(20, "front")]

    outcome = _merge(server, designs)

    assert outcome.designs == [designs[1]]
    assert "front" in outcome.fallbacks
    assert "file URL" in outcome.fallbacks["front"]


def test_missing_print_file_falls_back_too():
    server = _UploadServer()
    designs = [_design(1, "sleeve_left"), _design(2, "sleeve_left")]

    outcome = _merge(server, designs)

    assert outcome.designs == [designs[1]]
    assert "No print file found" in outcome.fallbacks["sleeve_left"]
    assert server.requests == []


def test_strict_policy_raises_instead_of_falling_back():
    server = _UploadServer(response={"result": {}})
    designs = [_design(1, "front"), _design(2, "front")]

    with pytest.raises(CompositeMergeError) as excinfo:
        _merge(server, designs, policy=MergeFailurePolicy.RAISE)

    assert excinfo.value.placement == "front"
    assert isinstance(excinfo.value.cause, UploadError)


def test_upload_composite_image_requires_file_url():
    server = _UploadServer(response={"result": {"id": 5}})

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            client = MockupAPIClient(base_url="http://api.test", http_client=http, settings=Settings())
            return await upload_composite_image(client, b"png", "c.png")

    with pytest.raises(UploadError) as excinfo:
        asyncio.run(main())
    assert excinfo.value.response == {"result": {"id": 5}}


def test_unusable_print_area_falls_back_to_most_recent_design():
    server = _UploadServer()
    print_files = PrintFilesData.from_dict(
        {
            "product_id": 71,
            "printfiles": [{"printfile_id": 1, "width": -5, "height": 10}],
            "variant_printfiles": [{"variant_id": 4011, "placements": {"front": 1}}],
        }
    )
    designs = [_design(1, "front"), _design(2, "front")]

    outcome = _merge(server, designs, print_files=print_files)

    assert outcome.designs == [designs[1]]
    assert "front" in outcome.fallbacks
    assert server.requests == []
