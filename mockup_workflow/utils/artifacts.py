"""Request stores and helpers for writing workflow artifacts."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from api_client import MockupImage
from layout_constraints import DesignFile


def request_key(product_id: int) -> str:
    return f"mockup_request_{product_id}"


class RequestStore:
    """In-memory key-value store remembering the last mockup request per product."""

    def __init__(self) -> None:
        self._items: Dict[str, Any] = {}

    def save_request(self, product_id: int, payload: Dict[str, Any]) -> None:
        self._items[request_key(product_id)] = payload

    def load_request(self, product_id: int) -> Optional[Dict[str, Any]]:
        return self._items.get(request_key(product_id))

    def save_result(self, product_id: int, mockups: List[MockupImage]) -> None:
        self._items[f"mockup_result_{product_id}"] = serialize_mockups(mockups)


class JsonRequestStore(RequestStore):
    """Request store persisting every entry as ``<root>/<key>.json``."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)

    def save_request(self, product_id: int, payload: Dict[str, Any]) -> None:
        super().save_request(product_id, payload)
        write_json(self.root / f"{request_key(product_id)}.json", payload)

    def load_request(self, product_id: int) -> Optional[Dict[str, Any]]:
        path = self.root / f"{request_key(product_id)}.json"
        if not path.exists():
            return super().load_request(product_id)
        return json.loads(path.read_text(encoding="utf-8"))

    def save_result(self, product_id: int, mockups: List[MockupImage]) -> None:
        super().save_result(product_id, mockups)
        write_json(self.root / f"mockup_result_{product_id}.json", serialize_mockups(mockups))


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2)


def serialize_designs(designs: List[DesignFile]) -> List[Dict[str, Any]]:
    return [design.to_dict() for design in designs]


def serialize_mockups(mockups: List[MockupImage]) -> List[Dict[str, Any]]:
    return [asdict(mockup) for mockup in mockups]


__all__ = [
    "RequestStore",
    "JsonRequestStore",
    "request_key",
    "write_json",
    "serialize_designs",
    "serialize_mockups",
]
