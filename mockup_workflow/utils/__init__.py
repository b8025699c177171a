"""Utility helpers for the mockup workflow."""

from .artifacts import (
    JsonRequestStore,
    RequestStore,
    serialize_designs,
    serialize_mockups,
    write_json,
)
from .loaders import LayoutBundle, load_layout, parse_layout

__all__ = [
    "JsonRequestStore",
    "RequestStore",
    "serialize_designs",
    "serialize_mockups",
    "write_json",
    "LayoutBundle",
    "load_layout",
    "parse_layout",
]
