"""Mockup generation workflow package.

This package wires compositing, uploads and the remote mockup task API into
a LangGraph pipeline. The code is organized around:

- workflow state definitions (`state.py`)
- graph node logic (`nodes/`)
- layout loading and request stores (`utils/`)
- streamlit entry point (`app.py`)
"""

__all__ = [
    "state",
    "workflow",
    "graph",
]
