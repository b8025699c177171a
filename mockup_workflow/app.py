from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import streamlit as st

WORKSPACE_ROOT = Path(__file__).resolve().parent.parent
if str(WORKSPACE_ROOT) not in sys.path:
    sys.path.insert(0, str(WORKSPACE_ROOT))

from api_client import MockupAPIClient
from compositor import merge_designs_into_composite
from errors import (
    AssetLoadError,
    CompositeMergeError,
    DesignValidationError,
    MockupCancelledError,
    MockupError,
    MockupTaskFailedError,
    MockupTimeoutError,
    UploadError,
)
from layout_constraints import group_by_placement, resolve_print_area
from mockup_workflow.utils import JsonRequestStore, LayoutBundle, parse_layout
from mockup_workflow.workflow import run_mockup_workflow, state_from_bundle
from placement_merge import MergeFailurePolicy
from settings import get_settings
from utils.placements import placement_title


OUTPUT_ROOT = WORKSPACE_ROOT / get_settings().ARTIFACTS_DIR


def _load_bundle(raw: bytes) -> Optional[LayoutBundle]:
    try:
        return parse_layout(json.loads(raw.decode("utf-8")))
    except (ValueError, KeyError, TypeError) as exc:
        st.error(f"Invalid layout file: {exc}")
        return None


def _preview_composites(bundle: LayoutBundle) -> None:
    for placement, designs in group_by_placement(bundle.designs).items():
        print_file = resolve_print_area(bundle.print_files, placement)
        st.subheader(f"{placement_title(placement)} ({len(designs)} design(s))")
        if print_file is None:
            st.warning(f"No print file found for placement: {placement}")
            continue
        try:
            result = asyncio.run(merge_designs_into_composite(designs, print_file, placement))
        except AssetLoadError as exc:
            st.error(f"Could not load a design: {exc}")
            continue
        st.image(result.data, caption=f"{result.filename} ({result.width}x{result.height})")


def _report_failure(exc: MockupError) -> None:
    if isinstance(exc, DesignValidationError):
        st.error("Designs do not fit their print areas:")
        for message in exc.errors:
            st.markdown(f"- {message}")
    elif isinstance(exc, (CompositeMergeError, UploadError)):
        st.error(f"Composite upload failed: {exc}")
    elif isinstance(exc, MockupTaskFailedError):
        st.error(f"Mockup generation failed: {exc}")
    elif isinstance(exc, MockupTimeoutError):
        st.warning(f"Mockup generation is taking too long: {exc}")
    elif isinstance(exc, MockupCancelledError):
        st.info("Mockup generation cancelled")
    else:
        st.error(f"Mockup workflow failed: {exc}")


def _run_workflow(bundle: LayoutBundle, config: Dict[str, Any]) -> Dict[str, Any]:
    state = state_from_bundle(
        bundle,
        validate=config["validate"],
        max_attempts=config["max_attempts"],
        delay=config["delay"],
        merge_policy=config["merge_policy"],
    )
    client = MockupAPIClient(base_url=config["api_url"] or None)
    store = JsonRequestStore(OUTPUT_ROOT / str(bundle.request.product_id))
    return asyncio.run(run_mockup_workflow(state, client, store=store))


def _display_result(result: Dict[str, Any]) -> None:
    for placement, error in (result.get("fallbacks") or {}).items():
        st.warning(f"{placement_title(placement)}: composite failed, only the most recent design was used ({error})")
    for message in result.get("validation_warnings") or []:
        st.caption(message)

    mockups = result.get("mockups") or []
    st.header(f"Mockups ({len(mockups)})")
    columns = st.columns(3)
    for idx, mockup in enumerate(mockups):
        with columns[idx % 3]:
            st.image(mockup.url, caption=mockup.title or mockup.placement)

    with st.expander("Events", expanded=False):
        events: List[str] = result.get("events") or []
        st.code("\n".join(events))


def _sidebar_controls() -> Dict[str, Any]:
    settings = get_settings()
    with st.sidebar:
        st.header("Configuration")
        api_url = st.text_input("API URL", value=settings.API_URL)
        max_attempts = st.number_input(
            "Max status checks", min_value=1, max_value=200, value=settings.POLL_MAX_ATTEMPTS
        )
        delay = st.slider(
            "Seconds between checks", min_value=0.5, max_value=10.0, value=float(settings.POLL_DELAY_SECONDS), step=0.5
        )
        strict = st.checkbox("Fail when a composite cannot be created", value=False)
        validate = st.checkbox("Validate designs before submitting", value=True)
    return {
        "api_url": api_url.strip(),
        "max_attempts": int(max_attempts),
        "delay": float(delay),
        "merge_policy": MergeFailurePolicy.RAISE if strict else MergeFailurePolicy.FALLBACK,
        "validate": validate,
    }


def main() -> None:
    st.set_page_config(page_title="Mockup Generator", layout="wide")
    st.title("Mockup Generator")

    config = _sidebar_controls()
    uploaded = st.file_uploader("Layout bundle (JSON)", type=["json"])
    if uploaded is None:
        st.info("Upload a layout bundle with product, variants, print files and designs.")
        return

    bundle = _load_bundle(uploaded.getvalue())
    if bundle is None:
        return

    st.caption(
        f"Product {bundle.request.product_id} · variants {bundle.request.variant_ids} · "
        f"{len(bundle.designs)} design(s)"
    )

    if st.button("Preview composites"):
        with st.spinner("Compositing designs..."):
            _preview_composites(bundle)

    if st.button("Generate mockup"):
        with st.spinner("Generating mockup..."):
            try:
                result = _run_workflow(bundle, config)
            except MockupError as exc:
                st.toast("Mockup generation failed")
                _report_failure(exc)
            else:
                st.success("Mockup generated")
                st.session_state["last_result"] = result

    last = st.session_state.get("last_result")
    if last:
        _display_result(last)


if __name__ == "__main__":
    main()
