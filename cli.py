"""Command-line entry point: local composites, full mockup runs and task status checks."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from api_client import MockupAPIClient, get_api_client
from compositor import composite_to_file, merge_designs_into_composite
from errors import MockupError
from layout_constraints import group_by_placement, resolve_print_area
from mockup_workflow.utils import JsonRequestStore, load_layout, serialize_designs, serialize_mockups, write_json
from mockup_workflow.workflow import run_mockup_workflow, state_from_bundle
from placement_merge import MergeFailurePolicy
from settings import get_settings
from utils.timing import StepTimer


logger = logging.getLogger(__name__)


def _compose(args: argparse.Namespace) -> int:
    bundle = load_layout(Path(args.layout))
    groups = group_by_placement(bundle.designs)
    placement = args.placement.strip().lower()
    if placement not in groups:
        raise MockupError(f"No designs for placement '{placement}' (have: {', '.join(groups) or 'none'})")
    print_file = resolve_print_area(bundle.print_files, placement)
    if print_file is None:
        raise MockupError(f"No print file found for placement: {placement}")

    result = asyncio.run(merge_designs_into_composite(groups[placement], print_file, placement))
    out = composite_to_file(result, Path(args.output))
    print(f"Composite saved to: {out} ({result.width}x{result.height})")
    return 0


def _mockup(args: argparse.Namespace) -> int:
    bundle = load_layout(Path(args.layout))
    artifacts = Path(args.artifacts or get_settings().ARTIFACTS_DIR) / str(bundle.request.product_id)
    state = state_from_bundle(
        bundle,
        validate=not args.skip_validation,
        max_attempts=args.max_attempts,
        delay=args.delay,
        merge_policy=MergeFailurePolicy.RAISE if args.strict_merge else None,
        run_root=artifacts,
    )
    client = MockupAPIClient(base_url=args.api_url)
    timer = StepTimer()
    result = asyncio.run(
        run_mockup_workflow(state, client, store=JsonRequestStore(artifacts), timer=timer)
    )

    for placement, error in (result.get("fallbacks") or {}).items():
        print(f"[warn] composite for {placement} failed, used most recent design: {error}", file=sys.stderr)
    for mockup in result.get("mockups") or []:
        print(f"{mockup.placement}\t{mockup.option or ''}\t{mockup.url}")
    write_json(artifacts / "final_designs.json", serialize_designs(result.get("merged_designs") or bundle.designs))
    timer.write_to_file(str(artifacts / "timings.txt"))
    return 0


def _status(args: argparse.Namespace) -> int:
    client = get_api_client(args.api_url)
    if args.wait:
        status = asyncio.run(
            client.poll_mockup_status(
                args.task_key,
                args.max_attempts,
                args.delay,
                on_status_update=lambda message, _attempt: logger.info(message),
            )
        )
    else:
        status = asyncio.run(client.get_mockup_task_status(args.task_key))
    print(json.dumps({"status": status.state.value, "error": status.error, "mockups": serialize_mockups(status.mockups)}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Composite multi-design placements and generate product mockups.")
    parser.add_argument("--api-url", default=None, help="Backend base URL (default: MOCKUP_API_URL / NEXT_PUBLIC_API_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    compose = sub.add_parser("compose", help="Merge one placement's designs into a local PNG")
    compose.add_argument("layout", help="Layout bundle JSON (product, variants, print files, designs)")
    compose.add_argument("--placement", required=True, help="Placement to merge (e.g., front)")
    compose.add_argument("--output", required=True, help="Output PNG path")
    compose.set_defaults(handler=_compose)

    mockup = sub.add_parser("mockup", help="Run validate → merge → submit → poll for a layout bundle")
    mockup.add_argument("layout", help="Layout bundle JSON")
    mockup.add_argument("--max-attempts", type=int, default=None, help="Status checks before giving up (default: 30)")
    mockup.add_argument("--delay", type=float, default=None, help="Seconds between status checks (default: 2.0)")
    mockup.add_argument("--artifacts", default=None, help="Directory for stored requests, results and timings")
    mockup.add_argument("--strict-merge", action="store_true", help="Fail instead of keeping the newest design when a composite fails")
    mockup.add_argument("--skip-validation", action="store_true", help="Submit without checking designs against print areas")
    mockup.set_defaults(handler=_mockup)

    status = sub.add_parser("status", help="Check a mockup task")
    status.add_argument("task_key")
    status.add_argument("--wait", action="store_true", help="Poll until the task finishes")
    status.add_argument("--max-attempts", type=int, default=None)
    status.add_argument("--delay", type=float, default=None)
    status.set_defaults(handler=_status)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.handler(args)
    except (MockupError, FileNotFoundError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
