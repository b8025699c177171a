"""
API client module for the print-on-demand backend.
Wraps file uploads and the asynchronous mockup-generation task API.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from errors import (
    MockupCancelledError,
    MockupError,
    MockupRequestError,
    MockupTaskFailedError,
    MockupTimeoutError,
    TaskSubmissionError,
)
from layout_constraints import DesignFile
from settings import Settings, get_api_url, get_settings


logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, int], None]
SleepFn = Callable[[float], Awaitable[None]]


class MockupTaskState(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


TERMINAL_STATES = {
    MockupTaskState.COMPLETED,
    MockupTaskState.FAILED,
    MockupTaskState.TIMED_OUT,
    MockupTaskState.CANCELLED,
}

_ALLOWED_TRANSITIONS = {
    MockupTaskState.SUBMITTED: {
        MockupTaskState.PENDING,
        MockupTaskState.COMPLETED,
        MockupTaskState.FAILED,
        MockupTaskState.TIMED_OUT,
        MockupTaskState.CANCELLED,
    },
    MockupTaskState.PENDING: {
        MockupTaskState.PENDING,
        MockupTaskState.COMPLETED,
        MockupTaskState.FAILED,
        MockupTaskState.TIMED_OUT,
        MockupTaskState.CANCELLED,
    },
}


@dataclass
class MockupImage:
    url: str
    placement: str
    variant_ids: List[int] = field(default_factory=list)
    title: Optional[str] = None
    option: Optional[str] = None
    option_group: Optional[str] = None


@dataclass
class MockupTaskStatus:
    """One status report of a mockup task."""

    state: MockupTaskState
    mockups: List[MockupImage] = field(default_factory=list)
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.state in (MockupTaskState.COMPLETED, MockupTaskState.FAILED)

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "MockupTaskStatus":
        result = payload.get("result") if isinstance(payload.get("result"), dict) else {}
        raw_status = payload.get("status") or result.get("status")
        if raw_status == "completed":
            state = MockupTaskState.COMPLETED
        elif raw_status == "failed":
            state = MockupTaskState.FAILED
        else:
            state = MockupTaskState.PENDING
        error = payload.get("error") or result.get("error")
        return cls(
            state=state,
            mockups=_parse_mockups(result),
            error=str(error) if error else None,
            raw=payload,
        )


@dataclass
class MockupTask:
    """Client-side view of a remote mockup-generation task."""

    task_key: str
    product_id: Optional[int] = None
    state: MockupTaskState = MockupTaskState.SUBMITTED
    attempts: int = 0
    last_status: Optional[MockupTaskStatus] = None

    def transition(self, new_state: MockupTaskState) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ValueError(f"Invalid mockup task transition {self.state.value} -> {new_state.value}")
        self.state = new_state


@dataclass
class MockupRequest:
    product_id: int
    variant_ids: List[int]
    format: str = "jpg"
    width: Optional[int] = None
    product_options: Optional[Dict[str, Any]] = None
    option_groups: List[str] = field(default_factory=list)
    options: List[str] = field(default_factory=list)
    product_template_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.format not in ("jpg", "png"):
            raise ValueError(f"Unsupported mockup format '{self.format}', expected jpg or png")


def _parse_mockups(result: Dict[str, Any]) -> List[MockupImage]:
    images: List[MockupImage] = []
    for mockup in result.get("mockups") or []:
        placement = mockup.get("placement", "")
        variant_ids = [int(v) for v in mockup.get("variant_ids") or []]
        if mockup.get("mockup_url"):
            images.append(
                MockupImage(
                    url=mockup["mockup_url"],
                    placement=placement,
                    variant_ids=variant_ids,
                    title=f"{placement} (Main)",
                    option="Main",
                    option_group="Default",
                )
            )
        for extra in mockup.get("extra") or []:
            if not isinstance(extra, dict) or not extra.get("url"):
                continue
            option = extra.get("option") or "Variation"
            images.append(
                MockupImage(
                    url=extra["url"],
                    placement=placement,
                    variant_ids=variant_ids,
                    title=extra.get("title") or f"{placement} ({option})",
                    option=option,
                    option_group=extra.get("option_group") or "Extra",
                )
            )
    if not images and result.get("mockup_url"):
        placement = result.get("placement", "")
        images.append(MockupImage(url=result["mockup_url"], placement=placement, title=placement or None))
    return images


def build_mockup_payload(request: MockupRequest, designs: List[DesignFile]) -> Dict[str, Any]:
    """Body of a create-task call for ``request`` with one file entry per design."""
    payload: Dict[str, Any] = {
        "variant_ids": list(request.variant_ids),
        "format": request.format,
    }
    if request.width:
        payload["width"] = request.width
    if request.product_options:
        payload["product_options"] = dict(request.product_options)
    if request.option_groups:
        payload["option_groups"] = list(request.option_groups)
    if request.options:
        payload["options"] = list(request.options)
    if request.product_template_id:
        payload["product_template_id"] = request.product_template_id
    if designs:
        payload["files"] = [
            {
                "placement": design.placement,
                "image_url": design.url,
                "position": design.position.to_dict(include_limit=False),
            }
            for design in designs
        ]
    return payload


class MockupAPIClient:
    """Async client for uploads and mockup tasks on the backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        api_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """
        Initialize the API client.

        Args:
            base_url: Backend base URL. When omitted it is resolved from the
                environment on every request.
            api_token: Optional bearer token sent with backend calls.
            http_client: Shared ``httpx.AsyncClient``. Without one a
                short-lived client is opened per request.
            settings: Settings override (defaults to the cached settings).
            sleep: Awaitable used for poll delays.
        """
        self.settings = settings or get_settings()
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_token = api_token if api_token is not None else self.settings.API_TOKEN
        self._http = http_client
        self._sleep = sleep

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        base = self.base_url or get_api_url()
        return f"{base}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        if self.api_token:
            return {"Authorization": f"Bearer {self.api_token}"}
        return {}

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._http is not None:
                response = await self._http.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT) as client:
                    response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MockupRequestError(
                f"HTTP {method} to {url} returned {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise MockupRequestError(f"HTTP {method} to {url} failed: {e}") from e
        return response

    async def _request_json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = self._url(path)
        response = await self._send(method, url, headers=self._headers(), **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise MockupRequestError(
                f"HTTP {method} to {url} returned invalid JSON", status_code=response.status_code
            ) from e
        if not isinstance(data, dict):
            raise MockupRequestError(f"HTTP {method} to {url} returned unexpected payload: {data!r}")
        return data

    async def fetch_bytes(self, url: str) -> bytes:
        """Download a remote asset (design images live on external storage)."""
        response = await self._send("GET", url, follow_redirects=True)
        return response.content

    async def upload_file_directly(
        self, filename: str, data: bytes, content_type: str = "image/png"
    ) -> Dict[str, Any]:
        """
        Upload raw file bytes through the shared upload endpoint.

        Returns:
            The decoded response; ``result.file_url`` holds the persisted URL.
        """
        files = {"file": (filename, data, content_type)}
        return await self._request_json("POST", self.settings.UPLOAD_PATH, files=files)

    async def create_mockup_task(self, product_id: int, mockup_data: Dict[str, Any]) -> str:
        """
        Submit a mockup-generation task.

        Returns:
            The task key of the new task.

        Raises:
            TaskSubmissionError: If the response carries no task key.
        """
        path = self.settings.CREATE_TASK_PATH.format(product_id=product_id)
        response = await self._request_json("POST", path, json=mockup_data)
        result = response.get("result") if isinstance(response.get("result"), dict) else {}
        task_key = result.get("task_key")
        if not task_key:
            raise TaskSubmissionError(f"No task key returned from mockup creation: {response!r}")
        logger.info("Mockup task created for product %s with key %s", product_id, task_key)
        return str(task_key)

    async def get_mockup_task_status(self, task_key: str) -> MockupTaskStatus:
        path = self.settings.TASK_STATUS_PATH.format(task_key=task_key)
        payload = await self._request_json("GET", path)
        return MockupTaskStatus.from_response(payload)

    def _attempt_budget(self, max_attempts: Optional[int]) -> int:
        if max_attempts is None:
            return self.settings.POLL_MAX_ATTEMPTS
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        return max_attempts

    async def _wait(self, delay: float, cancel_event: Optional[asyncio.Event], task_key: str) -> None:
        if cancel_event is None:
            await self._sleep(delay)
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, waiter):
                if not fut.done():
                    fut.cancel()
        if waiter in done:
            raise MockupCancelledError(task_key)

    async def iter_mockup_status(
        self,
        task_key: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[Tuple[int, MockupTaskStatus]]:
        """
        Yield ``(attempt, status)`` for every status check of ``task_key``.

        Checks are spaced by a fixed ``delay`` and stop after a terminal
        status or ``max_attempts`` checks. A request error on a check is
        logged and skipped, except on the last attempt where it propagates.
        """
        max_attempts = self._attempt_budget(max_attempts)
        delay = self.settings.POLL_DELAY_SECONDS if delay is None else delay

        for attempt in range(1, max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise MockupCancelledError(task_key)
            try:
                status = await self.get_mockup_task_status(task_key)
            except MockupRequestError as e:
                logger.warning("Polling attempt %s for task %s failed: %s", attempt, task_key, e)
                if attempt >= max_attempts:
                    raise
            else:
                yield attempt, status
                if status.is_terminal:
                    return
            if attempt < max_attempts:
                await self._wait(delay, cancel_event, task_key)

    async def poll_mockup_status(
        self,
        task_key: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        *,
        initial_delay: Optional[float] = None,
        on_status_update: Optional[StatusCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        task: Optional[MockupTask] = None,
    ) -> MockupTaskStatus:
        """
        Poll until the task completes.

        Returns:
            The first completed status.

        Raises:
            MockupTaskFailedError: On the first failed status.
            MockupTimeoutError: When every attempt reported pending.
            MockupCancelledError: When ``cancel_event`` is set.
        """
        max_attempts = self._attempt_budget(max_attempts)
        if initial_delay is None:
            initial_delay = self.settings.POLL_INITIAL_DELAY_SECONDS
        task = task or MockupTask(task_key=task_key)

        def notify(message: str, attempt: int) -> None:
            if on_status_update is not None:
                on_status_update(message, attempt)

        try:
            if initial_delay > 0:
                notify(f"Mockup generation started. Waiting {initial_delay:g}s before checking status...", 0)
                await self._wait(initial_delay, cancel_event, task_key)

            statuses = self.iter_mockup_status(task_key, max_attempts, delay, cancel_event=cancel_event)
            async with aclosing(statuses):
                async for attempt, status in statuses:
                    task.attempts = attempt
                    task.last_status = status
                    notify(f"Checking mockup status (attempt {attempt})...", attempt)
                    task.transition(status.state)
                    if status.state is MockupTaskState.COMPLETED:
                        notify("Mockup completed successfully!", attempt)
                        return status
                    if status.state is MockupTaskState.FAILED:
                        raise MockupTaskFailedError(task_key, status.error or "Mockup generation failed")
                    notify("Mockup still processing...", attempt)
        except (MockupCancelledError, asyncio.CancelledError):
            task.transition(MockupTaskState.CANCELLED)
            raise

        task.transition(MockupTaskState.TIMED_OUT)
        raise MockupTimeoutError(task_key, max_attempts)

    async def submit_mockup_task(self, request: MockupRequest, designs: List[DesignFile]) -> MockupTask:
        payload = build_mockup_payload(request, designs)
        task_key = await self.create_mockup_task(request.product_id, payload)
        return MockupTask(task_key=task_key, product_id=request.product_id)

    async def generate_product_mockup(
        self,
        request: MockupRequest,
        designs: List[DesignFile],
        *,
        on_status_update: Optional[StatusCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> List[MockupImage]:
        """Submit a task for ``designs`` and return every generated mockup image."""
        if on_status_update is not None:
            on_status_update("Creating mockup generation task...", 0)
        task = await self.submit_mockup_task(request, designs)
        status = await self.poll_mockup_status(
            task.task_key,
            max_attempts,
            delay,
            on_status_update=on_status_update,
            cancel_event=cancel_event,
            task=task,
        )
        if not status.mockups:
            raise MockupError("No mockup URLs in completed task result")
        logger.info("Mockups generated: %s total variations", len(status.mockups))
        return status.mockups


# Cached API clients keyed by base URL
_api_clients: dict[str, MockupAPIClient] = {}


def get_api_client(base_url: Optional[str] = None) -> MockupAPIClient:
    """Get or create a cached API client instance for ``base_url``."""
    cache_key = base_url or ""
    client = _api_clients.get(cache_key)
    if client is None:
        client = MockupAPIClient(base_url=base_url)
        _api_clients[cache_key] = client
    return client
