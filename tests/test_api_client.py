import asyncio
import json

import httpx
import pytest

from api_client import (
    MockupAPIClient,
    MockupRequest,
    MockupTask,
    MockupTaskState,
    MockupTaskStatus,
    build_mockup_payload,
)
from errors import (
    MockupCancelledError,
    MockupRequestError,
    MockupTaskFailedError,
    MockupTimeoutError,
    TaskSubmissionError,
)
from layout_constraints import DesignFile, DesignPosition
from settings import Settings


BASE_URL = "http://api.test"
COMPLETED = {
    "result": {
        "status": "completed",
        "mockups": [
            {
                "placement": "front",
                "variant_ids": [4011],
                "mockup_url": "https://cdn.test/front.jpg",
                "extra": [{"title": "Lifestyle", "option": "Lifestyle", "url": "https://cdn.test/life.jpg"}],
            }
        ],
    }
}
PENDING = {"result": {"status": "pending"}}


def _settings(**overrides):
    values = {"POLL_MAX_ATTEMPTS": 30, "POLL_DELAY_SECONDS": 2.0, "POLL_INITIAL_DELAY_SECONDS": 0.0}
    values.update(overrides)
    return Settings(**values)


def _run(handler, scenario, sleep=None, **client_kwargs):
    """Run ``scenario(client)`` against a mock transport."""

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = MockupAPIClient(
                base_url=client_kwargs.pop("base_url", BASE_URL),
                http_client=http,
                settings=client_kwargs.pop("settings", _settings()),
                sleep=sleep or _RecordingSleep(),
                **client_kwargs,
            )
            return await scenario(client)

    return asyncio.run(main())


class _RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class _StatusSequence:
    """Serves queued status payloads, repeating the last one."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.calls = []

    def __call__(self, request):
        self.calls.append(request)
        payload = self.payloads.pop(0) if len(self.payloads) > 1 else self.payloads[0]
        if isinstance(payload, int):
            return httpx.Response(payload, text="upstream error")
        return httpx.Response(200, json=payload)


def _design():
    return DesignFile(
        id=7,
        filename="logo.png",
        url="https://cdn.test/logo.png",
        placement="front",
        position=DesignPosition(1800, 2400, 600, 600, top=120, left=600),
    )


def test_status_is_read_from_top_level_or_result():
    assert MockupTaskStatus.from_response({"status": "completed"}).state is MockupTaskState.COMPLETED
    assert MockupTaskStatus.from_response({"result": {"status": "failed"}}).state is MockupTaskState.FAILED
    assert MockupTaskStatus.from_response({"result": {"status": "queued"}}).state is MockupTaskState.PENDING

    status = MockupTaskStatus.from_response(COMPLETED)
    assert [(m.url, m.option) for m in status.mockups] == [
        ("https://cdn.test/front.jpg", "Main"),
        ("https://cdn.test/life.jpg", "Lifestyle"),
    ]
    assert status.mockups[0].title == "front (Main)"
    assert status.mockups[1].title == "Lifestyle"
    assert status.mockups[1].variant_ids == [4011]


def test_poll_completes_on_third_check():
    handler = _StatusSequence(PENDING, PENDING, COMPLETED)
    sleep = _RecordingSleep()
    messages = []
    task = MockupTask(task_key="task-1")

    status = _run(
        handler,
        lambda client: client.poll_mockup_status(
            "task-1", on_status_update=lambda message, attempt: messages.append((attempt, message)), task=task
        ),
        sleep=sleep,
    )

    assert status.state is MockupTaskState.COMPLETED
    assert len(handler.calls) == 3
    assert sleep.delays == [2.0, 2.0]
    assert handler.calls[0].url.path == "/api/printful/mockup-tasks/task-1"
    assert task.state is MockupTaskState.COMPLETED
    assert task.attempts == 3
    assert (3, "Mockup completed successfully!") in messages
    assert (1, "Checking mockup status (attempt 1)...") in messages


def test_poll_times_out_when_task_never_finishes():
    handler = _StatusSequence(PENDING)
    sleep = _RecordingSleep()
    task = MockupTask(task_key="slow")

    with pytest.raises(MockupTimeoutError) as excinfo:
        _run(handler, lambda client: client.poll_mockup_status("slow", task=task), sleep=sleep)

    assert excinfo.value.attempts == 30
    assert len(handler.calls) == 30
    assert len(sleep.delays) == 29
    assert task.state is MockupTaskState.TIMED_OUT


def test_poll_raises_server_failure_message():
    handler = _StatusSequence(PENDING, {"result": {"status": "failed", "error": "Invalid image"}})
    task = MockupTask(task_key="bad")

    with pytest.raises(MockupTaskFailedError) as excinfo:
        _run(handler, lambda client: client.poll_mockup_status("bad", task=task))

    assert str(excinfo.value) == "Invalid image"
    assert len(handler.calls) == 2
    assert task.state is MockupTaskState.FAILED


def test_poll_skips_transient_errors_until_last_attempt():
    handler = _StatusSequence(500, COMPLETED)
    status = _run(handler, lambda client: client.poll_mockup_status("flaky"))
    assert status.state is MockupTaskState.COMPLETED
    assert len(handler.calls) == 2

    failing = _StatusSequence(503)
    with pytest.raises(MockupRequestError) as excinfo:
        _run(failing, lambda client: client.poll_mockup_status("down", max_attempts=2))
    assert excinfo.value.status_code == 503
    assert len(failing.calls) == 2


def test_poll_stops_when_cancelled_between_checks():
    handler = _StatusSequence(PENDING)
    task = MockupTask(task_key="cancel-me")

    async def scenario(client):
        cancel = asyncio.Event()

        async def sleep(delay):
            cancel.set()
            await asyncio.sleep(10)

        client._sleep = sleep
        return await client.poll_mockup_status("cancel-me", cancel_event=cancel, task=task)

    with pytest.raises(MockupCancelledError):
        _run(handler, scenario)

    assert len(handler.calls) == 1
    assert task.state is MockupTaskState.CANCELLED


def test_poll_does_not_check_after_cancel_is_already_set():
    handler = _StatusSequence(PENDING)

    async def scenario(client):
        cancel = asyncio.Event()
        cancel.set()
        return await client.poll_mockup_status("early", cancel_event=cancel)

    with pytest.raises(MockupCancelledError):
        _run(handler, scenario)
    assert handler.calls == []


def test_create_mockup_task_posts_payload_and_returns_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"result": {"task_key": "gt-123"}})

    payload = build_mockup_payload(MockupRequest(product_id=71, variant_ids=[4011]), [_design()])
    key = _run(handler, lambda client: client.create_mockup_task(71, payload), api_token="secret")

    assert key == "gt-123"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/printful/mockup-generator/create-task/71"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    body = json.loads(seen[0].content)
    assert body["variant_ids"] == [4011]
    assert body["format"] == "jpg"
    assert body["files"][0]["position"] == {
        "area_width": 1800,
        "area_height": 2400,
        "width": 600,
        "height": 600,
        "top": 120,
        "left": 600,
    }


def test_create_mockup_task_without_key_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"result": {}})

    with pytest.raises(TaskSubmissionError):
        _run(handler, lambda client: client.create_mockup_task(71, {"variant_ids": [1]}))


def test_payload_omits_unset_options():
    request = MockupRequest(product_id=71, variant_ids=[1, 2], format="png", width=1000, options=["Front"])
    payload = build_mockup_payload(request, [])
    assert payload == {"variant_ids": [1, 2], "format": "png", "width": 1000, "options": ["Front"]}

    with pytest.raises(ValueError):
        MockupRequest(product_id=71, variant_ids=[1], format="gif")


def test_generate_product_mockup_returns_all_images():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"result": {"task_key": "gt-9"}})
        return httpx.Response(200, json=COMPLETED)

    request = MockupRequest(product_id=71, variant_ids=[4011])
    mockups = _run(handler, lambda client: client.generate_product_mockup(request, [_design()]))
    assert [m.url for m in mockups] == ["https://cdn.test/front.jpg", "https://cdn.test/life.jpg"]


def test_base_url_is_read_from_environment_per_request(monkeypatch):
    monkeypatch.delenv("MOCKUP_API_URL", raising=False)
    monkeypatch.setenv("NEXT_PUBLIC_API_URL", "http://env.test/")
    hosts = []

    def handler(request):
        hosts.append(str(request.url))
        return httpx.Response(200, json=COMPLETED)

    async def scenario(client):
        await client.get_mockup_task_status("k1")
        monkeypatch.setenv("NEXT_PUBLIC_API_URL", "http://other.test")
        await client.get_mockup_task_status("k2")

    _run(handler, scenario, base_url=None)
    assert hosts == [
        "http://env.test/api/printful/mockup-tasks/k1",
        "http://other.test/api/printful/mockup-tasks/k2",
    ]


def test_upload_sends_multipart_file():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"result": {"file_url": "https://cdn.test/c.png"}})

    response = _run(handler, lambda client: client.upload_file_directly("c.png", b"\x89PNGdata"))

    assert response["result"]["file_url"] == "https://cdn.test/c.png"
    assert seen[0].url.path == "/api/printful/files/upload"
    assert seen[0].headers["Content-Type"].startswith("multipart/form-data")
    assert b'name="file"; filename="c.png"' in seen[0].content


def test_poll_rejects_an_empty_attempt_budget():
    handler = _StatusSequence(PENDING)

    with pytest.raises(ValueError):
        _run(handler, lambda client: client.poll_mockup_status("k", max_attempts=0))
    assert handler.calls == []

    single = _StatusSequence(PENDING)
    with pytest.raises(MockupTimeoutError):
        _run(single, lambda client: client.poll_mockup_status("k", max_attempts=1))
    assert len(single.calls) == 1
