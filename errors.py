"""Exception types raised by the compositing and mockup pipeline."""

from __future__ import annotations

from typing import Any, List, Optional


class MockupError(Exception):
    """Base class for every pipeline failure."""


class AssetLoadError(MockupError):
    def __init__(self, index: int, filename: str, reason: str = "") -> None:
        self.index = index
        self.filename = filename
        message = f"Failed to load image {index}: {filename}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class CompositeError(MockupError):
    pass


class UploadError(MockupError):
    def __init__(self, message: str, response: Any = None) -> None:
        self.response = response
        if response is not None:
            message = f"{message}: {response!r}"
        super().__init__(message)


class MockupRequestError(MockupError):
    """Transport, HTTP status or decoding failure talking to the backend."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TaskSubmissionError(MockupError):
    pass


class MockupTaskFailedError(MockupError):
    def __init__(self, task_key: str, message: str) -> None:
        self.task_key = task_key
        super().__init__(message)


class MockupTimeoutError(MockupError):
    def __init__(self, task_key: str, attempts: int) -> None:
        self.task_key = task_key
        self.attempts = attempts
        super().__init__(
            f"Mockup generation timed out after {attempts} status checks (task {task_key})"
        )


class MockupCancelledError(MockupError):
    def __init__(self, task_key: str) -> None:
        self.task_key = task_key
        super().__init__(f"Polling cancelled for mockup task {task_key}")


class CompositeMergeError(MockupError):
    def __init__(self, placement: str, cause: BaseException) -> None:
        self.placement = placement
        self.cause = cause
        super().__init__(f"Failed to create composite for {placement}: {cause}")


class DesignValidationError(MockupError):
    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Design validation failed: " + "; ".join(self.errors))
