import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union


logger = logging.getLogger(__name__)


class StepTimer:
    """Accumulates wall-clock seconds and call counts per pipeline step.

    ``time_step`` wraps synchronous code or ``await`` expressions alike, so
    one timer can follow a whole workflow run (validate, merge, submit, poll).
    """

    def __init__(self) -> None:
        self._durations: Dict[str, float] = {}
        self._counts: Dict[str, int] = {}

    @contextmanager
    def time_step(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self._durations[name] = self._durations.get(name, 0.0) + elapsed
            self._counts[name] = self._counts.get(name, 0) + 1
            logger.debug("step %s took %.3fs", name, elapsed)

    def get(self, name: str) -> Optional[float]:
        return self._durations.get(name)

    def count(self, name: str) -> int:
        return self._counts.get(name, 0)

    def to_dict(self) -> Dict[str, float]:
        return {name: round(seconds, 3) for name, seconds in self._durations.items()}

    def to_lines(self) -> List[str]:
        lines = []
        for name, seconds in self._durations.items():
            runs = self._counts.get(name, 0)
            suffix = f" ({runs} runs)" if runs > 1 else ""
            lines.append(f"{name}: {seconds:.3f}s{suffix}")
        return lines

    def write_to_file(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(line + "\n" for line in self.to_lines()), encoding="utf-8")
        return path
