"""Thread-safe store of in-flight batch output, keyed by handle."""

import threading
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class BatchOutput:
    lines: List[str] = field(default_factory=list)
    complete: bool = False


class RunRegistry:
    """
    Holds the captured log output of each running batch.

    Entries are created when a batch starts and marked complete when it
    finishes. A completed entry is dropped the first time it is polled, so
    the final output is delivered exactly once; polling an unknown or
    already-drained handle reports completion with empty output.
    """

    def __init__(self):
        self._batches: Dict[str, BatchOutput] = {}
        self._lock = threading.Lock()

    def start(self, handle: str) -> None:
        with self._lock:
            self._batches[handle] = BatchOutput()

    def append(self, handle: str, line: str) -> None:
        with self._lock:
            batch = self._batches.get(handle)
            if batch is not None and not batch.complete:
                batch.lines.append(line)

    def complete(self, handle: str) -> None:
        with self._lock:
            batch = self._batches.get(handle)
            if batch is not None:
                batch.complete = True

    def get_output(self, handle: str) -> Dict[str, object]:
        """Return ``{"output": str, "complete": bool}`` for a handle."""
        with self._lock:
            batch = self._batches.get(handle)
            if batch is None:
                return {"output": "", "complete": True}
            output = "\n".join(batch.lines)
            if batch.complete:
                del self._batches[handle]
            return {"output": output, "complete": batch.complete}

    def active_handles(self) -> List[str]:
        with self._lock:
            return [handle for handle, batch in self._batches.items() if not batch.complete]

    def __contains__(self, handle: str) -> bool:
        with self._lock:
            return handle in self._batches
