"""Fixture-based transport for testing.

This module provides a stand-in for ApiTransport that answers from canned
responses instead of making real HTTP requests. Used for deterministic
request stage and end-to-end tests.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from exporter.stages.exceptions import RequestError


def load_fixture_responses(fixture_path: Path) -> Dict[str, List[Any]]:
    """Load canned responses from a YAML file.

    The file maps ``"METHOD /path"`` keys to a list of responses returned
    in order on successive calls.

    Raises:
        FileNotFoundError: If fixture file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    if not fixture_path.exists():
        raise FileNotFoundError(f"Fixture file not found: {fixture_path}")

    with open(fixture_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return data.get("responses", {})


class FixtureTransport:
    """Transport that replays queued responses per ``"METHOD endpoint"``.

    A queued item that is an exception instance is raised instead of
    returned. When a queue has a single item left it is repeated.

    Attributes:
        responses: Mapping of call key to queued responses
        calls: Every call made, as dicts of the request arguments
    """

    def __init__(self, responses: Optional[Dict[str, List[Any]]] = None):
        self.responses = {key: list(items) for key, items in (responses or {}).items()}
        self.calls: List[Dict[str, Any]] = []

    @classmethod
    def from_file(cls, fixture_path: Path) -> "FixtureTransport":
        return cls(load_fixture_responses(fixture_path))

    def add(self, method: str, endpoint: str, *items: Any) -> None:
        self.responses.setdefault(f"{getattr(method, 'value', method)} {endpoint}", []).extend(items)

    def request(
        self,
        method: str,
        endpoint: str,
        authorization: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
    ) -> Any:
        self.calls.append(
            {
                "method": method,
                "endpoint": endpoint,
                "authorization": authorization,
                "headers": headers,
                "params": params,
                "json_data": json_data,
            }
        )

        key = f"{getattr(method, 'value', method)} {endpoint}"
        queue = self.responses.get(key)
        if not queue:
            raise RequestError(f"No fixture response for {key}", url=endpoint)

        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def endpoints(self) -> List[Tuple[str, str]]:
        return [(call["method"], call["endpoint"]) for call in self.calls]
