"""HTTP transport used by request stages to call the remote API.

The transport is injected into RequestStage so tests and alternative
deployments can replace the network layer without touching stage logic.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from exporter.logging import get_logger

from .exceptions import (
    RequestAuthError,
    RequestHTTPError,
    RequestResponseError,
    RequestTimeoutError,
)

logger = get_logger(__name__, component="transport")


class ApiTransport:
    """Performs one HTTP call and classifies failures.

    Attributes:
        base_url: Prefix for relative endpoints (e.g. https://api.mypurecloud.com)
        timeout: Per-call timeout in seconds
        user_agent: User-Agent header for every request
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        user_agent: str = "OpenDataExporter/2.0",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.user_agent = user_agent
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})

    def resolve_url(self, endpoint: str) -> str:
        """Absolute URLs pass through; paths are joined to the base URL."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return urljoin(self.base_url, endpoint.lstrip("/"))

    def request(
        self,
        method: str,
        endpoint: str,
        authorization: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
    ) -> Any:
        """Make an HTTP request and return the decoded JSON body.

        Args:
            method: HTTP method
            endpoint: Path relative to base_url or absolute URL
            authorization: Value for the Authorization header
            headers: Additional headers
            params: Query parameters
            json_data: JSON body

        Returns:
            Parsed JSON response (None for an empty body)

        Raises:
            RequestAuthError: On 401/403
            RequestHTTPError: On other 4xx/5xx or connection failure
            RequestTimeoutError: On timeout
            RequestResponseError: On invalid JSON
        """
        url = self.resolve_url(endpoint)
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)
        if authorization:
            request_headers["Authorization"] = authorization

        logger.debug(
            f"HTTP {method} request to {url}",
            extra={
                "event": "transport.request",
                "method": method,
                "url": url,
                "timeout": self.timeout,
            },
        )

        try:
            response = self._session.request(
                method=method,
                url=url,
                headers=request_headers,
                params=params,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={"event": "transport.retryable_error", "error_type": "Timeout", "url": url},
            )
            raise RequestTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Request to {url} failed: {e}",
                extra={"event": "transport.retryable_error", "error_type": type(e).__name__, "url": url},
            )
            raise RequestHTTPError(f"Request to {url} failed: {e}", status_code=0, url=url) from e

        if response.status_code >= 400:
            is_retryable = response.status_code == 429 or response.status_code >= 500
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from {url}",
                extra={
                    "event": "transport.retryable_error" if is_retryable else "transport.error",
                    "status_code": response.status_code,
                    "url": url,
                },
            )
            message = f"HTTP {response.status_code}: {response.reason}"
            if response.status_code in (401, 403):
                raise RequestAuthError(message, url=url, status_code=response.status_code)
            raise RequestHTTPError(message, status_code=response.status_code, url=url)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse JSON response from {url}",
                extra={"event": "transport.error", "error_type": "JSONDecodeError", "url": url},
            )
            raise RequestResponseError(f"Failed to parse JSON response from {url}: {e}", url=url) from e
