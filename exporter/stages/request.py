"""Request stage: one named retrieval against the remote API."""

import copy
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from exporter.auth.credentials import BearerToken, CredentialProvider
from exporter.auth.exceptions import AuthError
from exporter.config.models import AdvancedConfig, PaginationType, RequestDef
from exporter.logging import get_logger

from .base import StageContext
from .exceptions import RequestAuthError, RequestError, TemplateRenderError
from .rendering import TemplateRenderer
from .transport import ApiTransport

logger = get_logger(__name__, component="request")

# List fields probed, in order, when a paged request does not name one
DEFAULT_COLLECT_FIELDS = ("entities", "conversations", "results", "userDetails")


class RequestStage:
    """
    Executes a RequestDef and stores the result in the DataBag under its name.

    Handles:
    - Endpoint and body rendering from the run's template variables
    - Bearer authentication and required-scope checks
    - Page-number and cursor pagination, accumulating pages into one result
    - Bounded exponential-backoff retry of transient failures
    """

    def __init__(
        self,
        transport: ApiTransport,
        credentials: CredentialProvider,
        renderer: TemplateRenderer,
        max_retries: int = 3,
        retry_initial_delay: float = 1.0,
        retry_backoff_multiplier: float = 2.0,
        retry_max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.credentials = credentials
        self.renderer = renderer
        self.max_retries = max_retries
        self.retry_initial_delay = retry_initial_delay
        self.retry_backoff_multiplier = retry_backoff_multiplier
        self.retry_max_delay = retry_max_delay
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        transport: ApiTransport,
        credentials: CredentialProvider,
        renderer: TemplateRenderer,
        advanced: AdvancedConfig,
    ) -> "RequestStage":
        return cls(
            transport=transport,
            credentials=credentials,
            renderer=renderer,
            max_retries=advanced.max_retries,
            retry_initial_delay=advanced.retry_initial_delay,
            retry_backoff_multiplier=advanced.retry_backoff_multiplier,
            retry_max_delay=advanced.retry_max_delay,
        )

    def run(self, request_def: RequestDef, context: StageContext) -> Any:
        """
        Perform the retrieval and write the result into context.data.

        Args:
            request_def: Request definition
            context: Run context holding the DataBag

        Returns:
            The (possibly page-accumulated) response

        Raises:
            RequestError: If the request fails after retries, or auth fails
        """
        # Fail before rendering when no usable credential exists
        self._get_token(request_def)

        variables = context.template_variables()
        try:
            endpoint = self.renderer.render_string(request_def.endpoint, variables)
            body = self.renderer.render_tree(copy.deepcopy(request_def.body), variables)
        except TemplateRenderError as e:
            raise RequestError(f"Request '{request_def.name}' could not be rendered: {e}") from e

        pagination = request_def.pagination
        if pagination.type == PaginationType.PAGE.value:
            result, pages = self._fetch_paged(request_def, endpoint, body)
        elif pagination.type == PaginationType.CURSOR.value:
            result, pages = self._fetch_cursor(request_def, endpoint, body)
        else:
            result = self._call(request_def, endpoint, json_data=body)
            pages = 1

        if request_def.name in context.data:
            logger.debug(
                f"Request '{request_def.name}' overwrites an existing DataBag entry",
                extra={"event": "stage.request.overwrite", "request": request_def.name},
            )
        context.data[request_def.name] = result

        logger.info(
            f"Request '{request_def.name}' completed",
            extra={
                "event": "stage.request.completed",
                "request": request_def.name,
                "pages": pages,
            },
        )
        return result

    def _get_token(self, request_def: RequestDef) -> BearerToken:
        try:
            token = self.credentials.get_token()
        except AuthError as e:
            raise RequestAuthError(f"Request '{request_def.name}' has no usable credential: {e}") from e

        if not token.has_scope(request_def.scope):
            raise RequestAuthError(
                f"Request '{request_def.name}' requires scope '{request_def.scope}' "
                f"which the credential does not grant"
            )
        return token

    def _fetch_paged(self, request_def: RequestDef, endpoint: str, body: Any) -> Tuple[Any, int]:
        """Walk pageNumber=1..N until a short page, pageCount, or max_pages."""
        policy = request_def.pagination
        is_get = request_def.method == "GET"
        accumulated: Any = None
        collect: Optional[str] = policy.collect
        page_number = 1

        while page_number <= policy.max_pages:
            paging = {"pageSize": policy.page_size, "pageNumber": page_number}
            if is_get:
                response = self._call(request_def, endpoint, params=paging)
            else:
                page_body = dict(body) if isinstance(body, dict) else {}
                page_body["paging"] = paging
                response = self._call(request_def, endpoint, json_data=page_body)

            if accumulated is None:
                collect = collect or _infer_collect_field(response)
                accumulated = response
                if collect is None:
                    # Nothing to accumulate; the response is not a list page
                    return accumulated, 1
                items = _list_field(response, collect)
            else:
                items = _list_field(response, collect)
                _list_field(accumulated, collect).extend(items)

            page_count = response.get("pageCount") if isinstance(response, dict) else None
            if len(items) < policy.page_size:
                break
            if isinstance(page_count, int) and page_number >= page_count:
                break
            page_number += 1

        if page_number > policy.max_pages:
            page_number = policy.max_pages
            logger.warning(
                f"Request '{request_def.name}' stopped at max_pages={policy.max_pages}",
                extra={"event": "stage.request.max_pages", "request": request_def.name},
            )

        return accumulated, page_number

    def _fetch_cursor(self, request_def: RequestDef, endpoint: str, body: Any) -> Tuple[Any, int]:
        """Follow nextUri or cursor fields until the API stops returning one."""
        policy = request_def.pagination
        is_get = request_def.method == "GET"
        accumulated: Any = None
        collect: Optional[str] = policy.collect
        pages = 0
        next_endpoint = endpoint
        params: Optional[Dict[str, Any]] = None
        page_body = body

        while pages < policy.max_pages:
            response = self._call(request_def, next_endpoint, params=params, json_data=page_body)
            pages += 1

            if accumulated is None:
                collect = collect or _infer_collect_field(response)
                accumulated = response
                if collect is None:
                    return accumulated, pages
            else:
                _list_field(accumulated, collect).extend(_list_field(response, collect))

            if not isinstance(response, dict):
                break
            next_uri = response.get("nextUri")
            cursor = response.get("cursor")
            if next_uri:
                next_endpoint, params = next_uri, None
            elif cursor:
                if is_get:
                    params = {"cursor": cursor}
                else:
                    page_body = dict(body) if isinstance(body, dict) else {}
                    page_body["cursor"] = cursor
            else:
                break
        else:
            logger.warning(
                f"Request '{request_def.name}' stopped at max_pages={policy.max_pages}",
                extra={"event": "stage.request.max_pages", "request": request_def.name},
            )

        if isinstance(accumulated, dict):
            accumulated.pop("nextUri", None)
            accumulated.pop("cursor", None)
        return accumulated, pages

    def _call(
        self,
        request_def: RequestDef,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
    ) -> Any:
        """One logical call with bounded retry of transient failures."""
        max_attempts = self.max_retries + 1
        last_error: Optional[RequestError] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = self.retry_initial_delay * (self.retry_backoff_multiplier ** (attempt - 2))
                delay = min(delay, self.retry_max_delay)
                logger.warning(
                    f"Retrying request '{request_def.name}' (attempt {attempt}/{max_attempts}) "
                    f"after {delay:.1f}s delay",
                    extra={
                        "event": "stage.request.retry",
                        "request": request_def.name,
                        "attempt": attempt,
                    },
                )
                self._sleep(delay)

            try:
                return self._send(request_def, endpoint, params, json_data)
            except RequestError as e:
                last_error = e
                if not e.retryable:
                    raise
                if attempt == max_attempts:
                    logger.error(
                        f"Request '{request_def.name}' failed after {max_attempts} attempts: {e}",
                        extra={
                            "event": "stage.request.exhausted",
                            "request": request_def.name,
                            "attempts": max_attempts,
                            "error_type": type(e).__name__,
                        },
                    )

        raise last_error

    def _send(
        self,
        request_def: RequestDef,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        json_data: Optional[Any],
    ) -> Any:
        """Send one request; a 401 drops the cached token and retries once with a new one."""
        try:
            return self._transport_request(request_def, endpoint, params, json_data)
        except RequestAuthError as e:
            if e.status_code != 401:
                raise
            logger.warning(
                f"Request '{request_def.name}' was rejected with HTTP 401; fetching a new token",
                extra={"event": "stage.request.token_rejected", "request": request_def.name},
            )
            self.credentials.invalidate()
            return self._transport_request(request_def, endpoint, params, json_data)

    def _transport_request(
        self,
        request_def: RequestDef,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        json_data: Optional[Any],
    ) -> Any:
        token = self._get_token(request_def)
        return self.transport.request(
            method=request_def.method,
            endpoint=endpoint,
            authorization=token.authorization_header,
            headers=dict(request_def.headers),
            params=params,
            json_data=json_data,
        )


def _infer_collect_field(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    for name in DEFAULT_COLLECT_FIELDS:
        if isinstance(response.get(name), list):
            return name
    return None


def _list_field(response: Any, name: str) -> List[Any]:
    """Return the list under ``name``; a missing field is an empty page."""
    if not isinstance(response, dict):
        raise RequestError(f"Expected a JSON object page, got {type(response).__name__}")
    items = response.get(name)
    if items is None:
        items = []
        response[name] = items
    if not isinstance(items, list):
        raise RequestError(f"Expected '{name}' to be an array, got {type(items).__name__}")
    return items
