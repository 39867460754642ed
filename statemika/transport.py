"""Raw HTTP calls against the State of Mika service.

Two endpoints:

- ``POST <base>/``          multipart form, answers free-text queries
- ``POST <base>/simulate``  JSON, returns one simulated activity

``perform_query`` never raises for remote conditions; every outcome is folded
into a ``QueryResult``. ``post_simulation`` raises ``SimulatorError``.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from .logging_utils import LoggerSink, NullLogger, truncate_preview
from .schemas import QueryErrorKind, QueryResult, RouteInfo, normalize_payload

_QUERY_ENDPOINT = "/"
_SIMULATE_ENDPOINT = "/simulate"

# Substring the service puts in 500 details when a downstream tool rejected
# the routed parameters.
VALIDATION_ERROR_MARKER = "validation error"
NO_RESPONSE_MESSAGE = "No response received from server"


class SimulatorError(RuntimeError):
    """Raised when a simulation request fails."""

    def __init__(self, status: int, message: str, detail: Optional[str] = None):
        super().__init__(f"{message} (status {status}): {detail}" if detail else f"{message} (status {status})")
        self.status = status
        self.message = message
        self.detail = detail


@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client untouched, or a short-lived one."""

    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as owned:
        yield owned


def _decode_body(response: httpx.Response) -> Any:
    try:
        content = response.content
    except httpx.ResponseNotRead:
        return None
    if not content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def error_detail(raw: Any, fields: tuple[str, ...] = ("detail", "error")) -> Any:
    """Pull the error detail the service attaches to failures, if any.

    ``fields`` are tried in order; classification looks at ``detail`` first,
    caller-facing messages at ``error`` first.
    """

    if isinstance(raw, dict):
        for field in fields:
            if raw.get(field) is not None:
                return raw[field]
        return None
    return raw


def classify_status(status_code: int, raw: Any) -> QueryErrorKind:
    """Map a non-200 status (plus body) onto the failure taxonomy."""

    if status_code == 400:
        return QueryErrorKind.BAD_REQUEST
    if status_code == 500:
        detail = error_detail(raw)
        if isinstance(detail, str) and VALIDATION_ERROR_MARKER in detail.lower():
            return QueryErrorKind.VALIDATION_FAILURE
        return QueryErrorKind.UPSTREAM_FAILURE
    return QueryErrorKind.HTTP_ERROR


def _failure_from_response(
    status_code: int,
    raw: Any,
    *,
    tool: str,
    session_id: str,
) -> QueryResult:
    detail = error_detail(raw, ("error", "detail"))
    if detail is None:
        message = f"Error {status_code}"
    elif isinstance(detail, str):
        message = detail
    else:
        message = repr(detail)
    return QueryResult(
        status_code=status_code,
        error_message=message,
        raw=raw,
        error_kind=classify_status(status_code, raw),
        tool=tool,
        session_id=session_id,
    )


async def perform_query(
    *,
    base_url: str,
    api_key: str,
    text: str,
    tool: str = "",
    timeout_ms: int,
    session_id: str,
    logger: Optional[LoggerSink] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> QueryResult:
    """Send exactly one multipart query and fold the outcome into a QueryResult.

    An empty ``tool`` is sent explicitly; the service reads it as "route
    automatically". Any HTTP status is a response, not an error.
    """

    logger = logger or NullLogger()
    url = f"{base_url.rstrip('/')}{_QUERY_ENDPOINT}"
    form = {
        "query": text,
        "tool": tool,
        "parameters_str": "",
    }
    # A (None, "") file entry forces multipart encoding and sends "file" as a
    # plain empty field.
    files = {"file": (None, "")}
    headers = {"X-API-Key": api_key}

    logger.info(
        f"[{session_id}] POST {url} tool={tool or '<auto>'} timeout={timeout_ms}ms "
        f'query="{truncate_preview(text, limit=50)}"'
    )

    started = time.perf_counter()
    try:
        async with _client_scope(client) as http:
            response = await http.post(
                url,
                data=form,
                files=files,
                headers=headers,
                timeout=httpx.Timeout(timeout_ms / 1000),
            )
    except httpx.HTTPStatusError as exc:
        raw = _decode_body(exc.response)
        logger.error(f"[{session_id}] API error details: status={exc.response.status_code}, data={truncate_preview(raw)}")
        return _failure_from_response(exc.response.status_code, raw, tool=tool, session_id=session_id)
    except httpx.RequestError as exc:
        logger.error(f"[{session_id}] Request sent but no response received: {exc!r}")
        return QueryResult(
            status_code=0,
            error_message=NO_RESPONSE_MESSAGE,
            error_kind=QueryErrorKind.NO_RESPONSE,
            tool=tool,
            session_id=session_id,
        )
    except Exception as exc:
        logger.error(f"[{session_id}] Error querying State of Mika API: {exc}")
        return QueryResult(
            status_code=500,
            error_message=str(exc) or exc.__class__.__name__,
            error_kind=QueryErrorKind.TRANSPORT_ERROR,
            tool=tool,
            session_id=session_id,
        )

    elapsed_ms = (time.perf_counter() - started) * 1000
    raw = _decode_body(response)
    logger.debug(
        f"[{session_id}] Raw response: status={response.status_code} ({elapsed_ms:.0f}ms) "
        f"body={truncate_preview(raw)}"
    )

    if response.status_code != 200:
        return _failure_from_response(response.status_code, raw, tool=tool, session_id=session_id)

    route = None
    if isinstance(raw, dict) and isinstance(raw.get("route"), dict):
        try:
            route = RouteInfo.model_validate(raw["route"])
        except ValidationError as exc:
            logger.warn(f"[{session_id}] Ignoring malformed route block: {exc.error_count()} error(s)")
        else:
            logger.debug(f"[{session_id}] Routed to tool={route.tool} confidence={route.confidence}")

    return QueryResult(
        status_code=200,
        payload=normalize_payload(raw),
        raw=raw,
        route=route,
        tool=tool,
        session_id=session_id,
    )


async def post_simulation(
    *,
    base_url: str,
    api_key: Optional[str],
    body: dict[str, Any],
    timeout_ms: int,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """POST a simulation config as JSON and return the decoded body.

    Raises:
        SimulatorError: on non-2xx responses and transport failures
    """

    url = f"{base_url.rstrip('/')}{_SIMULATE_ENDPOINT}"
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["X-API-Key"] = api_key

    try:
        async with _client_scope(client) as http:
            response = await http.post(
                url,
                json=body,
                headers=headers,
                timeout=httpx.Timeout(timeout_ms / 1000),
            )
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raw = _decode_body(exc.response)
        detail = raw.get("detail") if isinstance(raw, dict) else None
        raise SimulatorError(
            exc.response.status_code,
            f"Request failed with status code {exc.response.status_code}",
            detail if isinstance(detail, str) else (repr(detail) if detail is not None else "Unknown error"),
        ) from exc
    except httpx.HTTPError as exc:
        raise SimulatorError(500, "Failed to fetch life simulation", str(exc) or exc.__class__.__name__) from exc

    try:
        return response.json()
    except ValueError as exc:
        raise SimulatorError(500, "Simulation service returned non-JSON response", response.text[:200]) from exc


__all__ = [
    "SimulatorError",
    "VALIDATION_ERROR_MARKER",
    "NO_RESPONSE_MESSAGE",
    "classify_status",
    "error_detail",
    "perform_query",
    "post_simulation",
]
