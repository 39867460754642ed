"""
Query routing client for the State of Mika service.

The service can route a free-text query to one of several backend tools on
its own (auto-routing), but that routing is unreliable for some query shapes.
This client therefore wraps every query in a fixed policy:

1. Bitcoin price/worth/value questions skip auto-routing and go straight to
   the web-search tool.
2. Everything else is auto-routed (or sent to the caller's tool) first.
3. If that fails and the caller left tool choice to the service, exactly one
   fallback call is made with the web-search tool and a longer timeout.

A query therefore costs at most two HTTP calls, and the second one always
uses web search. The bound is carried by ``RoutingStage``: once a request is
in ``FALLBACK_ATTEMPTED`` it is sent as-is and never re-routed.

Usage:
    client = QueryClient(ClientConfig.from_env())
    result = await client.query("What is the latest news about Solana?")
    if result.ok:
        print(result.payload)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import httpx

from .config import ClientConfig, WEB_SEARCH_TIMEOUT_FLOOR_MS
from .logging_utils import ConsoleLogger, LoggerSink, truncate_preview
from .schemas import QueryErrorKind, QueryResult
from .transport import error_detail, perform_query

WEB_SEARCH_TOOL = "web_search"
AUTO_ROUTE_TOOL = ""

RELEVANT_KEYWORDS = (
    "price", "market", "token", "crypto", "blockchain", "solana", "bitcoin", "eth",
    "news", "latest", "update", "analysis", "chart", "trading", "volume",
    "defi", "nft", "yield", "apy", "liquidity",
)

_BITCOIN_TERMS = ("bitcoin", "btc")
_VALUATION_TERMS = ("price", "worth", "value")


class RoutingStage(Enum):
    """Where a request sits in the at-most-one-fallback sequence."""

    ROUTING = "routing"                        # a fallback may still follow
    FALLBACK_ATTEMPTED = "fallback_attempted"  # final call, sent as-is


@dataclass
class QueryOptions:
    """Caller-facing knobs for a single query."""

    tool: Optional[str] = None
    force_web_search: bool = False
    session_id: Optional[str] = None
    timeout_ms: Optional[int] = None
    debug: bool = False


@dataclass(frozen=True)
class QueryRequest:
    """One concrete call the router is about to make."""

    text: str
    session_id: str
    timeout_ms: int
    tool_hint: Optional[str] = None
    force_tool: bool = False
    stage: RoutingStage = RoutingStage.ROUTING
    debug: bool = False

    @property
    def tool(self) -> str:
        if self.force_tool:
            return WEB_SEARCH_TOOL
        return self.tool_hint or AUTO_ROUTE_TOOL


def is_bitcoin_valuation_query(text: str) -> bool:
    """True for questions about what bitcoin is worth."""

    lowered = text.lower()
    return any(term in lowered for term in _BITCOIN_TERMS) and any(
        term in lowered for term in _VALUATION_TERMS
    )


class QueryClient:
    """Client for the generic State of Mika query endpoint."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        logger: Optional[LoggerSink] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            config: Explicit configuration. When omitted, values come from the
                    environment via ClientConfig.from_env().
            api_key: Overrides the configured credential.
            base_url: Overrides the configured service root.
            logger: Log sink; defaults to a ConsoleLogger prefixed "MikaApiClient".
            http_client: Optional shared httpx.AsyncClient (not closed by us).
        """
        if config is None:
            config = ClientConfig.from_env(api_key=api_key, base_url=base_url)
        else:
            updates = {k: v for k, v in {"api_key": api_key, "base_url": base_url}.items() if v is not None}
            if updates:
                config = config.model_copy(update=updates)
        self.config = config
        self.logger = logger or ConsoleLogger("MikaApiClient")
        self.http_client = http_client

        if not self.config.api_key:
            self.logger.warn("Initialized without API key - queries will fail")
        self.logger.debug(f"API client initialized with base URL: {self.config.root_url}")

    def detect_relevance(self, text: str) -> bool:
        """Return True when the text looks like a market/crypto/news question."""
        lowered = text.lower()
        for keyword in RELEVANT_KEYWORDS:
            if keyword in lowered:
                self.logger.debug(f"Detected relevant keyword: {keyword}")
                return True
        return False

    async def query(self, text: str, options: Optional[QueryOptions] = None) -> QueryResult:
        """Answer a free-text query, applying the routing and fallback policy.

        Never raises for service conditions; inspect ``status_code`` /
        ``error_kind`` on the returned QueryResult instead.
        """
        options = options or QueryOptions()
        session_id = options.session_id or f"req-{int(time.time() * 1000)}"

        if not self.config.api_key:
            self.logger.error(f"[{session_id}] Missing API key for State of Mika API")
            return QueryResult(
                status_code=401,
                error_message="Missing API key",
                error_kind=QueryErrorKind.MISSING_CREDENTIAL,
                session_id=session_id,
            )

        request = QueryRequest(
            text=text,
            session_id=session_id,
            timeout_ms=options.timeout_ms or self.config.timeout_ms,
            tool_hint=options.tool or None,
            force_tool=options.force_web_search,
            debug=options.debug,
        )
        if request.force_tool:
            request = replace(request, timeout_ms=self._web_search_timeout(request.timeout_ms))
        return await self.route(request)

    async def route(self, request: QueryRequest) -> QueryResult:
        """Apply the decision policy to a prepared request."""

        if request.stage is RoutingStage.FALLBACK_ATTEMPTED:
            return await self._send(request)

        if is_bitcoin_valuation_query(request.text):
            self.logger.info(
                f"[{request.session_id}] Bitcoin valuation query detected; using {WEB_SEARCH_TOOL} directly"
            )
            return await self._send(self._as_web_search(request))

        first = await self._send(replace(request, stage=RoutingStage.FALLBACK_ATTEMPTED))
        if first.status_code == 200:
            return first

        self._log_failure(request, first)

        if request.tool_hint or request.force_tool:
            self.logger.warn(
                f"[{request.session_id}] Caller chose tool '{request.tool}'; not falling back"
            )
            return first

        self.logger.warn(
            f"[{request.session_id}] Falling back to {WEB_SEARCH_TOOL} after status {first.status_code}"
        )
        fallback = await self._send(self._as_web_search(request))
        if fallback.status_code == 200:
            self.logger.info(f"[{request.session_id}] Fallback to {WEB_SEARCH_TOOL} succeeded")
        else:
            self.logger.error(
                f"[{request.session_id}] Fallback to {WEB_SEARCH_TOOL} failed: "
                f"status={fallback.status_code}, error={fallback.error_message}"
            )
        return fallback

    def _web_search_timeout(self, timeout_ms: int) -> int:
        return max(timeout_ms, self.config.web_search_timeout_ms, WEB_SEARCH_TIMEOUT_FLOOR_MS)

    def _as_web_search(self, request: QueryRequest) -> QueryRequest:
        return replace(
            request,
            tool_hint=WEB_SEARCH_TOOL,
            force_tool=True,
            timeout_ms=self._web_search_timeout(request.timeout_ms),
            stage=RoutingStage.FALLBACK_ATTEMPTED,
        )

    def _log_failure(self, request: QueryRequest, result: QueryResult) -> None:
        sid = request.session_id
        if result.error_kind is QueryErrorKind.VALIDATION_FAILURE:
            self.logger.error(
                f"[{sid}] Downstream validation error after routing: "
                f"{truncate_preview(error_detail(result.raw), limit=200)}"
            )
        elif result.error_kind is QueryErrorKind.BAD_REQUEST:
            self.logger.error(
                f"[{sid}] Bad request (400): {result.error_message}. "
                "Retry with an explicit tool if auto-routing keeps failing."
            )
        else:
            self.logger.error(
                f"[{sid}] Routing failed: status={result.status_code}, error={result.error_message}"
            )

    async def _send(self, request: QueryRequest) -> QueryResult:
        """Exactly one HTTP call; no routing decisions."""

        result = await perform_query(
            base_url=self.config.root_url,
            api_key=self.config.api_key or "",
            text=request.text,
            tool=request.tool,
            timeout_ms=request.timeout_ms,
            session_id=request.session_id,
            logger=self.logger,
            client=self.http_client,
        )
        if result.status_code == 200:
            self.logger.info(f"[{request.session_id}] Successfully received data from State of Mika API")
        if request.debug:
            self.logger.info(
                f"[{request.session_id}] DEBUG status={result.status_code} tool={request.tool or '<auto>'} "
                f"route={result.route} raw={truncate_preview(result.raw)}"
            )
        return result


def create_query_client(config: Optional[ClientConfig] = None, **kwargs) -> QueryClient:
    """Create a configured QueryClient."""
    return QueryClient(config, **kwargs)


__all__ = [
    "QueryClient",
    "QueryOptions",
    "QueryRequest",
    "RoutingStage",
    "WEB_SEARCH_TOOL",
    "AUTO_ROUTE_TOOL",
    "RELEVANT_KEYWORDS",
    "is_bitcoin_valuation_query",
    "create_query_client",
]
