"""Wire-level tests for the raw HTTP calls (httpx.MockTransport, no network)."""

import json
import re

import httpx
import pytest
from pydantic import ValidationError

from statemika.config import ClientConfig
from statemika.logging_utils import NullLogger
from statemika.query_client import QueryClient
from statemika.schemas import QueryErrorKind, QueryResult, normalize_payload
from statemika.transport import (
    NO_RESPONSE_MESSAGE,
    SimulatorError,
    classify_status,
    perform_query,
    post_simulation,
)


def parse_multipart(request: httpx.Request) -> dict[str, str]:
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    fields: dict[str, str] = {}
    for part in request.content.split(b"--" + boundary):
        if b"\r\n\r\n" not in part:
            continue
        head, _, body = part.partition(b"\r\n\r\n")
        name = re.search(rb'name="([^"]+)"', head).group(1).decode()
        fields[name] = body[:-2].decode()
    return fields


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def run_query(handler, **overrides):
    kwargs = dict(
        base_url="https://state.test",
        api_key="secret-key",
        text="What is the latest news about Solana?",
        tool="",
        timeout_ms=15000,
        session_id="test-session",
    )
    kwargs.update(overrides)
    async with mock_client(handler) as client:
        return await perform_query(client=client, **kwargs)


@pytest.mark.asyncio
async def test_perform_query_sends_multipart_form_with_header_credential():
    captured: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(200, json={"response": "Solana is up 4% today."})

    result = await run_query(handler)

    request = captured["request"]
    assert request.method == "POST"
    assert str(request.url) == "https://state.test/"
    assert request.headers["X-API-Key"] == "secret-key"
    assert request.headers["content-type"].startswith("multipart/form-data")

    fields = parse_multipart(request)
    assert fields == {
        "query": "What is the latest news about Solana?",
        "tool": "",
        "parameters_str": "",
        "file": "",
    }
    assert b"secret-key" not in request.content

    assert result.status_code == 200
    assert result.payload == "Solana is up 4% today."
    assert result.error_message is None


@pytest.mark.asyncio
async def test_perform_query_forwards_tool_and_timeout():
    captured: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(200, json={"response": "ok"})

    await run_query(handler, tool="web_search", timeout_ms=30000)

    request = captured["request"]
    assert parse_multipart(request)["tool"] == "web_search"
    assert request.extensions["timeout"]["read"] == 30.0


@pytest.mark.asyncio
async def test_perform_query_prefers_processed_response_and_keeps_route():
    body = {
        "response": {"processed_response": "BTC trades at $64k", "original": {"x": 1}},
        "route": {"tool": "token_price", "confidence": 0.92},
    }

    result = await run_query(lambda request: httpx.Response(200, json=body))

    assert result.payload == "BTC trades at $64k"
    assert result.raw == body
    assert result.route.tool == "token_price"
    assert result.route.confidence == pytest.approx(0.92)


def test_normalize_payload_priority():
    assert normalize_payload({"response": {"processed_response": "p"}}) == "p"
    assert normalize_payload({"response": "plain"}) == "plain"
    assert normalize_payload({"response": {"other": 1}}) == {"other": 1}
    assert normalize_payload({"data": [1, 2]}) == {"data": [1, 2]}
    assert normalize_payload("text body") == "text body"


def test_normalize_payload_stringifies_scalars():
    assert normalize_payload({"response": 42}) == "42"
    assert normalize_payload({"response": True}) == "True"
    assert normalize_payload({"response": {"processed_response": 1.5}}) == "1.5"
    assert normalize_payload(None) == ""
    assert normalize_payload(7) == "7"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, payload",
    [
        ({"response": 42}, "42"),
        ({"response": True}, "True"),
        ({"response": {"processed_response": 1.5}}, "1.5"),
        ({"response": "fine", "route": {"tool": "web_search", "confidence": "high"}}, "fine"),
    ],
)
async def test_query_returns_result_for_unusual_success_bodies(body, payload):
    async with mock_client(lambda request: httpx.Response(200, json=body)) as http:
        client = QueryClient(
            ClientConfig(api_key="secret-key", base_url="https://state.test"),
            logger=NullLogger(),
            http_client=http,
        )
        result = await client.query("What is photosynthesis?")

    assert result.ok
    assert result.payload == payload
    assert result.route is None


def test_query_result_requires_exactly_one_outcome():
    with pytest.raises(ValidationError):
        QueryResult(status_code=200, payload="data", error_message="boom")
    with pytest.raises(ValidationError):
        QueryResult(status_code=200)

    assert QueryResult(status_code=200, payload="").ok
    assert not QueryResult(status_code=500, error_message="boom").ok


@pytest.mark.asyncio
async def test_empty_success_body_becomes_empty_payload():
    result = await run_query(lambda request: httpx.Response(200))

    assert result.status_code == 200
    assert result.payload == ""
    assert result.error_message is None


@pytest.mark.asyncio
async def test_error_field_wins_over_detail_in_message():
    body = {"error": "Tool execution failed", "detail": "1 validation error for SearchParams"}

    result = await run_query(lambda request: httpx.Response(500, json=body))

    assert result.error_message == "Tool execution failed"
    # Classification still reads the detail.
    assert result.error_kind is QueryErrorKind.VALIDATION_FAILURE


@pytest.mark.asyncio
async def test_non_200_status_is_a_result_not_an_exception():
    def handler(request):
        return httpx.Response(400, json={"error": "Missing query parameter"})

    result = await run_query(handler)

    assert result.status_code == 400
    assert result.error_message == "Missing query parameter"
    assert result.error_kind is QueryErrorKind.BAD_REQUEST
    assert result.raw == {"error": "Missing query parameter"}
    assert result.payload is None


@pytest.mark.asyncio
async def test_500_with_validation_marker_is_classified():
    detail = "1 validation error for SearchParams\nquery\n  field required"

    result = await run_query(lambda request: httpx.Response(500, json={"detail": detail}))

    assert result.status_code == 500
    assert result.error_kind is QueryErrorKind.VALIDATION_FAILURE
    assert result.raw == {"detail": detail}


@pytest.mark.asyncio
async def test_500_without_marker_is_upstream_failure():
    result = await run_query(lambda request: httpx.Response(500, text="Internal Server Error"))

    assert result.error_kind is QueryErrorKind.UPSTREAM_FAILURE
    assert result.error_message == "Internal Server Error"


def test_classify_status_ignores_marker_on_non_string_detail():
    assert classify_status(500, {"detail": [{"msg": "validation error"}]}) is QueryErrorKind.UPSTREAM_FAILURE
    assert classify_status(404, None) is QueryErrorKind.HTTP_ERROR


@pytest.mark.asyncio
async def test_network_failure_maps_to_status_zero():
    def handler(request):
        raise httpx.ConnectError("Name or service not known", request=request)

    result = await run_query(handler)

    assert result.status_code == 0
    assert result.error_message == NO_RESPONSE_MESSAGE
    assert result.error_kind is QueryErrorKind.NO_RESPONSE


@pytest.mark.asyncio
async def test_timeout_maps_to_status_zero():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = await run_query(handler)

    assert result.status_code == 0


@pytest.mark.asyncio
async def test_other_failure_maps_to_500_with_message():
    def handler(request):
        raise RuntimeError("could not build request")

    result = await run_query(handler)

    assert result.status_code == 500
    assert result.error_message == "could not build request"
    assert result.error_kind is QueryErrorKind.TRANSPORT_ERROR


@pytest.mark.asyncio
async def test_response_bearing_exception_keeps_status_and_body():
    async def raise_on_error(response: httpx.Response) -> None:
        await response.aread()
        response.raise_for_status()

    def handler(request):
        return httpx.Response(503, json={"error": "maintenance"})

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        event_hooks={"response": [raise_on_error]},
    )
    async with client:
        result = await perform_query(
            client=client,
            base_url="https://state.test",
            api_key="k",
            text="q",
            timeout_ms=1000,
            session_id="s",
        )

    assert result.status_code == 503
    assert result.error_message == "maintenance"
    assert result.raw == {"error": "maintenance"}


@pytest.mark.asyncio
async def test_post_simulation_sends_json_and_key():
    captured: dict[str, httpx.Request] = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(200, json={"activity": {}})

    async with mock_client(handler) as client:
        data = await post_simulation(
            base_url="https://state.test/",
            api_key="sim-key",
            body={"occupation": "Barista"},
            timeout_ms=15000,
            client=client,
        )

    request = captured["request"]
    assert str(request.url) == "https://state.test/simulate"
    assert request.headers["content-type"] == "application/json"
    assert request.headers["X-API-Key"] == "sim-key"
    assert json.loads(request.content) == {"occupation": "Barista"}
    assert data == {"activity": {}}


@pytest.mark.asyncio
async def test_post_simulation_omits_key_when_unconfigured():
    captured: dict[str, httpx.Request] = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(200, json={})

    async with mock_client(handler) as client:
        await post_simulation(base_url="https://state.test", api_key=None, body={}, timeout_ms=1000, client=client)

    assert "X-API-Key" not in captured["request"].headers


@pytest.mark.asyncio
async def test_post_simulation_raises_with_detail():
    def handler(request):
        return httpx.Response(422, json={"detail": "office is required"})

    async with mock_client(handler) as client:
        with pytest.raises(SimulatorError) as excinfo:
            await post_simulation(base_url="https://state.test", api_key="k", body={}, timeout_ms=1000, client=client)

    assert excinfo.value.status == 422
    assert excinfo.value.detail == "office is required"


@pytest.mark.asyncio
async def test_post_simulation_transport_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(SimulatorError) as excinfo:
            await post_simulation(base_url="https://state.test", api_key="k", body={}, timeout_ms=1000, client=client)

    assert excinfo.value.status == 500
    assert excinfo.value.message == "Failed to fetch life simulation"
    assert excinfo.value.detail == "refused"
