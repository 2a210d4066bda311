from __future__ import annotations

import json

import httpx
import pytest

from cloudplane.errors import NotAuthenticatedError, SessionClosedError, TransportIOError, UnexpectedResponseError
from cloudplane.runtime.transport import describe_request, describe_response, make_replayable

from conftest import BASE_URL, TOKEN


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


def test_create_request_attaches_bearer_token_and_base_url(make_transport):
    transport = make_transport(_ok)

    request = transport.create_request("/v2/account")

    assert request.headers["Authorization"] == f"Bearer {TOKEN}"
    assert str(request.url) == f"{BASE_URL}/v2/account"
    assert request.method == "GET"


def test_create_request_encodes_mapping_as_json(make_transport):
    transport = make_transport(_ok)

    request = transport.create_request("/v2/kubernetes/clusters", {"name": "prod", "region": "nyc1"}, method="POST")

    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.read()) == {"name": "prod", "region": "nyc1"}


def test_streamed_body_is_byte_identical_after_buffering(make_transport):
    received: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request.read())
        return httpx.Response(204)

    transport = make_transport(handler)
    chunks = [b"\x00\x01binary", b"-payload-", bytes(range(200, 256))]
    original = b"".join(chunks)
    request = transport.create_request("/v2/upload", iter(chunks), method="PUT", content_type="application/octet-stream")

    make_replayable(request)

    assert request.content == original
    assert request.read() == original
    describe_request(request)
    transport.send(request)
    assert received == [original]


def test_send_translates_timeouts_into_transport_io_error(make_transport):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    transport = make_transport(handler)

    with pytest.raises(TransportIOError) as excinfo:
        transport.send(transport.create_request("/v2/droplets"))

    assert isinstance(excinfo.value.__cause__, httpx.ConnectTimeout)


def test_send_translates_broken_connections(make_transport):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("peer closed connection", request=request)

    transport = make_transport(handler)

    with pytest.raises(TransportIOError):
        transport.send(transport.create_request("/v2/droplets"))


def test_session_closed_blocks_requests(make_transport):
    transport = make_transport(_ok)
    request = transport.create_request("/v2/droplets")
    transport.session.close()

    with pytest.raises(SessionClosedError):
        transport.send(request)
    with pytest.raises(SessionClosedError):
        transport.create_request("/v2/droplets")


def test_create_request_requires_login(make_transport):
    transport = make_transport(_ok)
    transport.session.access_token = None

    with pytest.raises(NotAuthenticatedError):
        transport.create_request("/v2/droplets")


def test_describe_request_masks_credential_and_renders_json_body(make_transport):
    transport = make_transport(_ok)
    request = transport.create_request("/v2/droplets", {"name": "web-1"}, method="POST")

    rendered = transport.describe_request(request)

    assert rendered.startswith(f"< HTTP POST {BASE_URL}/v2/droplets\n")
    assert TOKEN not in rendered
    assert "< authorization: Bearer ***" in rendered
    assert '< {"name":"web-1"}' in rendered or '< {"name": "web-1"}' in rendered


def test_describe_request_summarises_binary_body():
    request = httpx.Request("PUT", "https://api.example.test/v2/blob", content=b"\x89PNG" + b"\x00" * 60, headers={"Content-Type": "image/png"})

    rendered = describe_request(request)

    assert "[64 bytes]" in rendered
    assert "PNG" not in rendered


def test_describe_request_without_body_has_no_body_section():
    request = httpx.Request("DELETE", "https://api.example.test/v2/droplets/1")

    rendered = describe_request(request)

    assert rendered.startswith("< HTTP DELETE https://api.example.test/v2/droplets/1\n")
    assert rendered.count("<\n") == 1


def test_describe_response_renders_status_line_headers_and_body():
    response = httpx.Response(422, json={"message": "bad"}, request=httpx.Request("POST", BASE_URL))

    rendered = describe_response(response)

    lines = rendered.splitlines()
    assert lines[0] == 'HTTP/1.1 422 ("Unprocessable Entity")'
    assert "content-type: application/json" in rendered
    assert lines[-1] == '{"message":"bad"}' or lines[-1] == '{"message": "bad"}'


def test_describe_response_without_headers_or_body():
    response = httpx.Response(204)

    assert describe_response(response) == 'HTTP/1.1 204 ("No Content")'


def test_describe_response_summarises_binary_body():
    response = httpx.Response(200, content=b"\x00" * 10, headers={"Content-Type": "application/octet-stream"})

    assert describe_response(response).endswith("[10 bytes]")


def test_read_json_rejects_invalid_payload(make_transport):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>", headers={"Content-Type": "text/html"})

    transport = make_transport(handler)
    response = transport.send(transport.create_request("/v2/account"))

    with pytest.raises(UnexpectedResponseError) as excinfo:
        transport.read_json(response)

    assert "<html>oops</html>" in excinfo.value.response_dump
    assert "GET" in excinfo.value.request_dump


def test_read_json_returns_none_for_empty_body(make_transport):
    transport = make_transport(lambda request: httpx.Response(204))
    response = transport.send(transport.create_request("/v2/droplets/1", method="DELETE"))

    assert transport.read_json(response) is None


def test_create_request_merges_params_into_existing_query(make_transport):
    transport = make_transport(_ok)

    request = transport.create_request(f"{BASE_URL}/v2/droplets?page=3&per_page=20", params={"per_page": 200, "tag_name": "prod"})

    assert request.url.params["page"] == "3"
    assert request.url.params["per_page"] == "200"
    assert request.url.params["tag_name"] == "prod"
