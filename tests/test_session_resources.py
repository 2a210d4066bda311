from __future__ import annotations

import threading

import httpx
import pytest

from cloudplane.config import RuntimeSettings
from cloudplane.core.session import Session
from cloudplane.errors import AccessDeniedError, PageMappingError, SessionClosedError, UnexpectedResponseError
from cloudplane.runtime.resources import destroy_resource, get_resource

from conftest import BASE_URL


@pytest.mark.parametrize("token", ["", " padded", "padded\n"])
def test_login_rejects_malformed_tokens(token):
    session = Session(settings=RuntimeSettings(base_url=BASE_URL))

    with pytest.raises(ValueError):
        session.login(token)


def test_login_after_close_is_rejected():
    session = Session()
    session.close()

    with pytest.raises(SessionClosedError):
        session.login("token")


def test_session_repr_hides_token():
    session = Session(access_token="very-secret")

    assert "very-secret" not in repr(session)


def test_session_context_manager_closes_client():
    with Session(settings=RuntimeSettings(base_url=BASE_URL), access_token="token", http_transport=httpx.MockTransport(lambda request: httpx.Response(200))) as session:
        client = session.http_client
        assert not client.is_closed

    assert session.closed
    assert client.is_closed
    session.close()


def test_close_from_another_thread_blocks_further_sends(make_transport):
    transport = make_transport(lambda request: httpx.Response(200, json={}))
    request = transport.create_request("/v2/account")

    worker = threading.Thread(target=transport.session.close)
    worker.start()
    worker.join()

    with pytest.raises(SessionClosedError):
        transport.send(request)


def _droplet(body):
    return body["droplet"]["name"]


def test_get_resource_maps_body(make_transport):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"droplet": {"id": 1, "name": "web-1"}})

    transport = make_transport(handler)

    assert get_resource(transport, "/v2/droplets/1", _droplet) == "web-1"
    assert seen[0].method == "GET"


def test_get_resource_returns_none_when_missing(make_transport):
    transport = make_transport(lambda request: httpx.Response(404, json={"id": "not_found", "message": "not found"}))

    assert get_resource(transport, "/v2/droplets/1", _droplet) is None


def test_get_resource_reports_unmappable_body(make_transport):
    transport = make_transport(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(PageMappingError) as excinfo:
        get_resource(transport, "/v2/droplets/1", _droplet)

    assert excinfo.value.body == {"unexpected": True}


def test_get_resource_propagates_access_denied(make_transport):
    transport = make_transport(lambda request: httpx.Response(403, json={"message": "You do not have access"}))

    with pytest.raises(AccessDeniedError):
        get_resource(transport, "/v2/droplets/1", _droplet)


def test_destroy_resource_reports_deletion(make_transport):
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(204)

    transport = make_transport(handler)

    assert destroy_resource(transport, "/v2/droplets/1") is True
    assert methods == ["DELETE"]


def test_destroy_resource_treats_missing_as_already_gone(make_transport):
    transport = make_transport(lambda request: httpx.Response(404))

    assert destroy_resource(transport, "/v2/droplets/1") is False


def test_destroy_resource_raises_on_server_error(make_transport):
    transport = make_transport(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(UnexpectedResponseError, match="boom"):
        destroy_resource(transport, "/v2/droplets/1")


def test_concurrent_first_use_shares_one_client():
    session = Session(settings=RuntimeSettings(base_url=BASE_URL), access_token="token", http_transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    barrier = threading.Barrier(8)
    clients: list[httpx.Client] = []

    def worker() -> None:
        barrier.wait()
        clients.append(session.http_client)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    session.close()

    assert len(clients) == 8
    assert all(client is clients[0] for client in clients)
    assert clients[0].is_closed
