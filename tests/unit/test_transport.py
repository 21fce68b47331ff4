# tests/unit/test_transport.py

"""
Unit tests for HttpQueueServiceTransport in src/cloud_helpers/transport.py.

Requests are served by httpx.MockTransport so the exact wire format (method,
URL, query string, JSON body) can be asserted without any network access.
"""

import base64
import json

import httpx
import pytest

from cloud_helpers.config import AppConfig
from cloud_helpers.exceptions import ConfigurationError, TransportError
from cloud_helpers.schemas import QueueServiceRequest
from cloud_helpers.transport import HttpQueueServiceTransport


@pytest.fixture
def config(app_env) -> AppConfig:
    return AppConfig.load_from_env()


def _transport(config, handler, project_id_provider=lambda: "my-project"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpQueueServiceTransport(
        config, client=client, project_id_provider=project_id_provider
    )


def test_send_puts_json_payload_to_start_work(config):
    # Arrange
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200)

    transport = _transport(config, handler)
    request = QueueServiceRequest(kind="Member", entities=[b"\x00\x01", b"hello"])

    # Act
    transport.send(request)

    # Assert
    (sent,) = captured
    assert sent.method == "PUT"
    assert sent.url.scheme == "https"
    assert sent.url.host == "queue-service-dot-my-project.ew.r.appspot.com"
    assert sent.url.path == "/start_work"
    assert dict(sent.url.params) == {"opsPerInstance": "1", "entitiesPerRequest": "500"}
    assert sent.headers["Content-Type"] == "application/json; charset=utf-8"
    assert json.loads(sent.content) == {
        "Kind": "Member",
        "Entities": [
            base64.b64encode(b"\x00\x01").decode(),
            base64.b64encode(b"hello").decode(),
        ],
    }


def test_send_uses_configured_template_and_query(app_env, monkeypatch):
    monkeypatch.setenv("QUEUE_SERVICE_URL_TEMPLATE", "http://localhost:8080/{project_id}/")
    monkeypatch.setenv("OPS_PER_INSTANCE", "4")
    monkeypatch.setenv("ENTITIES_PER_REQUEST", "250")
    config = AppConfig.load_from_env()
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(204)

    _transport(config, handler).send(QueueServiceRequest(kind="K", entities=[]))

    assert str(captured[0].url) == (
        "http://localhost:8080/my-project/start_work"
        "?opsPerInstance=4&entitiesPerRequest=250"
    )


@pytest.mark.parametrize("status_code", [400, 404, 413, 500, 503])
def test_non_2xx_status_raises_transport_error(config, status_code):
    transport = _transport(config, lambda request: httpx.Response(status_code))

    with pytest.raises(TransportError) as exc_info:
        transport.send(QueueServiceRequest(kind="K", entities=[b"x"]))

    assert exc_info.value.status_code == status_code
    assert exc_info.value.error_code == "TRANSPORT_BAD_STATUS"
    assert exc_info.value.context["status_code"] == status_code
    assert exc_info.value.context["entity_count"] == 1


def test_network_error_raises_transport_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = _transport(config, handler)

    with pytest.raises(TransportError) as exc_info:
        transport.send(QueueServiceRequest(kind="K", entities=[b"x"]))

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_timeout_raises_transport_timeout(config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    transport = _transport(config, handler)

    with pytest.raises(TransportError) as exc_info:
        transport.send(QueueServiceRequest(kind="K", entities=[b"x"]), timeout=1.5)

    assert exc_info.value.error_code == "TRANSPORT_TIMEOUT"
    assert "1.5s" in str(exc_info.value)


def test_missing_project_id_raises_before_request(config):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    def no_project() -> str:
        raise ConfigurationError("no project", error_code="PROJECT_ID_NOT_FOUND")

    transport = _transport(config, handler, project_id_provider=no_project)

    with pytest.raises(ConfigurationError):
        transport.send(QueueServiceRequest(kind="K", entities=[b"x"]))

    assert calls == []


def test_close_leaves_shared_client_open(config):
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    transport = HttpQueueServiceTransport(config, client=client)

    transport.close()

    assert client.is_closed is False


def test_close_closes_owned_client(config):
    transport = HttpQueueServiceTransport(config)

    transport.close()

    assert transport._client.is_closed is True
