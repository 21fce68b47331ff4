# src/cloud_helpers/transport.py

"""
Outbound transport to the queue service.

Each Transmission Unit produced by the dispatcher becomes one HTTP PUT to
``/start_work``. The queue service coordinates the actual datastore writes, so
this module only serializes, sends and checks the status code.
"""

import logging
from typing import Callable, Protocol

import httpx

from .codec import JSON_CONTENT_TYPE, encode_json
from .config import AppConfig, get_project_id
from .exceptions import TransportError
from .schemas import QueueServiceRequest

logger = logging.getLogger(__name__)

START_WORK_PATH = "/start_work"


class QueueServiceTransport(Protocol):
    """Anything that can deliver one Transmission Unit."""

    def send(
        self, request: QueueServiceRequest, timeout: float | None = None
    ) -> None: ...


class HttpQueueServiceTransport:
    """
    Sends Transmission Units to the queue service over HTTP.
    """

    def __init__(
        self,
        config: AppConfig,
        client: httpx.Client | None = None,
        project_id_provider: Callable[[], str] = get_project_id,
    ):
        """
        Initializes the transport.

        Args:
            config: Library configuration (URL template, query parameters, timeout).
            client: Optional shared httpx client. When omitted, the transport
                creates and owns one.
            project_id_provider: Callable returning the project id used in the
                queue service host name. May raise ConfigurationError.
        """
        self._config = config
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client()
        self._project_id_provider = project_id_provider

    def start_work_url(self) -> str:
        project_id = self._project_id_provider()
        return self._config.queue_service_base_url(project_id) + START_WORK_PATH

    def send(self, request: QueueServiceRequest, timeout: float | None = None) -> None:
        """
        PUTs a single Transmission Unit. Raises ConfigurationError when the
        project id is unavailable, SerializationError when the payload cannot
        be encoded and TransportError for network failures or non-2xx replies.
        """
        url = self.start_work_url()

        body = encode_json(request)

        params = {
            "opsPerInstance": self._config.ops_per_instance,
            "entitiesPerRequest": self._config.entities_per_request,
        }
        effective_timeout = (
            timeout if timeout is not None else self._config.request_timeout_seconds
        )
        context = {
            "url": url,
            "kind": request.kind,
            "entity_count": len(request.entities),
            "body_bytes": len(body),
        }

        logger.debug("Sending transmission to queue service", extra=context)
        try:
            response = self._client.put(
                url,
                params=params,
                content=body,
                headers={"Content-Type": JSON_CONTENT_TYPE},
                timeout=effective_timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Queue service request timed out after {effective_timeout}s",
                error_code="TRANSPORT_TIMEOUT",
                context=context,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Queue service request failed: {e}",
                context=context,
            ) from e

        if not response.is_success:
            raise TransportError(
                f"Queue service responded with HTTP {response.status_code}",
                status_code=response.status_code,
                error_code="TRANSPORT_BAD_STATUS",
                context=context,
            )

        logger.debug(
            "Transmission accepted",
            extra={**context, "status_code": response.status_code},
        )

    def close(self) -> None:
        """Closes the underlying client if this transport created it."""
        if self._owns_client:
            self._client.close()
