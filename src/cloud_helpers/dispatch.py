# src/cloud_helpers/dispatch.py

"""
Chunked dispatch of entity batches to the queue service.

The platform rejects HTTP requests above 32 MB, so a large batch of entities
has to be split into Transmission Units that each stay under a ceiling before
being forwarded. Units are sent one at a time, in input order, and the first
failure aborts the whole dispatch: entities already sent stay sent, and the
rest are never attempted.

Two chunking modes are supported:

* Legacy mode reproduces the historical accumulator. It divides the
  running byte count by 8,000,000 rather than 1,000,000, so it accumulates
  roughly eight times the nominal ceiling, and it drops the entity that trips
  the threshold.
* Sized mode measures the serialized request body: each entity's base64
  text with its JSON quotes and separator, plus the fixed envelope. It flushes
  *before* an entity would push the body over the ceiling, and never drops
  anything.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Protocol

import pydantic

from .config import AppConfig
from .exceptions import (
    CloudHelpersError,
    DispatchCancelledError,
    SerializationError,
)
from .schemas import QueueServiceRequest
from .transport import QueueServiceTransport

logger = logging.getLogger(__name__)

# Two quotes and a separating comma around each base64 entity.
ENTITY_FRAMING_BYTES = 3


class Reporter(Protocol):
    """Anything that can report a failed dispatch."""

    def report(self, error: BaseException) -> None: ...


@dataclass(frozen=True, slots=True)
class DispatchSummary:
    """What a completed dispatch sent."""

    kind: str
    transmission_sizes: tuple[int, ...]
    dropped_indices: tuple[int, ...]

    @property
    def transmissions(self) -> int:
        return len(self.transmission_sizes)

    @property
    def entities_sent(self) -> int:
        return sum(self.transmission_sizes)


def encoded_size(raw_size: int) -> int:
    """Length of the padded base64 encoding of *raw_size* bytes."""
    return 4 * ((raw_size + 2) // 3)


def envelope_size(kind: str) -> int:
    """Serialized length of a request for *kind* that carries no entities."""
    empty = QueueServiceRequest.model_construct(kind=kind, entities=[])
    return len(empty.model_dump_json(by_alias=True).encode("utf-8"))


def _as_blob(entity: Any, index: int) -> bytes:
    if isinstance(entity, bytes):
        return entity
    if isinstance(entity, (bytearray, memoryview)):
        return bytes(entity)
    raise SerializationError(
        f"Entity at index {index} is not a byte blob",
        context={"index": index, "type": type(entity).__name__},
    )


class BatchDispatcher:
    """
    Splits entities into size-bounded Transmission Units and sends them
    through a transport, strictly in order.
    """

    def __init__(
        self,
        transport: QueueServiceTransport,
        *,
        ceiling_mb: int = 31,
        legacy_chunking: bool = True,
        legacy_bytes_per_megabyte: int = 8_000_000,
        request_timeout_seconds: float | None = None,
    ):
        self._transport = transport
        self._ceiling_mb = ceiling_mb
        self._ceiling_bytes = ceiling_mb * 1_000_000
        self._legacy_chunking = legacy_chunking
        self._legacy_bytes_per_megabyte = legacy_bytes_per_megabyte
        self._request_timeout_seconds = request_timeout_seconds

    @classmethod
    def from_config(
        cls, transport: QueueServiceTransport, config: AppConfig
    ) -> "BatchDispatcher":
        return cls(
            transport,
            ceiling_mb=config.dispatch_ceiling_mb,
            legacy_chunking=config.legacy_chunking,
            legacy_bytes_per_megabyte=config.legacy_bytes_per_megabyte,
            request_timeout_seconds=config.request_timeout_seconds,
        )

    @property
    def legacy_chunking(self) -> bool:
        return self._legacy_chunking

    # --- Partitioning ---

    def _legacy_units(
        self, entities: Iterable[Any], dropped: list[int]
    ) -> Iterator[list[bytes]]:
        accumulator: list[bytes] = []
        in_operation = False
        running_bytes = 0

        for index, entity in enumerate(entities):
            blob = _as_blob(entity, index)
            in_operation = True
            running_bytes += len(blob)
            megabytes = running_bytes // self._legacy_bytes_per_megabyte

            if megabytes >= self._ceiling_mb:
                # The tripping entity belongs to neither unit.
                dropped.append(index)
                logger.warning(
                    "Entity dropped at flush boundary",
                    extra={"index": index, "entity_bytes": len(blob)},
                )
                yield accumulator
                in_operation = False
                accumulator = []
                running_bytes = 0
            else:
                accumulator.append(blob)

        if in_operation:
            yield accumulator

    def _sized_units(
        self, entities: Iterable[Any], budget: int
    ) -> Iterator[list[bytes]]:
        accumulator: list[bytes] = []
        running_bytes = 0

        for index, entity in enumerate(entities):
            blob = _as_blob(entity, index)
            size = encoded_size(len(blob)) + ENTITY_FRAMING_BYTES

            if accumulator and running_bytes + size > budget:
                yield accumulator
                accumulator = []
                running_bytes = 0

            if size > budget:
                logger.warning(
                    "Entity exceeds the dispatch ceiling on its own; sending it alone",
                    extra={
                        "index": index,
                        "serialized_bytes": size,
                        "ceiling_bytes": self._ceiling_bytes,
                    },
                )
            accumulator.append(blob)
            running_bytes += size

        if accumulator:
            yield accumulator

    # --- Dispatch ---

    def _transmission_timeout(
        self,
        deadline: float | None,
        cancel_event: threading.Event | None,
        transmissions_sent: int,
    ) -> float | None:
        if cancel_event is not None and cancel_event.is_set():
            raise DispatchCancelledError("cancelled", transmissions_sent)
        if deadline is None:
            return self._request_timeout_seconds

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise DispatchCancelledError("deadline exceeded", transmissions_sent)
        if self._request_timeout_seconds is None:
            return remaining
        return min(remaining, self._request_timeout_seconds)

    def dispatch(
        self,
        kind: str,
        entities: Iterable[Any],
        *,
        deadline: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DispatchSummary:
        """
        Sends *entities* under *kind* as one or more Transmission Units.

        Args:
            kind: Name of the target collection.
            entities: Ordered byte blobs. May be empty, in which case nothing
                is sent.
            deadline: Optional ``time.monotonic()`` timestamp. Each unit's
                timeout is capped at the time remaining.
            cancel_event: Optional event checked before every unit.

        Returns:
            A DispatchSummary describing what was sent.

        Raises:
            SerializationError: *kind* is invalid or an entity is not bytes.
            ConfigurationError: The transport could not resolve its target.
            TransportError: A unit failed. Earlier units remain sent.
            DispatchCancelledError: Cancelled or out of time before a unit.
        """
        try:
            QueueServiceRequest(kind=kind)
        except pydantic.ValidationError as e:
            raise SerializationError(
                f"Invalid kind for queue service request: {kind!r}",
                context={"kind": str(kind)},
            ) from e

        dropped: list[int] = []
        sizes: list[int] = []
        if self._legacy_chunking:
            units = self._legacy_units(entities, dropped)
        else:
            budget = self._ceiling_bytes - envelope_size(kind)
            units = self._sized_units(entities, budget)

        for unit in units:
            timeout = self._transmission_timeout(deadline, cancel_event, len(sizes))
            request = QueueServiceRequest.model_construct(kind=kind, entities=unit)
            self._transport.send(request, timeout=timeout)
            sizes.append(len(unit))
            logger.info(
                "Transmission sent",
                extra={
                    "kind": kind,
                    "transmission": len(sizes),
                    "entity_count": len(unit),
                },
            )

        summary = DispatchSummary(
            kind=kind,
            transmission_sizes=tuple(sizes),
            dropped_indices=tuple(dropped),
        )
        logger.info(
            "Dispatch complete",
            extra={
                "kind": kind,
                "transmissions": summary.transmissions,
                "entities_sent": summary.entities_sent,
                "entities_dropped": len(summary.dropped_indices),
                "legacy_chunking": self._legacy_chunking,
            },
        )
        return summary


def write_to_datastore(
    request: QueueServiceRequest,
    dispatcher: BatchDispatcher,
    reporter: Reporter,
    **dispatch_kwargs: Any,
) -> DispatchSummary:
    """
    Dispatches *request* and, on failure, reports the error before re-raising.

    The dispatcher itself never reports.
    """
    try:
        return dispatcher.dispatch(request.kind, request.entities, **dispatch_kwargs)
    except CloudHelpersError as e:
        reporter.report(e)
        raise
