# In src/cloud_helpers/schemas.py

import base64
import binascii
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# --- Static Type Hinting (for mypy and IDEs) ---


class QueueServicePayload(TypedDict):
    """
    The JSON shape the queue service receives on /start_work.
    Entities are standard, padded base64 strings.
    """

    Kind: str
    Entities: list[str]


# --- Runtime Validation (using Pydantic) ---


def _coerce_blob(value: Any) -> Any:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        # Strings only arrive from decoded JSON, where blobs are base64.
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"entity is not valid base64: {e}")
    return value


class QueueServiceRequest(BaseModel):
    """
    A named collection of opaque byte entities.

    Used both for receiving data from callers and for each Transmission Unit
    sent to the queue service.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: str = Field(..., alias="Kind", min_length=1)
    entities: list[bytes] = Field(default_factory=list, alias="Entities")

    @field_validator("entities", mode="before")
    @classmethod
    def coerce_entities(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [_coerce_blob(item) for item in value]
        return value

    @field_serializer("entities", when_used="json")
    def encode_entities(self, entities: list[bytes]) -> list[str]:
        return [base64.b64encode(entity).decode("ascii") for entity in entities]


class HttpTaskRequest(BaseModel):
    """
    Description of an HTTP call that a task-queue worker performs later.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)
    http_method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes | None = None

    @field_validator("body", mode="before")
    @classmethod
    def coerce_body(cls, value: Any) -> Any:
        if value is None:
            return None
        return _coerce_blob(value)

    @field_serializer("body", when_used="json")
    def encode_body(self, body: bytes | None) -> str | None:
        if body is None:
            return None
        return base64.b64encode(body).decode("ascii")
