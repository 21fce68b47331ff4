# src/cloud_helpers/codec.py

"""
JSON and base64 helpers for request/response bodies.
"""

import base64
import binascii
import json
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel

from .exceptions import (
    InvalidContentTypeError,
    PayloadTooLargeError,
    SerializationError,
)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
MAX_REQUEST_BODY_BYTES = 1_048_576

ModelT = TypeVar("ModelT", bound=BaseModel)


def _error_summary(e: pydantic.ValidationError) -> list[Any]:
    return e.errors(include_url=False, include_context=False, include_input=False)


def encode_json(obj: Any) -> bytes:
    """Encodes a pydantic model or plain JSON-compatible data for a response body."""
    try:
        if isinstance(obj, BaseModel):
            return obj.model_dump_json(by_alias=True).encode("utf-8")
        return json.dumps(obj).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"Failed to encode JSON: {e}", context={"type": type(obj).__name__}
        ) from e


def decode_json(
    body: bytes | str,
    model: type[ModelT],
    content_type: str | None = None,
) -> ModelT:
    """
    Decodes a request body into *model*.

    An absent content type is accepted. A present one must be
    ``application/json`` (parameters such as charset are ignored).
    """
    if content_type:
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type != "application/json":
            raise InvalidContentTypeError(content_type)

    raw = body.encode("utf-8") if isinstance(body, str) else body
    if len(raw) > MAX_REQUEST_BODY_BYTES:
        raise PayloadTooLargeError(len(raw), MAX_REQUEST_BODY_BYTES)

    try:
        return model.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise SerializationError(
            f"Request body does not match {model.__name__}",
            context={"errors": _error_summary(e)},
        ) from e


def model_to_base64(model: BaseModel) -> str:
    """Packs a model into a base64 string of its JSON encoding."""
    return base64.b64encode(encode_json(model)).decode("ascii")


def base64_to_model(data: str, model: type[ModelT]) -> ModelT:
    """Unpacks a string produced by model_to_base64."""
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SerializationError(f"Invalid base64 payload: {e}") from e

    try:
        return model.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise SerializationError(
            f"Decoded payload does not match {model.__name__}",
            context={"errors": _error_summary(e)},
        ) from e
