"""Shared response envelope and schema base.

Every endpoint answers ``{success, message, data?}``. Field names go out in
camelCase to match the browser client; request bodies accept either casing.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for request/response bodies exchanged with the browser client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""

    success: bool = True
    message: str
    data: T | None = None


def envelope(message: str, data: Any = None, *, success: bool = True) -> dict[str, Any]:  # noqa: ANN401
    """Build a raw envelope dict (used by exception handlers, which bypass response models)."""
    body: dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    return body
