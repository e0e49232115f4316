"""Data models for the service layer."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(_CamelModel):
    """Body of every non-2xx response."""

    error: str
    detail: str | None = None
    trace_id: str | None = None


class HealthResponse(_CamelModel):
    """Service health."""

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ToolCatalogEntry(_CamelModel):
    """One tool as listed by ``GET /tools``."""

    name: str
    description: str
    mutating: bool
    cacheable: bool
    required_capability: str | None
    parameters: list[dict[str, Any]]


class ToolCatalog(_CamelModel):
    """Registered tools."""

    count: int
    tools: list[ToolCatalogEntry]
