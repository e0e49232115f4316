"""FastAPI service application."""

import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from project_assistant.config.settings import get_settings
from project_assistant.llm_client.types import ModelClientError, ModelTimeout
from project_assistant.orchestrator.errors import (
    AuthenticationError,
    RateLimitedError,
    RequestRejectedError,
)
from project_assistant.orchestrator.types import ConversationRequest
from project_assistant.security import sanitize_error_message
from project_assistant.service.container import AssistantServices, build_services
from project_assistant.service.models import (
    ErrorResponse,
    HealthResponse,
    ToolCatalog,
    ToolCatalogEntry,
)
from project_assistant.telemetry import TraceContext, get_logger, request_log_context
from project_assistant.telemetry.events import SERVICE_READY, SERVICE_STARTING, SERVICE_STOPPED

log = get_logger(__name__)


def _error(status_code: int, error: str, detail: str | None = None, headers: dict[str, str] | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail).model_dump(by_alias=True, exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        message = err.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request body"


def _log_context(body: ConversationRequest, trace_ctx: TraceContext) -> Any:
    caller = body.caller
    return request_log_context(
        trace_id=trace_ctx.trace_id,
        tenant_id=caller.tenant_id,
        project_id=caller.project_id,
        user_id=caller.user_id,
    )


def get_services(request: Request) -> AssistantServices:
    """Dependency returning the services attached to the running app."""
    return request.app.state.services


def require_service_token(
    request: Request, services: AssistantServices = Depends(get_services)  # noqa: B008
) -> None:
    """Enforce the shared bearer token when one is configured.

    Raises:
        AuthenticationError: If the token is missing or wrong.
    """
    expected = services.settings.service_api_key
    if not expected:
        return
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise AuthenticationError("Missing or invalid service token")


def create_app(services: AssistantServices | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-built services (tests). When None, services are built
            from settings at startup and closed at shutdown.

    Returns:
        Configured FastAPI app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan management."""
        log.info(SERVICE_STARTING)
        owned = app.state.services is None
        if owned:
            app.state.services = build_services(get_settings())
        settings = app.state.services.settings
        log.info(SERVICE_READY, port=settings.service_port, tools=len(app.state.services.registry))

        yield

        if owned:
            await app.state.services.aclose()
        log.info(SERVICE_STOPPED)

    app = FastAPI(
        title="Project Assistant Service",
        description="Orchestration engine for the project-tracking AI assistant",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # ========================================================================
    # Error mapping
    # ========================================================================

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        log.info("request_malformed", path=request.url.path, errors=len(exc.errors()))
        return _error(400, "Malformed request", _format_validation_errors(exc))

    @app.exception_handler(RequestRejectedError)
    async def handle_rejected(request: Request, exc: RequestRejectedError) -> JSONResponse:
        headers: dict[str, str] | None = None
        if isinstance(exc, RateLimitedError):
            headers = {
                "Retry-After": str(exc.retry_after_seconds),
                "X-RateLimit-Remaining": str(exc.remaining),
            }
        elif isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return _error(exc.status_code, exc.message, headers=headers)

    @app.exception_handler(ModelClientError)
    async def handle_model_error(request: Request, exc: ModelClientError) -> JSONResponse:
        status_code = 504 if isinstance(exc, ModelTimeout) else 500
        log.error(
            "model_request_failed",
            path=request.url.path,
            status_code=status_code,
            error_type=type(exc).__name__,
            error=sanitize_error_message(exc),
        )
        return _error(status_code, sanitize_error_message(exc))

    # ========================================================================
    # Health and catalog
    # ========================================================================

    @app.get("/health")
    async def health_check(services: AssistantServices = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
        """Service health check endpoint."""
        return HealthResponse(
            version=services.settings.version,
            components={
                "model_provider": type(services.model_provider).__name__,
                "data_provider": type(services.data_provider).__name__,
                "tools": str(len(services.registry)),
            },
        ).model_dump(by_alias=True)

    @app.get("/tools")
    async def list_tools(services: AssistantServices = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
        """Catalog of registered tools."""
        entries = [
            ToolCatalogEntry(
                name=spec.name,
                description=spec.description,
                mutating=spec.mutating,
                cacheable=spec.cacheable,
                required_capability=spec.required_capability,
                parameters=[p.model_dump(exclude_none=True) for p in spec.parameters],
            )
            for spec in services.registry.list_tools()
        ]
        return ToolCatalog(count=len(entries), tools=entries).model_dump(by_alias=True)

    @app.get("/usage", dependencies=[Depends(require_service_token)])
    async def usage(services: AssistantServices = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
        """Usage and cost totals since start (or last reset)."""
        return services.accountant.snapshot().model_dump(by_alias=True, mode="json")

    # ========================================================================
    # Chat endpoints (main entry points)
    # ========================================================================

    @app.post("/chat", dependencies=[Depends(require_service_token)])
    async def chat(
        body: ConversationRequest,
        services: AssistantServices = Depends(get_services),  # noqa: B008
    ) -> JSONResponse:
        """Answer one chat turn.

        Returns:
            ``{text, usage, toolsUsed, toolsCalled, pathTaken, pendingActions, traceId}``
        """
        trace_ctx = TraceContext.new_trace()
        with _log_context(body, trace_ctx):
            result = await services.orchestrator.handle(body, trace_ctx=trace_ctx)
        headers = {"X-Trace-Id": result.trace_id}
        if result.rate_limit_remaining is not None:
            headers["X-RateLimit-Remaining"] = str(result.rate_limit_remaining)
        return JSONResponse(content=result.model_dump(by_alias=True, mode="json"), headers=headers)

    @app.post("/chat/stream", dependencies=[Depends(require_service_token)])
    async def chat_stream(
        body: ConversationRequest,
        services: AssistantServices = Depends(get_services),  # noqa: B008
    ) -> StreamingResponse:
        """Answer one chat turn as chunked plain text."""
        trace_ctx = TraceContext.new_trace()
        with _log_context(body, trace_ctx):
            stream = await services.orchestrator.open_stream(body, trace_ctx=trace_ctx)
        headers = {"X-Trace-Id": stream.trace_id, "X-Path-Taken": stream.path.value}
        if stream.rate_limit_remaining is not None:
            headers["X-RateLimit-Remaining"] = str(stream.rate_limit_remaining)
        return StreamingResponse(
            stream.chunks, media_type="text/plain; charset=utf-8", headers=headers
        )

    return app


app = create_app()
