"""Orchestrator module: routing, the tool-calling loop and boundary errors.

This module coordinates a chat turn between the service layer, the model
provider, the tool dispatch and governance components.
"""

from project_assistant.orchestrator.errors import (
    AuthenticationError,
    ForbiddenError,
    MalformedRequestError,
    RateLimitedError,
    RequestRejectedError,
)
from project_assistant.orchestrator.orchestrator import (
    ChatStream,
    Orchestrator,
    fallback_reply_from_tool_results,
)
from project_assistant.orchestrator.routing import (
    ResponseRouter,
    SimpleQueryClassifier,
    SnapshotAnswerClassifier,
)
from project_assistant.orchestrator.types import (
    ChatResult,
    ConversationRequest,
    ConversationTurn,
    PrefetchedSnapshot,
    RoutePath,
    RoutingResult,
    TurnUsage,
)

__all__ = [
    # Public API
    "Orchestrator",
    "ChatStream",
    "fallback_reply_from_tool_results",
    # Routing
    "ResponseRouter",
    "SnapshotAnswerClassifier",
    "SimpleQueryClassifier",
    "RoutePath",
    "RoutingResult",
    # Types
    "ConversationRequest",
    "ConversationTurn",
    "PrefetchedSnapshot",
    "ChatResult",
    "TurnUsage",
    # Boundary errors
    "RequestRejectedError",
    "MalformedRequestError",
    "AuthenticationError",
    "ForbiddenError",
    "RateLimitedError",
]
