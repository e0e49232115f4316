"""Deterministic response routing.

Heuristic classifiers pick the cheapest path able to answer a request:
a local answer from the prefetched snapshot, a single streaming pass on the
cheapest tier, or the full tool-calling loop. Classifiers are ordered,
replaceable strategy objects; anything they do not claim falls through to
the Standard path, which can answer every kind of question.
"""

import re
from typing import Protocol

from project_assistant.llm_client.types import ModelTier
from project_assistant.orchestrator.local_answers import (
    LOCAL_ANSWER_MATCHERS,
    LocalAnswerMatcher,
    answer_from_snapshot,
)
from project_assistant.orchestrator.types import (
    ConversationRequest,
    PrefetchedSnapshot,
    RoutePath,
    RoutingResult,
)
from project_assistant.telemetry import ROUTING_DECISION, get_logger

log = get_logger(__name__)

# Anything that asks the assistant to change data needs the tool loop
_ACTION_PATTERNS = re.compile(
    r"\b(submit|update|change|set|mark|reassign|assign|resolve|close|approve|validate|"
    r"reject|create|add|delete|remove|move|complete (the|my|task))\b",
    re.IGNORECASE,
)

# Filters narrow a question below what the snapshot aggregates
_FILTER_PATTERNS = re.compile(
    r"\b(last week|last month|yesterday|between|since|before|after|assigned to|owned by|"
    r"for (the )?(milestone|deliverable|task|risk|issue)|named|called|overdue|due|"
    r"[RAID]-?\d+)\b|\"[^\"]+\"|'[^']+'",
    re.IGNORECASE,
)

_GREETING_PATTERNS = re.compile(
    r"^\s*(hi|hello|hey|hiya|good (morning|afternoon|evening)|thanks|thank you|cheers|"
    r"ok(ay)?|great)\b[\s!.,]*(there|again|so much)?[\s!.,]*$",
    re.IGNORECASE,
)

_SCOPE_WIDE_PATTERNS = re.compile(
    r"\b(project (overview|summary|status|health|update)|"
    r"(overview|summary|status|health) of (the |this |my |our )?project|"
    r"how('s| is) (the |this |my |our )?project( going| doing)?|"
    r"tell me about (the |this |my |our )?project|"
    r"what can you (do|help( me)? with)|how can you help)\b",
    re.IGNORECASE,
)


def _has_action(text: str) -> bool:
    return bool(_ACTION_PATTERNS.search(text))


def _has_filter(text: str) -> bool:
    return bool(_FILTER_PATTERNS.search(text))


class QueryClassifier(Protocol):
    """Strategy deciding a route, or declining with None."""

    name: str

    def classify(self, text: str, snapshot: PrefetchedSnapshot | None) -> RoutingResult | None:
        """Return a routing decision or None to defer to the next classifier."""
        ...


class SnapshotAnswerClassifier:
    """Answers aggregate questions straight from the snapshot (Local path)."""

    name = "snapshot"

    def __init__(self, matchers: tuple[LocalAnswerMatcher, ...] = LOCAL_ANSWER_MATCHERS) -> None:
        self.matchers = matchers

    def classify(self, text: str, snapshot: PrefetchedSnapshot | None) -> RoutingResult | None:
        """Claim the request when a matcher applies and its section is present."""
        if snapshot is None or _has_action(text) or _has_filter(text):
            return None
        match = answer_from_snapshot(text, snapshot, self.matchers)
        if match is None:
            return None
        matcher_name, answer = match
        return {
            "path": RoutePath.LOCAL,
            "tier": None,
            "reason": f"Answerable from snapshot ({matcher_name})",
            "classifier": self.name,
            "local_answer": answer,
        }


class SimpleQueryClassifier:
    """Sends greetings and unfiltered, read-only, project-wide questions to the Streaming path."""

    name = "simple_query"

    def classify(self, text: str, snapshot: PrefetchedSnapshot | None) -> RoutingResult | None:
        """Claim greetings and scope-wide overview questions."""
        if _GREETING_PATTERNS.match(text):
            reason = "Greeting or acknowledgement"
        elif _SCOPE_WIDE_PATTERNS.search(text) and not _has_action(text) and not _has_filter(text):
            reason = "Read-only, scope-wide question"
        else:
            return None
        return {
            "path": RoutePath.STREAMING,
            "tier": ModelTier.STREAMING,
            "reason": reason,
            "classifier": self.name,
            "local_answer": None,
        }


class ResponseRouter:
    """Runs classifiers in order; the first decision wins, Standard otherwise.

    Usage:
        router = ResponseRouter()
        decision = router.route(request)
    """

    def __init__(self, classifiers: list[QueryClassifier] | None = None) -> None:
        self.classifiers: list[QueryClassifier] = (
            classifiers
            if classifiers is not None
            else [SnapshotAnswerClassifier(), SimpleQueryClassifier()]
        )

    def classify(self, text: str, snapshot: PrefetchedSnapshot | None = None) -> RoutingResult:
        """Route a single question."""
        text = (text or "").strip()
        if text:
            for classifier in self.classifiers:
                decision = classifier.classify(text, snapshot)
                if decision is not None:
                    return decision
        return {
            "path": RoutePath.STANDARD,
            "tier": ModelTier.STANDARD,
            "reason": "Default to STANDARD" if text else "Empty message, default to STANDARD",
            "classifier": "default",
            "local_answer": None,
        }

    def route(self, request: ConversationRequest) -> RoutingResult:
        """Route a request by its latest user message and snapshot.

        Args:
            request: Inbound conversation.

        Returns:
            RoutingResult naming the path and tier.
        """
        decision = self.classify(request.latest_user_message, request.snapshot)
        log.info(
            ROUTING_DECISION,
            path=decision["path"].value,
            tier=decision["tier"].value if decision["tier"] else None,
            classifier=decision["classifier"],
            reason=decision["reason"],
        )
        return decision
