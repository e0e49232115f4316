"""Tests for the response router."""

import pytest

from project_assistant.llm_client.types import ModelTier
from project_assistant.orchestrator.routing import ResponseRouter, SimpleQueryClassifier
from project_assistant.orchestrator.types import PrefetchedSnapshot, RoutePath

SNAPSHOT = PrefetchedSnapshot.model_validate(
    {
        "project": {"name": "Apollo"},
        "budgetSummary": {"projectBudget": 100000, "milestoneBillable": 80000, "actualSpend": 12000, "percentUsed": 12},
        "milestoneSummary": {"total": 3, "byStatus": {"inProgress": 1, "notStarted": 2}},
        "pendingActions": {"draftTimesheets": 3, "awaitingValidation": 1, "hasPending": True},
        "raidSummary": {"total": 2, "openRisks": 1, "openIssues": 1, "highPriority": 2},
    }
)


@pytest.fixture
def router() -> ResponseRouter:
    return ResponseRouter()


@pytest.mark.parametrize(
    "text",
    [
        "How's the budget looking?",
        "Do I have any pending actions?",
        "What's the milestone status?",
        "How many open risks are there?",
    ],
)
def test_snapshot_questions_answered_locally(router, text: str) -> None:
    decision = router.classify(text, SNAPSHOT)

    assert decision["path"] == RoutePath.LOCAL
    assert decision["tier"] is None
    assert decision["classifier"] == "snapshot"
    assert decision["local_answer"]


def test_local_needs_a_snapshot(router) -> None:
    decision = router.classify("How's the budget looking?", None)

    assert decision["path"] == RoutePath.STANDARD


def test_local_needs_the_matching_section(router) -> None:
    snapshot = PrefetchedSnapshot.model_validate({"pendingActions": {"draftTimesheets": 1}})

    decision = router.classify("How many open risks are there?", snapshot)

    assert decision["path"] == RoutePath.STANDARD


@pytest.mark.parametrize(
    "text",
    [
        "What's the budget for the milestone Phase 1?",
        "Show me open risks owned by Alex",
        "Budget spent since last month?",
    ],
)
def test_filtered_questions_skip_local(router, text: str) -> None:
    assert router.classify(text, SNAPSHOT)["path"] == RoutePath.STANDARD


@pytest.mark.parametrize(
    "text",
    [
        "Submit my timesheets",
        "Mark the test plan task as complete",
        "Close issue I-3",
        "Update the budget pending actions",
    ],
)
def test_action_requests_take_standard_path(router, text: str) -> None:
    decision = router.classify(text, SNAPSHOT)

    assert decision["path"] == RoutePath.STANDARD
    assert decision["tier"] == ModelTier.STANDARD
    assert decision["classifier"] == "default"


@pytest.mark.parametrize(
    "text",
    ["Hello!", "hi there", "Thanks", "Give me a project overview", "What can you do?", "How is the project going?"],
)
def test_simple_questions_stream(router, text: str) -> None:
    decision = router.classify(text, SNAPSHOT)

    assert decision["path"] == RoutePath.STREAMING
    assert decision["tier"] == ModelTier.STREAMING
    assert decision["classifier"] == "simple_query"


def test_greeting_with_a_question_is_not_a_greeting(router) -> None:
    assert router.classify("Hi, which tasks are overdue?", SNAPSHOT)["path"] == RoutePath.STANDARD


def test_empty_text_defaults_to_standard(router) -> None:
    decision = router.classify("   ")

    assert decision["path"] == RoutePath.STANDARD
    assert decision["reason"].startswith("Empty message")


def test_custom_classifier_order() -> None:
    """Classifiers are replaceable; without the snapshot classifier nothing is local."""
    router = ResponseRouter(classifiers=[SimpleQueryClassifier()])

    assert router.classify("How's the budget looking?", SNAPSHOT)["path"] == RoutePath.STANDARD


def test_route_uses_latest_user_message(router, make_request) -> None:
    request = make_request(
        "hello",
        history=[
            {"role": "user", "content": "Submit my timesheets"},
            {"role": "assistant", "content": "Here is the preview."},
        ],
    )

    assert router.route(request)["path"] == RoutePath.STREAMING
