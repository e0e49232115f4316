"""Action tools: entity resolution, handlers and the confirmation protocol."""

from project_assistant.actions.confirmation import ConfirmationLedger, ConfirmationProtocol
from project_assistant.actions.handlers import (
    ACTION_HANDLERS,
    ProjectAction,
    register_action_tools,
)
from project_assistant.actions.resolution import ENTITY_KINDS, EntityResolver
from project_assistant.actions.schemas import ACTION_PERMISSIONS, action_tool_specs
from project_assistant.actions.types import ActionOutcome, ActionPlan, ActionTicket

__all__ = [
    "ConfirmationLedger",
    "ConfirmationProtocol",
    "EntityResolver",
    "ENTITY_KINDS",
    "ActionPlan",
    "ActionOutcome",
    "ActionTicket",
    "ProjectAction",
    "ACTION_HANDLERS",
    "ACTION_PERMISSIONS",
    "action_tool_specs",
    "register_action_tools",
]
