"""HTTP service: FastAPI app and service assembly."""

from project_assistant.service.container import AssistantServices, build_services

__all__ = ["AssistantServices", "build_services"]
