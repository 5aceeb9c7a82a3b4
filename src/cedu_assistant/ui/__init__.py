from .app import StudyAssistantApp

__all__ = ["StudyAssistantApp"]
