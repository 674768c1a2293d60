"""Repository package for filesystem-backed session data."""

from .sessions import SessionRepository
from .projects import ProjectRepository
from .user_data import UserDataRepository

__all__ = [
    "SessionRepository",
    "ProjectRepository",
    "UserDataRepository",
]
