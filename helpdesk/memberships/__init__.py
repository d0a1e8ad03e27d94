"""Role and project membership model."""

from .models import PRIVILEGED_ROLES, Actor, Membership, Project, Role, User
from .repository import DirectoryRepository

__all__ = [
    "PRIVILEGED_ROLES",
    "Actor",
    "DirectoryRepository",
    "Membership",
    "Project",
    "Role",
    "User",
]
