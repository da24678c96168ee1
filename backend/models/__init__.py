"""Database models."""

from database import Base

from models.user import User, UserRole
from models.integration import Integration, IntegrationType
from models.post import Post, PostState

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Integration",
    "IntegrationType",
    "Post",
    "PostState",
]
