"""Database infrastructure package."""

from codepact.infrastructure.database.models import Base
from codepact.infrastructure.database.session import (
    close_db,
    get_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "close_db",
    "get_session_factory",
    "init_db",
]
