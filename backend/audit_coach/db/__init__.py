"""Database utilities for Audit Coach."""

from .session import dispose_engine, get_engine, get_session_dependency, session_scope

__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "session_scope",
]
