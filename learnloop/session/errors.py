"""Error types raised by the session engine and its repository.

Command errors (``ValidationError``, ``ConflictError``,
``InvalidTransitionError``) are raised synchronously and leave the engine
untouched.  ``PersistenceError`` is different: by the time it surfaces the
in-memory transition has already happened, so the engine reports it on a
separate channel (``SessionEngine.error``) instead of raising.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for every error the session package raises."""


class ValidationError(SessionError):
    """Malformed ``create_session`` input (missing child, empty title...)."""


class ConflictError(SessionError):
    """The child already has a session that is not finished."""

    def __init__(self, child_id: str, session_id: str) -> None:
        super().__init__(
            f"child {child_id!r} already has an unfinished session "
            f"({session_id})"
        )
        self.child_id = child_id
        self.session_id = session_id


class InvalidTransitionError(SessionError):
    """A command was issued from a state that does not allow it."""

    def __init__(self, message: str, *, state=None, event=None) -> None:
        super().__init__(message)
        self.state = state
        self.event = event


class SessionNotFoundError(InvalidTransitionError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"no session with id {session_id!r}")
        self.session_id = session_id


class PersistenceError(SessionError):
    """The session repository failed to save or load."""
