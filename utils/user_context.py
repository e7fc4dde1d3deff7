"""Propagate the acting user through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)


def get_acting_user_id() -> UUID | None:
    """
    Get current user ID, or None when running without a user.

    Ledger rows record who created them (created_by) when a user is known.
    Scripts and jobs may run without one.
    """
    return _current_user_id.get()


def set_current_user_id(user_id: UUID) -> None:
    """Set current user ID in context."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """
    Clear user context.

    Must be called in finally block to prevent context leakage.
    """
    _current_user_id.set(None)


@contextmanager
def user_context(user_id: UUID):
    """
    Context manager for temporarily setting user context.

    Example:
        with user_context(clerk_id):
            payment_service.record_payment_with_allocation(data)
    """
    previous = _current_user_id.get()
    set_current_user_id(user_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_user_id()
        else:
            set_current_user_id(previous)
