"""Propagate issuer identity and request metadata through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

_current_issuer_id: ContextVar[UUID | None] = ContextVar("current_issuer_id", default=None)
_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_ip_address: ContextVar[str | None] = ContextVar("current_ip_address", default=None)
_current_user_agent: ContextVar[str | None] = ContextVar("current_user_agent", default=None)


def get_current_issuer_id() -> UUID:
    """
    Get the issuer (invoicing account) the current request acts for.

    Raises RuntimeError if no context is set. Issuer-scoped code running
    outside an identified request is a bug.
    """
    issuer_id = _current_issuer_id.get()
    if issuer_id is None:
        raise RuntimeError(
            "No issuer context set. This usually means you're calling "
            "issuer-scoped code outside of an identified request."
        )
    return issuer_id


def get_current_user_id() -> UUID:
    """
    Get the user performing the current action.

    Raises RuntimeError if no context is set.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an identified request."
        )
    return user_id


def get_request_origin() -> tuple[str | None, str | None]:
    """(ip_address, user_agent) of the current request, if known."""
    return _current_ip_address.get(), _current_user_agent.get()


def set_request_context(
    issuer_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Called by the identity middleware once the caller is known."""
    _current_issuer_id.set(issuer_id)
    _current_user_id.set(user_id)
    _current_ip_address.set(ip_address)
    _current_user_agent.set(user_agent)


def clear_request_context() -> None:
    """
    Clear all request context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_issuer_id.set(None)
    _current_user_id.set(None)
    _current_ip_address.set(None)
    _current_user_agent.set(None)


@contextmanager
def request_context(
    issuer_id: UUID,
    user_id: UUID | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
):
    """
    Context manager for temporarily acting as an issuer.

    Useful for tests, background jobs and maintenance scripts. The user
    defaults to the issuer itself (single-user accounts).

    Example:
        with request_context(issuer.id):
            invoice_service.finalize(invoice_id)
    """
    vars_ = (_current_issuer_id, _current_user_id, _current_ip_address, _current_user_agent)
    values = (issuer_id, user_id or issuer_id, ip_address, user_agent)
    tokens = [var.set(value) for var, value in zip(vars_, values)]
    try:
        yield
    finally:
        for var, token in zip(vars_, tokens):
            var.reset(token)
