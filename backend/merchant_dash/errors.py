# Overview: Error taxonomy shared by the remote boundary, the sync engine and the routes.

from __future__ import annotations


class ValidationError(ValueError):
    """400-level input problem, rejected before any remote call."""


class ConflictError(ValueError):
    """409-level: the remote row changed underneath an optimistic write."""


class InvalidTransitionError(ConflictError):
    """Requested order status move is not allowed from the current status."""


class NotFoundError(LookupError):
    """Row or cached entity does not exist."""


class AuthenticationRequired(PermissionError):
    """No signed-in user is available for the dashboard session."""


class TransientNetworkError(ConnectionError):
    """Feed disconnect or fetch timeout; retried with resubscription."""


class RetriesExhaustedError(TransientNetworkError):
    """Resubscription gave up after the configured number of attempts."""


class RemoteError(RuntimeError):
    """Any other failure reported by the remote store."""


def user_message(exc: BaseException | None) -> str | None:
    """Human-readable reason for a failed operation."""
    if exc is None:
        return None
    if isinstance(exc, InvalidTransitionError):
        return str(exc)
    if isinstance(exc, ConflictError):
        return "State changed, please retry"
    if isinstance(exc, RetriesExhaustedError):
        return "Live updates stopped, please refresh"
    if isinstance(exc, TransientNetworkError):
        return "Connection problem, please try again"
    return str(exc) or exc.__class__.__name__
