"""
Error hierarchy shared by all Intently modules.

Every error carries the HTTP status the API layer answers with, so the
REST surface can translate them without knowing module internals.
"""

from typing import List, Optional


class IntentlyError(Exception):
    """Base class for all Intently errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Validation errors: rejected before any side effect


class InvalidInputError(IntentlyError):
    """Malformed caller input."""

    status_code = 400


class InvalidOperatorError(InvalidInputError):
    """Operator identity is missing or malformed."""


class InvalidCommandRegexError(InvalidInputError):
    """Command regex does not compile."""


class InvalidLabelSelectorError(InvalidInputError):
    """A label selector key or value is not valid label syntax."""


class MissingQueryInputError(IntentlyError):
    """Query options were not supplied. Always a programming error."""


# Not found


class NotFoundError(IntentlyError):
    status_code = 404


class NoMatchingPodsError(NotFoundError):
    """A strategy's selectors matched no live pods."""


# Dependency errors


class DependencyError(IntentlyError):
    """A collaborator (cluster API, storage, agent) failed."""

    status_code = 503


class ClusterClientUnavailableError(DependencyError):
    """No Kubernetes client could be built or none is configured."""


class ClusterQueryError(DependencyError):
    """Listing pods from the cluster API failed."""


class RepositoryError(DependencyError):
    """Persisting or reading strategies/intents failed."""


class StateUpdateError(RepositoryError):
    """Intents were delivered but their recorded state could not be updated."""

    def __init__(self, message: str, host: str, intent_ids: List[str]):
        super().__init__(message)
        self.host = host
        self.intent_ids = list(intent_ids)


class DeliveryError(DependencyError):
    """An agent could not be reached or rejected a batch."""

    status_code = 502

    def __init__(self, message: str, host: str, status: Optional[int] = None):
        super().__init__(message)
        self.host = host
        self.status = status


# Agent side


class ProcessTableError(IntentlyError):
    """The process table root could not be enumerated."""


__all__ = [
    "IntentlyError",
    "InvalidInputError",
    "InvalidOperatorError",
    "InvalidCommandRegexError",
    "InvalidLabelSelectorError",
    "MissingQueryInputError",
    "NotFoundError",
    "NoMatchingPodsError",
    "DependencyError",
    "ClusterClientUnavailableError",
    "ClusterQueryError",
    "RepositoryError",
    "StateUpdateError",
    "DeliveryError",
    "ProcessTableError",
]
