"""
Error taxonomy for Salustia.

Only QuotaExceeded, ValidationError and a primary-generation
UpstreamUnavailable reach the user. Enrichment stages catch their own
failures and degrade; PersistenceFailure is logged and never hides an answer.
"""
from typing import Optional


class AssistantError(Exception):
    """Base class for all application errors."""


class QuotaExceeded(AssistantError):
    """A role ceiling was reached for the given window ("day", "month" or "lifetime")."""

    WINDOW_LABELS = {
        "day": "diario",
        "month": "mensual",
        "lifetime": "de consultas como invitado",
    }

    def __init__(self, window: str, ceiling: int):
        self.window = window
        self.ceiling = ceiling
        label = self.WINDOW_LABELS.get(window, window)
        super().__init__(f"Has alcanzado el límite {label} ({ceiling}).")


class UpstreamUnavailable(AssistantError):
    """An external collaborator (llm, translation, search, persistence) failed."""

    def __init__(self, service: str, details: Optional[str] = None):
        self.service = service
        self.details = details
        message = f"{service} unavailable"
        if details:
            message += f": {details}"
        super().__init__(message)


class ValidationError(AssistantError):
    """The request was rejected before any network call."""


class PersistenceFailure(AssistantError):
    """A write to the queries or users store failed."""

    def __init__(self, operation: str, details: Optional[str] = None):
        self.operation = operation
        self.details = details
        super().__init__(f"Persistence failure during {operation}: {details}")


class AccessDenied(AssistantError):
    """The caller is disabled or lacks the role required for the action."""


class NotFound(AssistantError):
    """The requested record does not exist or is not visible to the caller."""
