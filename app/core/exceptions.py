"""
Canonical exception types for services, the orchestration engine and the LLM
gateway.

Blueprints register handlers against these once and get consistent HTTP
status codes everywhere; the orchestrator uses them to decide which tier a
failure belongs to.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Process", resource_id=process_id)
    raise ValidationError("Process must have at least 2 steps", details={"steps": 1})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for both missing rows and cross-workspace lookups, so callers cannot
    enumerate ids across workspaces.

    Maps to HTTP 404.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        workspace_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.workspace_id = workspace_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if workspace_id is not None:
            msg += f" (workspace={workspace_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write conflicts with the stored state of a resource.

    Covers unique-constraint clashes and lost optimistic-version races,
    where another writer committed first and retries ran out.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} {value!r} has a conflicting {field}")


# ── LLM failures ─────────────────────────────────────────────────────────────


class LLMError(Exception):
    """The completion service failed: provider error, timeout or quota.

    Maps to HTTP 502.
    """


class LLMResponseError(LLMError):
    """The completion returned, but its content is not the JSON we asked for."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class BudgetExceededError(LLMError):
    """The billing gate rejected the call before it reached a provider."""


# ── Orchestration failures ───────────────────────────────────────────────────


class ClassificationError(LLMError):
    """The intent classifier produced no trustworthy decision for the turn."""


class ProcessResolutionError(Exception):
    """A process reference matched nothing and must not be guessed.

    Args:
        reference: The name (or id) the user referred to.
        candidates: Names of processes the user could have meant.
    """

    def __init__(self, reference: str | None, candidates: list[str] | None = None) -> None:
        self.reference = reference
        self.candidates = candidates or []
        msg = "Could not identify which process to refine"
        if reference:
            msg += f" (reference={reference!r})"
        super().__init__(msg)
