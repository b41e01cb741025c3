from __future__ import annotations


class PrivacyHubError(Exception):
    """Base error for privacyhub."""


class NotFoundOrForbiddenError(PrivacyHubError):
    """Entity is missing or owned by another organization.

    Both causes share one message so callers cannot probe other tenants.
    """

    def __init__(self, entity: str, entity_id: str | None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} with id {entity_id} not found or does not belong to organization"
        )


class ConstraintViolationError(PrivacyHubError):
    """Unique or foreign-key constraint rejected by the store."""


class TransactionFailedError(PrivacyHubError):
    """Multi-statement operation aborted; the cause is chained."""


class DomainValidationError(PrivacyHubError):
    """Domain rule violated before any write was attempted."""

    def __init__(self, errors: list[str] | str) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class HierarchyCycleError(DomainValidationError):
    """Parent assignment would introduce a cycle."""


class HierarchyDepthError(DomainValidationError):
    """Parent assignment would exceed the type-specific depth ceiling."""


class TransferMechanismRequiredError(DomainValidationError):
    """Cross-border processing location lacks a safeguard mechanism."""


class ChangeValueError(DomainValidationError):
    """Change-log value is not JSON serializable."""


class InvalidDocumentTransitionError(DomainValidationError):
    """Generated document status change is not allowed."""
