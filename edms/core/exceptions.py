"""
Service-wide exception hierarchy.

Services raise these types; ``edms.utils.errors.init_error_handlers`` maps
them to HTTP responses once for every blueprint, so views never translate
exceptions by hand.

Usage:
    from edms.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ApprovalLevel", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-tenant
    access attempts. A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable model/entity name (e.g. "Document").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


# Entity lookups across services raise the same 404 type.
EntityNotFound = NotFoundError


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidIndustryType(ValidationError):
    """The requested industry key has no catalog entry."""

    def __init__(self, industry_type) -> None:
        self.industry_type = industry_type
        super().__init__(
            f"Invalid industry type: {industry_type!r}",
            details={"industry_type": industry_type},
        )


class UnresolvedApprovalLevel(ValidationError):
    """A workflow step names an approval level that the blueprint does not define."""

    def __init__(self, level_name: str, workflow_name: str | None = None) -> None:
        self.level_name = level_name
        self.workflow_name = workflow_name
        msg = f"Approval level {level_name!r} not found"
        if workflow_name:
            msg += f" for workflow {workflow_name!r}"
        super().__init__(msg, details={"approval_level": level_name, "workflow": workflow_name})


class DuplicateApprovalLevelRank(ValidationError):
    """Another active level of the tenant already holds this numeric rank."""

    def __init__(self, tenant_id: int, rank: int, existing_name: str | None = None) -> None:
        self.tenant_id = tenant_id
        self.rank = rank
        self.existing_name = existing_name
        msg = f"Approval level rank {rank} is already used"
        if existing_name:
            msg += f" by {existing_name!r}"
        super().__init__(msg, details={"level": rank})


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (truncated in HTTP response; full in logs).
        message: Overrides the default "already exists" text for conflicts
            that are not duplicates (e.g. a row still in use).
    """

    def __init__(self, resource: str, field: str, value: str | None = None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class TransitionError(Exception):
    """Raised when a document approval action is not valid from its current state.

    Maps to HTTP 409.
    """

    def __init__(self, document_id, action: str, current_status: str, reason: str = "") -> None:
        self.document_id = document_id
        self.action = action
        self.current_status = current_status
        self.reason = reason
        msg = f"Cannot {action} document {document_id} in status {current_status!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConcurrentModificationError(Exception):
    """Another request changed the document since the caller read it. Maps to HTTP 409."""

    def __init__(self, resource: str, resource_id, expected_version=None, actual_version=None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = f"{resource} id={resource_id} was modified concurrently"
        if expected_version is not None:
            msg += f" (expected version {expected_version}, found {actual_version})"
        super().__init__(msg)


class PermissionDenied(Exception):
    """The actor lacks the approval authority for this action. Maps to HTTP 403."""

    def __init__(self, user_id, action: str, reason: str = "") -> None:
        self.user_id = user_id
        self.action = action
        self.reason = reason
        msg = f"User {user_id} is not allowed to {action}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TenantOwnershipViolation(Exception):
    """The actor tried to operate on a tenant other than their own. Maps to HTTP 403."""

    def __init__(self, user_id, tenant_id) -> None:
        self.user_id = user_id
        self.tenant_id = tenant_id
        super().__init__(f"User {user_id} cannot manage tenant {tenant_id}")


class PlanLimitExceeded(Exception):
    """The tenant's subscription plan does not allow another resource of this kind.

    Maps to HTTP 403 with the limit, current usage and an upgrade hint.
    """

    def __init__(self, resource: str, plan: str, limit: int, current: int) -> None:
        self.resource = resource
        self.plan = plan
        self.limit = limit
        self.current = current
        super().__init__(
            f"Plan {plan!r} allows at most {limit} {resource} (currently {current})"
        )


class NoWorkflowForDocumentType(Exception):
    """No active workflow template is bound to the document type. Maps to HTTP 422."""

    def __init__(self, document_type: str, tenant_id: int | None = None) -> None:
        self.document_type = document_type
        self.tenant_id = tenant_id
        super().__init__(f"No active workflow template for document type {document_type!r}")
