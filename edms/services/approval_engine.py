"""
Approval Progression Engine — moves a document through its workflow template.

Position of a document (derived from status + current_step_order):

    Draft                     → submit
    PendingStep(order, ...)   → approve | reject | route | skip
    Approved                  (terminal)
    Rejected(reason)          → submit (resubmission starts a fresh pass)

Authority: the actor acts with their assigned ApprovalLevel. They may act on
the current step when their level's rank is at least the step level's rank
AND their level carries the action's permission flag (skip needs
``can_approve``). Holders of lower ranks never act on higher steps.

Pointer movement (``_settle``) after every transition:
  - optional skippable steps (is_required=False, can_skip=True) are passed
    automatically and recorded as ``auto_skipped``
  - ``auto_approve`` steps are approved by the system on arrival
  - the document is approved only once every required step is satisfied;
    reaching the end with a required step still open (jumped over by a
    forward route) moves the pointer back to the first such step

Every transition appends DocumentApprovalAction rows, writes an AuditLog
entry and records notifications, then commits. A stale ``expected_version``
or a lost version race raises ConcurrentModificationError.
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm.exc import StaleDataError

from edms.core.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    NoWorkflowForDocumentType,
    PermissionDenied,
    TransitionError,
    ValidationError,
)
from edms.models import db
from edms.models.audit import write_audit
from edms.models.auth import User
from edms.models.document import Document, DocumentApprovalAction
from edms.models.workflow import WorkflowTemplate
from edms.services.helpers.scoped_queries import get_scoped
from edms.services.notification import NotificationService
from edms.services.workflow_template_service import list_by_document_type

logger = logging.getLogger(__name__)

SYSTEM_ACTOR_NAME = "System"

# Action → permission flag on the actor's ApprovalLevel
ACTION_FLAGS = {
    "approve": "can_approve",
    "reject": "can_reject",
    "route": "can_route",
    "skip": "can_approve",
}


# ═══════════════════════════════════════════════════════════════
# Workflow position
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Draft:
    pass


@dataclass(frozen=True)
class PendingStep:
    order: int
    approval_level_id: int
    remaining_orders: tuple[int, ...] = ()


@dataclass(frozen=True)
class Approved:
    pass


@dataclass(frozen=True)
class Rejected:
    reason: str | None = None


WorkflowPosition = Draft | PendingStep | Approved | Rejected


def position_of(document: Document) -> WorkflowPosition:
    if document.status == "approved":
        return Approved()
    if document.status == "rejected":
        return Rejected(document.rejection_reason)
    if document.status == "pending_approval":
        template = document.workflow_template
        step = template.step_at(document.current_step_order)
        return PendingStep(
            order=step.order,
            approval_level_id=step.approval_level_id,
            remaining_orders=tuple(s.order for s in template.steps if s.order > step.order),
        )
    return Draft()


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def display_status(document: Document) -> str:
    """``pending_<level>_approval`` while pending, the plain status otherwise."""
    if document.status != "pending_approval":
        return document.status
    step = document.workflow_template.step_at(document.current_step_order)
    return f"pending_{_slug(step.approval_level.name)}_approval"


# ═══════════════════════════════════════════════════════════════
# Lookups and authority
# ═══════════════════════════════════════════════════════════════

def find_workflow_for(tenant_id: int, document_type: str) -> WorkflowTemplate:
    """The active template for ``document_type`` (oldest wins when several exist)."""
    templates = list_by_document_type(tenant_id, document_type)
    if not templates:
        raise NoWorkflowForDocumentType(document_type, tenant_id)
    return templates[0]


def acting_level(actor: User):
    """The actor's active ApprovalLevel in their own tenant, or None."""
    level = actor.approval_level
    if level is None or not level.is_active or level.tenant_id != actor.tenant_id:
        return None
    return level


def check_authority(actor: User, step, action: str):
    """Raise PermissionDenied unless ``actor`` may perform ``action`` on ``step``."""
    flag = ACTION_FLAGS[action]
    level = acting_level(actor)
    if level is None:
        raise PermissionDenied(actor.id, action, "no active approval level assigned")
    required = step.approval_level
    if level.level < required.level:
        raise PermissionDenied(
            actor.id, action,
            f"{level.name!r} (rank {level.level}) is below {required.name!r} (rank {required.level})",
        )
    if not getattr(level, flag):
        raise PermissionDenied(actor.id, action, f"{level.name!r} lacks {flag}")
    return level


def _ensure_same_tenant(document: Document, actor: User) -> None:
    if document.tenant_id != actor.tenant_id:
        raise NotFoundError(resource="Document", resource_id=document.id)


def _check_version(document: Document, expected_version) -> None:
    if expected_version is not None and expected_version != document.version:
        raise ConcurrentModificationError(
            "Document", document.id,
            expected_version=expected_version, actual_version=document.version,
        )


def _current_step(document: Document, action: str):
    if document.status != "pending_approval":
        raise TransitionError(document.id, action, document.status, "document is not pending approval")
    return document.workflow_template.step_at(document.current_step_order)


# ═══════════════════════════════════════════════════════════════
# Pointer movement
# ═══════════════════════════════════════════════════════════════

def _record(document, action, *, step=None, actor=None, comment=None, target=None):
    entry = DocumentApprovalAction(
        tenant_id=document.tenant_id,
        step_order=step.order if step is not None else None,
        approval_level_id=step.approval_level_id if step is not None else None,
        action=action,
        actor_id=actor.id if actor is not None else None,
        actor_name_snapshot=actor.display_name if actor is not None else SYSTEM_ACTOR_NAME,
        comment=comment,
        target_step_order=target,
    )
    document.actions.append(entry)
    return entry


def _satisfied_orders(document: Document) -> set[int]:
    return {a.step_order for a in document.actions if a.satisfies_step}


def _settle(document: Document, template: WorkflowTemplate, start_order: int) -> None:
    """Move the pointer to the next step needing a human, or complete the document."""
    satisfied = _satisfied_orders(document)
    while True:
        for step in template.steps:
            if step.order < start_order or step.order in satisfied:
                continue
            if step.auto_bypass:
                _record(document, "auto_skipped", step=step)
                satisfied.add(step.order)
                continue
            if step.auto_approve:
                _record(document, "auto_approved", step=step)
                satisfied.add(step.order)
                continue
            document.status = "pending_approval"
            document.current_step_order = step.order
            return

        open_required = [s for s in template.steps if s.is_required and s.order not in satisfied]
        if not open_required:
            document.status = "approved"
            document.current_step_order = None
            document.completed_at = datetime.now(timezone.utc)
            return
        logger.info(
            "Required step %d still open, moving pointer back", open_required[0].order,
            extra={"tenant_id": document.tenant_id, "document_id": document.id},
        )
        start_order = open_required[0].order


@contextmanager
def _transition(document: Document, actor: User, action: str):
    """Run one transition: audit + notify + commit, mapping version races."""
    document_id = document.id
    before = {"status": document.status, "current_step_order": document.current_step_order}
    try:
        yield
        document.updated_at = datetime.now(timezone.utc)
        db.session.flush()
        _after_transition(document, actor, action, before)
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning(
            "Concurrent modification on %s", action,
            extra={"document_id": document_id, "action": action},
        )
        raise ConcurrentModificationError("Document", document_id) from exc
    except Exception:
        db.session.rollback()
        raise


def _after_transition(document: Document, actor: User, action: str, before: dict) -> None:
    after = {"status": document.status, "current_step_order": document.current_step_order}
    write_audit(
        entity_type="document",
        entity_id=document.id,
        action=f"document.{action}",
        tenant_id=document.tenant_id,
        actor_user_id=actor.id,
        diff={k: {"old": before[k], "new": after[k]} for k in after if before[k] != after[k]},
    )
    logger.info(
        "Document %d %s → %s", document.id, action, display_status(document),
        extra={
            "tenant_id": document.tenant_id,
            "document_id": document.id,
            "action": action,
            "actor_id": actor.id,
        },
    )

    if document.status == "pending_approval" and after != before:
        step = document.workflow_template.step_at(document.current_step_order)
        NotificationService.create(
            title=f"Approval required: {document.title}",
            message=f"Step {step.order} awaits {step.approval_level.name} approval.",
            category="approval",
            recipient=f"approval_level:{step.approval_level_id}",
            tenant_id=document.tenant_id,
            entity_type="document",
            entity_id=document.id,
        )
    elif document.status in ("approved", "rejected") and document.submitted_by:
        submitter = db.session.get(User, document.submitted_by)
        if submitter is not None:
            NotificationService.create(
                title=f"Document {document.status}: {document.title}",
                message=document.rejection_reason or "",
                category="approval",
                severity="success" if document.status == "approved" else "warning",
                recipient=submitter.email,
                tenant_id=document.tenant_id,
                entity_type="document",
                entity_id=document.id,
            )


# ═══════════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════════

def submit(document: Document, actor: User, *, workflow_template_id: int | None = None,
           comment: str | None = None, expected_version: int | None = None) -> Document:
    """Start approval: draft (or rejected, for resubmission) → first open step."""
    _ensure_same_tenant(document, actor)
    _check_version(document, expected_version)
    if document.status not in ("draft", "rejected"):
        raise TransitionError(document.id, "submit", document.status, "only draft or rejected documents can be submitted")

    if workflow_template_id is not None:
        template = get_scoped(WorkflowTemplate, workflow_template_id, tenant_id=document.tenant_id)
        if template.document_type != document.document_type:
            raise ValidationError(
                f"Workflow template {template.id} handles {template.document_type!r}, "
                f"not {document.document_type!r}",
                details={"workflow_template_id": workflow_template_id},
            )
    else:
        template = find_workflow_for(document.tenant_id, document.document_type)
    if not template.steps:
        raise ValidationError(f"Workflow template {template.id} has no steps")

    with _transition(document, actor, "submitted"):
        for entry in document.actions:
            entry.superseded = True
        document.workflow_template = template
        document.submitted_by = actor.id
        document.submitted_at = datetime.now(timezone.utc)
        document.completed_at = None
        document.rejection_reason = None
        _record(document, "submitted", actor=actor, comment=comment)
        _settle(document, template, 1)
    return document


def approve(document: Document, actor: User, *, comment: str | None = None,
            expected_version: int | None = None) -> Document:
    _ensure_same_tenant(document, actor)
    _check_version(document, expected_version)
    step = _current_step(document, "approve")
    check_authority(actor, step, "approve")

    with _transition(document, actor, "approved"):
        _record(document, "approved", step=step, actor=actor, comment=comment)
        _settle(document, document.workflow_template, step.order + 1)
    return document


def reject(document: Document, actor: User, reason: str, *,
           expected_version: int | None = None) -> Document:
    """Reject at the current step. Terminal; ``reason`` is required."""
    _ensure_same_tenant(document, actor)
    _check_version(document, expected_version)
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("A rejection reason is required", details={"reason": "required"})
    step = _current_step(document, "reject")
    check_authority(actor, step, "reject")

    with _transition(document, actor, "rejected"):
        _record(document, "rejected", step=step, actor=actor, comment=reason.strip())
        document.status = "rejected"
        document.rejection_reason = reason.strip()
        document.current_step_order = None
        document.completed_at = datetime.now(timezone.utc)
    return document


def route(document: Document, actor: User, target_order: int, *, comment: str | None = None,
          expected_version: int | None = None) -> Document:
    """Send the document to another step of its template.

    Forward: the current step counts as done. Backward: outcomes from the
    target step onward are superseded and must be given again.
    """
    _ensure_same_tenant(document, actor)
    _check_version(document, expected_version)
    step = _current_step(document, "route")
    template = document.workflow_template
    if isinstance(target_order, bool) or not isinstance(target_order, int) or template.step_at(target_order) is None:
        raise ValidationError(
            f"Route target {target_order!r} is not a step of this workflow",
            details={"target_step": target_order},
        )
    if target_order == step.order:
        raise ValidationError("Cannot route a document to its current step", details={"target_step": target_order})
    check_authority(actor, step, "route")

    with _transition(document, actor, "routed"):
        if target_order < step.order:
            for entry in document.actions:
                if entry.step_order is not None and entry.step_order >= target_order:
                    entry.superseded = True
        _record(document, "routed", step=step, actor=actor, comment=comment, target=target_order)
        _settle(document, template, target_order)
    return document


def skip(document: Document, actor: User, *, comment: str | None = None,
         expected_version: int | None = None) -> Document:
    """Skip the current step. Only steps flagged ``can_skip`` may be skipped."""
    _ensure_same_tenant(document, actor)
    _check_version(document, expected_version)
    step = _current_step(document, "skip")
    if not step.skippable:
        raise TransitionError(document.id, "skip", document.status, f"step {step.order} cannot be skipped")
    check_authority(actor, step, "skip")

    with _transition(document, actor, "skipped"):
        _record(document, "skipped", step=step, actor=actor, comment=comment)
        _settle(document, document.workflow_template, step.order + 1)
    return document


# ═══════════════════════════════════════════════════════════════
# Read side
# ═══════════════════════════════════════════════════════════════

def get_available_actions(document: Document, actor: User) -> list[str]:
    if document.tenant_id != actor.tenant_id:
        return []
    if document.status in ("draft", "rejected"):
        return ["submit"]
    if document.status != "pending_approval":
        return []

    step = document.workflow_template.step_at(document.current_step_order)
    actions = []
    for action in ("approve", "reject", "route", "skip"):
        if action == "skip" and not step.skippable:
            continue
        try:
            check_authority(actor, step, action)
        except PermissionDenied:
            continue
        actions.append(action)
    return actions


def get_approval_status(document: Document) -> dict:
    template = document.workflow_template
    outcomes = {}
    for entry in document.actions:
        if not entry.superseded and entry.step_order is not None:
            outcomes[entry.step_order] = entry.action

    steps = []
    current_level = None
    if template is not None:
        for step in template.steps:
            is_current = (
                document.status == "pending_approval" and step.order == document.current_step_order
            )
            if is_current:
                current_level = step.approval_level
            steps.append({**step.to_dict(), "outcome": outcomes.get(step.order), "is_current": is_current})

    return {
        "document_id": document.id,
        "status": document.status,
        "display_status": display_status(document),
        "current_step_order": document.current_step_order,
        "current_approval_level": (
            {"id": current_level.id, "name": current_level.name, "level": current_level.level}
            if current_level is not None else None
        ),
        "workflow_template": (
            {"id": template.id, "name": template.name} if template is not None else None
        ),
        "steps": steps,
        "rejection_reason": document.rejection_reason,
        "version": document.version,
    }


def get_history(document: Document, include_superseded: bool = True) -> list[dict]:
    return [
        entry.to_dict()
        for entry in document.actions
        if include_superseded or not entry.superseded
    ]


def list_pending_for_actor(actor: User) -> list[Document]:
    """Pending documents of the actor's tenant whose current step they can act on."""
    level = acting_level(actor)
    if level is None:
        return []
    pending = (
        Document.query_for_tenant(actor.tenant_id)
        .filter(Document.status == "pending_approval")
        .order_by(Document.submitted_at.asc(), Document.id.asc())
        .all()
    )
    result = []
    for document in pending:
        step = document.workflow_template.step_at(document.current_step_order)
        if step is not None and step.approval_level.level <= level.level:
            result.append(document)
    return result
