"""
Document Service — metadata records the approval engine acts on.

File storage is handled elsewhere; a document here is a title, a type and its
workflow position.
"""

import logging

from edms.core.exceptions import ValidationError
from edms.models import db
from edms.models.document import DOCUMENT_STATUSES, Document
from edms.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def create_document(tenant_id: int, data: dict, actor_id: int | None = None) -> Document:
    """Create a draft document."""
    title = data.get("title")
    document_type = data.get("document_type")
    errors = {}
    if not isinstance(title, str) or not title.strip():
        errors["title"] = "required"
    elif len(title.strip()) > 300:
        errors["title"] = "must be at most 300 characters"
    if not isinstance(document_type, str) or not document_type.strip():
        errors["document_type"] = "required"
    if errors:
        raise ValidationError("Invalid document", details=errors)

    document = Document(
        tenant_id=tenant_id,
        title=title.strip(),
        description=data.get("description"),
        document_type=document_type.strip(),
        status="draft",
        created_by=actor_id,
    )
    db.session.add(document)
    db.session.commit()
    logger.info(
        "Document %d created (%s)", document.id, document.document_type,
        extra={"tenant_id": tenant_id, "document_id": document.id},
    )
    return document


def get_document(tenant_id: int, document_id: int) -> Document:
    return get_scoped(Document, document_id, tenant_id=tenant_id)


def list_documents(tenant_id: int, status: str | None = None, document_type: str | None = None):
    """Return a query of the tenant's documents, newest first."""
    q = Document.query_for_tenant(tenant_id)
    if status:
        if status not in DOCUMENT_STATUSES:
            raise ValidationError(f"Unknown status {status!r}", details={"status": list(DOCUMENT_STATUSES)})
        q = q.filter(Document.status == status)
    if document_type:
        q = q.filter(Document.document_type == document_type)
    return q.order_by(Document.created_at.desc(), Document.id.desc())
