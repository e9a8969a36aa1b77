"""Log formatters: JSON lines carry ``extra=`` context, readable lines show tenant/doc tags."""

import json
import logging

from edms.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord(
        name="edms.services.approval_engine", level=logging.INFO, pathname=__file__,
        lineno=10, msg="Document %d approved", args=(17,), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_line_includes_context():
    line = JSONFormatter().format(_record(tenant_id=3, document_id=17, action="approved", noise="x"))
    entry = json.loads(line)
    assert entry["message"] == "Document 17 approved"
    assert entry["level"] == "INFO"
    assert entry["tenant_id"] == 3
    assert entry["document_id"] == 17
    assert entry["action"] == "approved"
    assert "noise" not in entry


def test_json_line_omits_missing_context():
    entry = json.loads(JSONFormatter().format(_record()))
    assert "tenant_id" not in entry
    assert "document_id" not in entry


def test_readable_line_tags_tenant_and_document():
    line = ReadableFormatter().format(_record(tenant_id=3, document_id=17))
    assert "[tenant=3 doc=17]" in line
    assert line.endswith("Document 17 approved")


def test_readable_line_without_context():
    line = ReadableFormatter().format(_record())
    assert "[tenant=" not in line
    assert "edms.services.approval_engine: Document 17 approved" in line
