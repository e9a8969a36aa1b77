"""
Industry Template Catalog — versioned blueprints for tenant bootstrap.

Each entry describes the approval hierarchy, the workflow templates and the
document types a tenant of that industry starts with. Workflow steps refer
to approval levels by NAME; the provisioning service resolves names to the
level rows it creates.

The catalog is read-only data. ``get_template`` hands out deep copies so a
caller mutating its result cannot change what the next tenant receives.

    template = get_template("banking_system")
    problems = validate_template(template)   # [] for every shipped entry
"""

import copy
from types import MappingProxyType

from edms.models.workflow import MAX_LEVEL_RANK, MIN_LEVEL_RANK, step_order_problems

CATALOG_VERSION = "2024.1"

CUSTOM_INDUSTRY = "custom"


def _permissions(approve, edit=False, delete=False):
    # Every shipped level may reject, route and view.
    return {
        "can_approve": approve,
        "can_reject": True,
        "can_route": True,
        "can_view": True,
        "can_edit": edit,
        "can_delete": delete,
    }


def _level(name, rank, description, permissions, document_types):
    return {
        "name": name,
        "level": rank,
        "description": description,
        "permissions": permissions,
        "document_types": document_types,
    }


def _step(order, approval_level, is_required=True, can_skip=False, auto_approve=False):
    return {
        "order": order,
        "approval_level": approval_level,
        "is_required": is_required,
        "can_skip": can_skip,
        "auto_approve": auto_approve,
    }


_BASE_FEATURES = [
    "document_management",
    "approval_workflows",
    "audit_trails",
    "compliance_reporting",
    "user_management",
    "role_based_access",
    "notifications",
]

_CATALOG = {
    "court_system": {
        "name": "Court System",
        "description": "Document management and approval workflows for judicial systems",
        "default_config": {"max_users": 200, "features": list(_BASE_FEATURES)},
        "approval_levels": [
            _level("Court Clerk", 10, "Document intake and initial review",
                   _permissions(approve=False),
                   ["case_filing", "legal_document", "administrative"]),
            _level("Senior Clerk", 20, "Document completeness and procedural compliance",
                   _permissions(approve=False, edit=True),
                   ["case_filing", "legal_document", "administrative"]),
            _level("Magistrate Judge", 50, "Preliminary hearings and discovery disputes",
                   _permissions(approve=True, edit=True),
                   ["case_filing", "legal_document", "settlement"]),
            _level("District Judge", 70, "Case management and trial proceedings",
                   _permissions(approve=True, edit=True),
                   ["case_filing", "legal_document", "settlement", "evidence"]),
        ],
        "workflow_templates": [
            {
                "name": "Criminal Case Filing",
                "description": "Standard workflow for criminal case filings",
                "document_type": "case_filing",
                "steps": [
                    _step(1, "Court Clerk"),
                    _step(2, "Senior Clerk"),
                    _step(3, "Magistrate Judge"),
                    _step(4, "District Judge"),
                ],
            },
            {
                "name": "Civil Settlement",
                "description": "Workflow for civil case settlements",
                "document_type": "settlement",
                "steps": [
                    _step(1, "Court Clerk"),
                    _step(2, "Magistrate Judge"),
                    _step(3, "District Judge"),
                ],
            },
        ],
        "document_types": ["case_filing", "legal_document", "administrative", "evidence", "settlement"],
    },
    "banking_system": {
        "name": "Banking System",
        "description": "Document management and approval workflows for financial institutions",
        "default_config": {"max_users": 500, "features": _BASE_FEATURES + ["analytics"]},
        "approval_levels": [
            _level("Teller", 10, "Customer transaction processing",
                   _permissions(approve=False),
                   ["transaction", "customer_document", "compliance"]),
            _level("Senior Teller", 20, "Complex transaction approval",
                   _permissions(approve=False, edit=True),
                   ["transaction", "customer_document", "compliance"]),
            _level("Branch Manager", 30, "Large transaction approval",
                   _permissions(approve=True, edit=True),
                   ["transaction", "loan_application", "compliance"]),
            _level("Regional Manager", 50, "Multi-branch oversight",
                   _permissions(approve=True, edit=True),
                   ["transaction", "loan_application", "compliance", "policy"]),
        ],
        "workflow_templates": [
            {
                "name": "Loan Application",
                "description": "Standard workflow for loan applications",
                "document_type": "loan_application",
                "steps": [
                    _step(1, "Teller"),
                    _step(2, "Senior Teller"),
                    _step(3, "Branch Manager"),
                    _step(4, "Regional Manager", is_required=False),
                ],
            },
        ],
        "document_types": ["transaction", "customer_document", "loan_application", "compliance", "policy"],
    },
    "healthcare_system": {
        "name": "Healthcare System",
        "description": "Document management and approval workflows for healthcare facilities",
        "default_config": {"max_users": 300, "features": _BASE_FEATURES + ["mobile_access"]},
        "approval_levels": [
            _level("Nurse", 10, "Patient care documentation",
                   _permissions(approve=False, edit=True),
                   ["patient_record", "medical_report", "prescription"]),
            _level("Senior Nurse", 20, "Patient care oversight",
                   _permissions(approve=True, edit=True),
                   ["patient_record", "medical_report", "prescription"]),
            _level("Doctor", 50, "Medical decision making",
                   _permissions(approve=True, edit=True),
                   ["patient_record", "medical_report", "prescription", "treatment_plan"]),
            _level("Chief of Medicine", 70, "Department oversight",
                   _permissions(approve=True, edit=True, delete=True),
                   ["patient_record", "medical_report", "prescription", "treatment_plan", "policy"]),
        ],
        "workflow_templates": [
            {
                "name": "Treatment Plan Approval",
                "description": "Workflow for treatment plan approval",
                "document_type": "treatment_plan",
                "steps": [
                    _step(1, "Nurse"),
                    _step(2, "Senior Nurse"),
                    _step(3, "Doctor"),
                    _step(4, "Chief of Medicine", is_required=False),
                ],
            },
        ],
        "document_types": ["patient_record", "medical_report", "prescription", "treatment_plan", "policy"],
    },
    "manufacturing_system": {
        "name": "Manufacturing System",
        "description": "Document management and approval workflows for manufacturing facilities",
        "default_config": {"max_users": 400, "features": _BASE_FEATURES + ["analytics"]},
        "approval_levels": [
            _level("Production Worker", 10, "Production documentation",
                   _permissions(approve=False, edit=True),
                   ["production_report", "quality_check", "safety_report"]),
            _level("Supervisor", 20, "Production oversight",
                   _permissions(approve=True, edit=True),
                   ["production_report", "quality_check", "safety_report"]),
            _level("Manager", 30, "Department management",
                   _permissions(approve=True, edit=True),
                   ["production_report", "quality_check", "safety_report", "budget"]),
            _level("Plant Director", 50, "Plant-wide decisions",
                   _permissions(approve=True, edit=True, delete=True),
                   ["production_report", "quality_check", "safety_report", "budget", "policy"]),
        ],
        "workflow_templates": [
            {
                "name": "Quality Control",
                "description": "Workflow for quality control approval",
                "document_type": "quality_check",
                "steps": [
                    _step(1, "Production Worker"),
                    _step(2, "Supervisor"),
                    _step(3, "Manager"),
                    _step(4, "Plant Director", is_required=False),
                ],
            },
        ],
        "document_types": ["production_report", "quality_check", "safety_report", "budget", "policy"],
    },
}

INDUSTRY_TEMPLATES = MappingProxyType(_CATALOG)

# Default hierarchy for tenants that set up manually or pick "custom".
_MANUAL_BLUEPRINT = {
    "name": "Custom Setup",
    "description": "Standard three-level hierarchy for manual configuration",
    "default_config": {"max_users": None, "features": list(_BASE_FEATURES)},
    "approval_levels": [
        _level("Department Head", 30, "Department-level approvals",
               _permissions(approve=True), ["general", "administrative"]),
        _level("Manager", 50, "Manager-level approvals",
               _permissions(approve=True, edit=True), ["general", "administrative", "policy"]),
        _level("Director", 70, "Director-level approvals",
               _permissions(approve=True, edit=True, delete=True),
               ["general", "administrative", "policy", "financial"]),
    ],
    "workflow_templates": [
        {
            "name": "Standard Document Approval",
            "description": "Basic workflow for document approval",
            "document_type": "general",
            "steps": [
                _step(1, "Department Head"),
                _step(2, "Manager"),
                _step(3, "Director", is_required=False, can_skip=True),
            ],
        },
    ],
    "document_types": ["general", "administrative", "policy", "financial"],
}

# Marketing-facing feature labels shown on the setup screen.
_SETUP_FEATURES = {
    "court_system": [
        "Case Filing Workflows",
        "Legal Document Management",
        "Judge Approval System",
        "Evidence Tracking",
        "Settlement Processing",
    ],
    "banking_system": [
        "Loan Application Processing",
        "Transaction Documentation",
        "Compliance Reporting",
        "Customer Document Management",
        "Audit Trail System",
    ],
    "healthcare_system": [
        "Patient Record Management",
        "Medical Report Processing",
        "Treatment Plan Approval",
        "Prescription Tracking",
        "HIPAA Compliance",
    ],
    "manufacturing_system": [
        "Production Documentation",
        "Quality Control Processes",
        "Safety Report Management",
        "Budget Approval Workflows",
        "Policy Management",
    ],
}

_CUSTOM_SETUP_ENTRY = {
    "id": CUSTOM_INDUSTRY,
    "name": "Custom Setup",
    "description": "Configure your own approval levels and workflows",
    "features": [
        "Custom Approval Levels",
        "Flexible Workflow Design",
        "Department-Specific Rules",
        "Role-Based Permissions",
        "Tailored Document Types",
    ],
    "approval_levels": [
        "Define Your Own",
        "Custom Hierarchy",
        "Flexible Permissions",
        "Adaptive Workflows",
    ],
}


def get_template(industry_type):
    """Return a copy of the catalog entry for ``industry_type``, or None."""
    template = _CATALOG.get(industry_type)
    if template is None:
        return None
    return copy.deepcopy(template)


def get_manual_blueprint():
    """Return a copy of the default hierarchy used for manual setup."""
    return copy.deepcopy(_MANUAL_BLUEPRINT)


def list_available_industries():
    """Return ``[{value, label, description}]`` for every catalog entry."""
    return [
        {"value": key, "label": entry["name"], "description": entry["description"]}
        for key, entry in _CATALOG.items()
    ]


def list_setup_templates():
    """UI listing for the system-setup screen, custom setup last."""
    templates = []
    for key, entry in _CATALOG.items():
        templates.append({
            "id": key,
            "name": entry["name"],
            "description": entry["description"],
            "features": list(_SETUP_FEATURES.get(key, [])),
            "approval_levels": [lvl["name"] for lvl in entry["approval_levels"]],
            "workflow_templates": [wf["name"] for wf in entry["workflow_templates"]],
            "document_types": list(entry["document_types"]),
        })
    templates.append(copy.deepcopy(_CUSTOM_SETUP_ENTRY))
    return templates


def validate_template(template):
    """Return a list of problems with a catalog-style template ([] when valid).

    Checks level ranks and uniqueness, step order contiguity, and that every
    step names a level the template itself defines.
    """
    problems = []
    names = set()
    ranks = set()
    for lvl in template.get("approval_levels", []):
        name = lvl.get("name")
        rank = lvl.get("level")
        if not name:
            problems.append("Approval level without a name")
            continue
        if name in names:
            problems.append(f"Duplicate approval level name {name!r}")
        names.add(name)
        if not isinstance(rank, int) or not MIN_LEVEL_RANK <= rank <= MAX_LEVEL_RANK:
            problems.append(f"Approval level {name!r} has invalid rank {rank!r}")
        elif rank in ranks:
            problems.append(f"Duplicate approval level rank {rank}")
        ranks.add(rank)

    for wf in template.get("workflow_templates", []):
        wf_name = wf.get("name", "<unnamed>")
        steps = wf.get("steps", [])
        for problem in step_order_problems([s.get("order") for s in steps]):
            problems.append(f"{wf_name}: {problem}")
        for step in steps:
            if step.get("approval_level") not in names:
                problems.append(
                    f"{wf_name}: step {step.get('order')} references unknown "
                    f"approval level {step.get('approval_level')!r}"
                )
    return problems
