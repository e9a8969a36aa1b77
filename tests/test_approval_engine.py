"""
Approval engine tests — document progression through workflow steps.

Hierarchy used by most tests (tenant "Acme Records"):
    Clerk     rank 10   view only
    Reviewer  rank 30   approve / reject / route
    Auditor   rank 60   reject only
    Manager   rank 50   approve / reject / route
    Director  rank 70   approve / reject / route

Workflow "contract": Reviewer → Manager → Director, all required.
"""

import pytest
from sqlalchemy import text

from edms.core.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    NoWorkflowForDocumentType,
    PermissionDenied,
    TransitionError,
    ValidationError,
)
from edms.models.notification import Notification
from edms.services import approval_engine as engine
from edms.services import (
    approval_level_service,
    document_service,
    provisioning_service,
    workflow_template_service,
)

FULL = {"can_approve": True, "can_reject": True, "can_route": True}


@pytest.fixture()
def hierarchy(tenant):
    ranks = {
        "Clerk": (10, {}),
        "Reviewer": (30, FULL),
        "Manager": (50, FULL),
        "Auditor": (60, {"can_reject": True}),
        "Director": (70, FULL),
    }
    return {
        name: approval_level_service.create_approval_level(
            tenant.id, {"name": name, "level": rank, "permissions": perms},
        )
        for name, (rank, perms) in ranks.items()
    }


@pytest.fixture()
def actors(tenant, hierarchy, make_user):
    users = {
        name.lower(): make_user(tenant, f"{name.lower()}@acme.test", approval_level=level)
        for name, level in hierarchy.items()
    }
    users["author"] = make_user(tenant, "author@acme.test")
    return users


def _workflow(tenant, hierarchy, document_type="contract", steps=None):
    steps = steps or [
        {"approval_level_id": hierarchy["Reviewer"].id},
        {"approval_level_id": hierarchy["Manager"].id},
        {"approval_level_id": hierarchy["Director"].id},
    ]
    return workflow_template_service.create_workflow_template(tenant.id, {
        "name": f"{document_type.title()} Review", "document_type": document_type, "steps": steps,
    })


@pytest.fixture()
def contract_workflow(tenant, hierarchy):
    return _workflow(tenant, hierarchy)


def _document(tenant, author, document_type="contract", title="Supply Agreement"):
    return document_service.create_document(
        tenant.id, {"title": title, "document_type": document_type}, actor_id=author.id,
    )


@pytest.fixture()
def submitted(tenant, actors, contract_workflow):
    doc = _document(tenant, actors["author"])
    return engine.submit(doc, actors["author"])


def _live_actions(doc):
    return [(a.step_order, a.action) for a in doc.actions if not a.superseded]


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT
# ═════════════════════════════════════════════════════════════════════════

class TestSubmit:
    def test_submit_parks_on_first_step(self, submitted, actors):
        assert submitted.status == "pending_approval"
        assert submitted.current_step_order == 1
        assert submitted.submitted_by == actors["author"].id
        assert engine.display_status(submitted) == "pending_reviewer_approval"
        assert _live_actions(submitted) == [(None, "submitted")]

    def test_new_document_is_draft(self, tenant, actors):
        doc = _document(tenant, actors["author"])
        assert doc.status == "draft"
        assert doc.version == 1
        assert engine.display_status(doc) == "draft"
        assert isinstance(engine.position_of(doc), engine.Draft)

    def test_no_workflow_for_document_type(self, tenant, actors):
        provisioning_service.provision_from_template(tenant.id, "court_system")
        doc = _document(tenant, actors["author"], document_type="claims_document")
        with pytest.raises(NoWorkflowForDocumentType) as exc_info:
            engine.submit(doc, actors["author"])
        assert exc_info.value.document_type == "claims_document"
        assert doc.status == "draft"

    def test_oldest_template_wins(self, tenant, hierarchy, actors, contract_workflow):
        _workflow(tenant, hierarchy, steps=[{"approval_level_id": hierarchy["Director"].id}])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"])
        assert doc.workflow_template_id == contract_workflow.id

    def test_explicit_template(self, tenant, hierarchy, actors, contract_workflow):
        short = _workflow(tenant, hierarchy, steps=[{"approval_level_id": hierarchy["Director"].id}])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"], workflow_template_id=short.id)
        assert doc.workflow_template_id == short.id
        assert engine.display_status(doc) == "pending_director_approval"

    def test_explicit_template_for_other_type(self, tenant, hierarchy, actors, contract_workflow):
        memo = _workflow(tenant, hierarchy, document_type="memo")
        doc = _document(tenant, actors["author"])
        with pytest.raises(ValidationError):
            engine.submit(doc, actors["author"], workflow_template_id=memo.id)

    def test_submit_twice(self, submitted, actors):
        with pytest.raises(TransitionError):
            engine.submit(submitted, actors["author"])

    def test_other_tenant_actor(self, submitted, make_tenant, make_user):
        stranger = make_user(make_tenant("Other Co"), "x@other.test")
        with pytest.raises(NotFoundError):
            engine.approve(submitted, stranger)

    def test_reviewers_notified(self, submitted, hierarchy):
        notes = Notification.query.filter_by(entity_type="document", entity_id=submitted.id).all()
        assert [n.recipient for n in notes] == [f"approval_level:{hierarchy['Reviewer'].id}"]
        assert notes[0].tenant_id == submitted.tenant_id


# ═════════════════════════════════════════════════════════════════════════
# AUTHORITY
# ═════════════════════════════════════════════════════════════════════════

class TestAuthority:
    def test_no_level(self, submitted, actors):
        with pytest.raises(PermissionDenied):
            engine.approve(submitted, actors["author"])

    def test_rank_below_step(self, submitted, actors):
        with pytest.raises(PermissionDenied):
            engine.approve(submitted, actors["clerk"])

    def test_missing_flag(self, submitted, actors):
        # Auditor outranks the step but cannot approve
        with pytest.raises(PermissionDenied):
            engine.approve(submitted, actors["auditor"])
        engine.reject(submitted, actors["auditor"], "Missing signature page")
        assert submitted.status == "rejected"

    def test_higher_rank_may_act_on_lower_step(self, submitted, actors):
        engine.approve(submitted, actors["director"])
        assert submitted.current_step_order == 2

    def test_lower_rank_cannot_act_on_higher_step(self, submitted, actors):
        engine.approve(submitted, actors["reviewer"])
        with pytest.raises(PermissionDenied):
            engine.approve(submitted, actors["reviewer"])

    def test_inactive_level_has_no_authority(self, tenant, submitted, actors, hierarchy):
        # Level is unused by any template so it may be deleted
        approval_level_service.delete_approval_level(tenant.id, hierarchy["Auditor"].id)
        with pytest.raises(PermissionDenied):
            engine.reject(submitted, actors["auditor"], "no")

    def test_available_actions(self, submitted, actors):
        assert engine.get_available_actions(submitted, actors["reviewer"]) == ["approve", "reject", "route"]
        assert engine.get_available_actions(submitted, actors["auditor"]) == ["reject"]
        assert engine.get_available_actions(submitted, actors["clerk"]) == []
        assert engine.get_available_actions(submitted, actors["author"]) == []


# ═════════════════════════════════════════════════════════════════════════
# APPROVE / REJECT
# ═════════════════════════════════════════════════════════════════════════

class TestApproveReject:
    def test_full_approval(self, submitted, actors):
        engine.approve(submitted, actors["reviewer"], comment="Looks fine")
        assert engine.display_status(submitted) == "pending_manager_approval"
        engine.approve(submitted, actors["manager"])
        assert engine.display_status(submitted) == "pending_director_approval"
        engine.approve(submitted, actors["director"])

        assert submitted.status == "approved"
        assert submitted.current_step_order is None
        assert submitted.completed_at is not None
        assert isinstance(engine.position_of(submitted), engine.Approved)
        assert _live_actions(submitted) == [
            (None, "submitted"), (1, "approved"), (2, "approved"), (3, "approved"),
        ]
        assert submitted.actions[1].actor_name_snapshot == actors["reviewer"].display_name
        assert submitted.actions[1].comment == "Looks fine"

    def test_approved_is_terminal(self, submitted, actors):
        for name in ("reviewer", "manager", "director"):
            engine.approve(submitted, actors[name])
        with pytest.raises(TransitionError):
            engine.approve(submitted, actors["director"])
        with pytest.raises(TransitionError):
            engine.submit(submitted, actors["author"])

    def test_submitter_notified_on_completion(self, submitted, actors):
        for name in ("reviewer", "manager", "director"):
            engine.approve(submitted, actors[name])
        note = Notification.query.filter_by(recipient=actors["author"].email).one()
        assert note.severity == "success"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reject_requires_reason(self, submitted, actors, reason):
        with pytest.raises(ValidationError):
            engine.reject(submitted, actors["reviewer"], reason)
        assert submitted.status == "pending_approval"

    def test_reject_is_terminal(self, submitted, actors):
        engine.reject(submitted, actors["reviewer"], "  Wrong counterparty  ")
        assert submitted.status == "rejected"
        assert submitted.rejection_reason == "Wrong counterparty"
        assert submitted.current_step_order is None
        assert engine.position_of(submitted) == engine.Rejected("Wrong counterparty")
        with pytest.raises(TransitionError):
            engine.approve(submitted, actors["director"])

    def test_resubmit_after_reject(self, submitted, actors):
        engine.approve(submitted, actors["reviewer"])
        engine.reject(submitted, actors["manager"], "Needs pricing annex")

        engine.submit(submitted, actors["author"], comment="Annex added")
        assert submitted.status == "pending_approval"
        assert submitted.current_step_order == 1
        assert submitted.rejection_reason is None
        assert _live_actions(submitted) == [(None, "submitted")]
        # Old trail is kept
        assert len(submitted.actions) == 4
        assert len(engine.get_history(submitted)) == 4
        assert len(engine.get_history(submitted, include_superseded=False)) == 1


# ═════════════════════════════════════════════════════════════════════════
# SKIP / AUTOMATIC STEPS
# ═════════════════════════════════════════════════════════════════════════

class TestSkipAndAutomaticSteps:
    def test_skip_skippable_step(self, tenant, hierarchy, actors):
        _workflow(tenant, hierarchy, steps=[
            {"approval_level_id": hierarchy["Reviewer"].id},
            {"approval_level_id": hierarchy["Manager"].id, "can_skip": True},
            {"approval_level_id": hierarchy["Director"].id},
        ])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"])
        engine.approve(doc, actors["reviewer"])
        # Required but skippable: not auto-bypassed, it waits until someone skips it
        assert doc.current_step_order == 2
        assert "skip" in engine.get_available_actions(doc, actors["manager"])

        engine.skip(doc, actors["manager"], comment="Below threshold")
        assert doc.current_step_order == 3
        assert (2, "skipped") in _live_actions(doc)

    def test_optional_step_without_can_skip_needs_approval(self, tenant, hierarchy, actors):
        _workflow(tenant, hierarchy, steps=[
            {"approval_level_id": hierarchy["Reviewer"].id},
            {"approval_level_id": hierarchy["Manager"].id, "is_required": False},
        ])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"])
        engine.approve(doc, actors["reviewer"])
        assert doc.current_step_order == 2
        assert "skip" not in engine.get_available_actions(doc, actors["manager"])

        with pytest.raises(TransitionError):
            engine.skip(doc, actors["manager"])

        engine.approve(doc, actors["manager"])
        assert doc.status == "approved"

    def test_required_step_cannot_be_skipped(self, submitted, actors):
        with pytest.raises(TransitionError):
            engine.skip(submitted, actors["reviewer"])
        assert "skip" not in engine.get_available_actions(submitted, actors["reviewer"])

    def test_auto_skip(self, tenant, hierarchy, actors):
        _workflow(tenant, hierarchy, steps=[
            {"approval_level_id": hierarchy["Reviewer"].id},
            {"approval_level_id": hierarchy["Manager"].id, "is_required": False, "can_skip": True},
            {"approval_level_id": hierarchy["Director"].id},
        ])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"])
        engine.approve(doc, actors["reviewer"])

        assert doc.current_step_order == 3
        auto = [a for a in doc.actions if a.action == "auto_skipped"]
        assert len(auto) == 1
        assert auto[0].step_order == 2
        assert auto[0].actor_id is None
        assert auto[0].actor_name_snapshot == "System"

    def test_auto_approve_on_arrival(self, tenant, hierarchy, actors):
        _workflow(tenant, hierarchy, steps=[
            {"approval_level_id": hierarchy["Reviewer"].id, "auto_approve": True},
            {"approval_level_id": hierarchy["Director"].id},
        ])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"])
        assert doc.current_step_order == 2
        assert (1, "auto_approved") in _live_actions(doc)

    def test_all_automatic_steps_approve_on_submit(self, tenant, hierarchy, actors):
        _workflow(tenant, hierarchy, steps=[
            {"approval_level_id": hierarchy["Reviewer"].id, "auto_approve": True},
            {"approval_level_id": hierarchy["Manager"].id, "is_required": False, "can_skip": True},
        ])
        doc = engine.submit(_document(tenant, actors["author"]), actors["author"])
        assert doc.status == "approved"

    def test_manual_blueprint_auto_skips_director(self, tenant, actors, make_user):
        provisioning_service.provision_manual(tenant.id)
        levels = {lvl.name: lvl for lvl in approval_level_service.list_approval_levels(tenant.id)}
        head = make_user(tenant, "head@acme.test", approval_level=levels["Department Head"])
        manager = make_user(tenant, "mgr@acme.test", approval_level=levels["Manager"])

        template = workflow_template_service.list_workflow_templates(tenant.id)[0]
        doc = engine.submit(_document(tenant, actors["author"], document_type=template.document_type),
                            actors["author"])
        engine.approve(doc, head)
        engine.approve(doc, manager)
        assert doc.status == "approved"
        assert (3, "auto_skipped") in _live_actions(doc)


# ═════════════════════════════════════════════════════════════════════════
# ROUTE
# ═════════════════════════════════════════════════════════════════════════

class TestRoute:
    def test_forward_route_then_back_to_open_step(self, submitted, actors):
        engine.route(submitted, actors["reviewer"], 3, comment="Escalate")
        assert engine.display_status(submitted) == "pending_director_approval"

        engine.approve(submitted, actors["director"])
        # Step 2 was jumped over and is still required
        assert submitted.status == "pending_approval"
        assert submitted.current_step_order == 2

        engine.approve(submitted, actors["manager"])
        assert submitted.status == "approved"

    def test_backward_route_supersedes(self, submitted, actors):
        engine.approve(submitted, actors["reviewer"])
        engine.approve(submitted, actors["manager"])
        engine.route(submitted, actors["director"], 1, comment="Redo from start")

        assert submitted.current_step_order == 1
        live = _live_actions(submitted)
        assert (1, "approved") not in live
        assert (2, "approved") not in live
        assert (3, "routed") in live

        engine.approve(submitted, actors["reviewer"])
        assert submitted.current_step_order == 2

    def test_route_target_must_exist(self, submitted, actors):
        with pytest.raises(ValidationError):
            engine.route(submitted, actors["reviewer"], 9)
        with pytest.raises(ValidationError):
            engine.route(submitted, actors["reviewer"], None)

    def test_route_to_current_step(self, submitted, actors):
        with pytest.raises(ValidationError):
            engine.route(submitted, actors["reviewer"], 1)

    def test_route_needs_flag(self, submitted, actors):
        with pytest.raises(PermissionDenied):
            engine.route(submitted, actors["auditor"], 2)


# ═════════════════════════════════════════════════════════════════════════
# CONCURRENCY
# ═════════════════════════════════════════════════════════════════════════

class TestConcurrency:
    def test_version_increments(self, submitted, actors):
        before = submitted.version
        engine.approve(submitted, actors["reviewer"])
        assert submitted.version == before + 1

    def test_expected_version_mismatch(self, submitted, actors):
        with pytest.raises(ConcurrentModificationError) as exc_info:
            engine.approve(submitted, actors["reviewer"], expected_version=submitted.version - 1)
        assert exc_info.value.actual_version == submitted.version
        assert submitted.current_step_order == 1

    def test_expected_version_match(self, submitted, actors):
        engine.approve(submitted, actors["reviewer"], expected_version=submitted.version)
        assert submitted.current_step_order == 2

    def test_lost_race(self, submitted, actors, session):
        doc_id = submitted.id
        assert submitted.version == 2
        # Another writer bumps the row after it was loaded
        session.execute(text("UPDATE documents SET version = version + 1 WHERE id = :id"), {"id": doc_id})

        with pytest.raises(ConcurrentModificationError):
            engine.approve(submitted, actors["reviewer"])

        fresh = document_service.get_document(submitted.tenant_id, doc_id)
        assert fresh.current_step_order == 1
        assert [a.action for a in fresh.actions] == ["submitted"]


# ═════════════════════════════════════════════════════════════════════════
# READ SIDE
# ═════════════════════════════════════════════════════════════════════════

class TestReadSide:
    def test_approval_status(self, submitted, actors, hierarchy):
        engine.approve(submitted, actors["reviewer"])
        status = engine.get_approval_status(submitted)
        assert status["display_status"] == "pending_manager_approval"
        assert status["current_approval_level"]["id"] == hierarchy["Manager"].id
        assert [s["outcome"] for s in status["steps"]] == ["approved", None, None]
        assert [s["is_current"] for s in status["steps"]] == [False, True, False]

    def test_draft_status_has_no_steps(self, tenant, actors):
        status = engine.get_approval_status(_document(tenant, actors["author"]))
        assert status["steps"] == []
        assert status["workflow_template"] is None

    def test_position_of_pending(self, submitted, hierarchy):
        pos = engine.position_of(submitted)
        assert pos == engine.PendingStep(order=1, approval_level_id=hierarchy["Reviewer"].id,
                                         remaining_orders=(2, 3))

    def test_pending_for_actor(self, tenant, submitted, actors):
        other = engine.submit(_document(tenant, actors["author"], title="Lease"), actors["author"])
        engine.approve(other, actors["reviewer"])
        engine.approve(other, actors["manager"])

        assert [d.id for d in engine.list_pending_for_actor(actors["reviewer"])] == [submitted.id]
        assert {d.id for d in engine.list_pending_for_actor(actors["director"])} == {submitted.id, other.id}
        assert engine.list_pending_for_actor(actors["author"]) == []
