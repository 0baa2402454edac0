"""
Pydantic model validation tests.

Ensures models validate correctly and reject invalid data.
No AWS connection required.

Run with: pytest tests/unit/test_models.py -v
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from pydantic import TypeAdapter, ValidationError

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class TestTicketEnums:
    """Labels, priorities and record status transitions."""

    def test_priority_tracker_values(self):
        from models.ticket import TicketPriority

        assert [p.tracker_value for p in TicketPriority] == [1, 2, 3, 4]

    def test_only_bug_offers_template(self):
        from models.ticket import TicketLabel

        assert TicketLabel.BUG.offers_template
        assert not TicketLabel.IMPROVEMENT.offers_template
        assert not TicketLabel.REQUEST.offers_template

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("draft", "submitted", True),
            ("submitted", "created", True),
            ("submitted", "failed", True),
            ("failed", "created", True),
            ("created", "failed", False),
            ("created", "submitted", False),
            ("submitted", "draft", False),
            ("draft", "created", False),
        ],
    )
    def test_status_moves_forward_only(self, current, target, allowed):
        from models.ticket import TicketStatus

        assert TicketStatus(current).can_transition_to(TicketStatus(target)) is allowed


class TestSessionModels:
    """Session state tag and draft union."""

    def test_state_groups_are_disjoint(self):
        from models.session import CREATION_STATES, OPERATION_STATES, WorkflowState

        assert not CREATION_STATES & OPERATION_STATES
        assert WorkflowState.IDLE not in CREATION_STATES | OPERATION_STATES
        assert WorkflowState.ADDING_COMMENT.is_operation
        assert WorkflowState.AWAITING_TITLE.is_creation

    def test_operation_kind_maps_to_state(self):
        from models.session import OperationKind, WorkflowState

        assert OperationKind.ADD_COMMENT.state is WorkflowState.ADDING_COMMENT
        assert OperationKind.UPDATE_STATUS.state is WorkflowState.UPDATING_STATUS
        assert OperationKind.ASSIGN.state is WorkflowState.ASSIGNING_ISSUE

    def test_parse_draft_uses_kind_tag(self):
        from models.session import CreationDraft, OperationDraft, parse_draft

        creation = parse_draft({"kind": "creation", "title": "Fix login crash"})
        operation = parse_draft(
            {"kind": "operation", "operation": "add_comment", "target_ticket_id": "xyz"}
        )
        assert isinstance(creation, CreationDraft)
        assert isinstance(operation, OperationDraft)
        assert parse_draft({}) is None
        assert parse_draft(None) is None

    def test_operation_draft_rejects_creation_fields(self):
        from models.session import parse_draft

        with pytest.raises(ValidationError):
            parse_draft({"kind": "operation", "title": "Fix login crash"})

    def test_creation_draft_completeness(self, complete_draft):
        from models.session import CreationDraft

        assert complete_draft.is_complete()
        assert not CreationDraft(title="Only a title here").is_complete()

    def test_session_expiry_is_strict(self):
        from models.session import Session

        start = datetime(2024, 3, 1, 9, 0)
        session = Session(user_id="u1", created_at=start, last_activity=start)
        assert not session.is_expired(start + timedelta(minutes=30), 30)
        assert session.is_expired(start + timedelta(minutes=30, seconds=1), 30)


class TestInboundEvents:
    """Discriminated union of chat events."""

    def test_parses_by_type(self):
        from models.events import InboundEvent, Selection, SelectionAction

        event = TypeAdapter(InboundEvent).validate_python(
            {"type": "selection", "user_id": "u1", "action": "priority", "value": "High"}
        )
        assert isinstance(event, Selection)
        assert event.action is SelectionAction.PRIORITY

    def test_unknown_type_rejected(self):
        from models.events import InboundEvent

        with pytest.raises(ValidationError):
            TypeAdapter(InboundEvent).validate_python({"type": "shout", "user_id": "u1"})

    def test_enter_operation_requires_target(self):
        from models.events import EnterOperation

        with pytest.raises(ValidationError):
            EnterOperation(user_id="u1", kind="add_comment", target_ticket_id="")

    def test_result_splits_effects(self):
        from models.events import InputKind, Notify, Outcome, Prompt, WorkflowResult

        result = WorkflowResult(
            outcome=Outcome.ACCEPTED,
            effects=[
                Prompt(user_id="u1", text="Title?", expected_input=InputKind.TEXT),
                Notify(channel="reviewers", text="New ticket"),
            ],
        )
        assert len(result.prompts) == 1
        assert result.notifications[0].channel == "reviewers"
