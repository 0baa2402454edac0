"""Session models.

A session's ``state`` is one closed enumeration covering both the creation
flow and the operations on an existing ticket. Its ``draft`` is a tagged
union: each kind carries only the scratch fields its states need.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from models.ticket import TicketLabel, TicketPriority


class WorkflowState(str, Enum):
    """Every state a session can be in."""

    IDLE = "IDLE"
    AWAITING_CATEGORY = "AWAITING_CATEGORY"
    AWAITING_TITLE = "AWAITING_TITLE"
    AWAITING_DESCRIPTION = "AWAITING_DESCRIPTION"
    AWAITING_LABEL = "AWAITING_LABEL"
    AWAITING_PRIORITY = "AWAITING_PRIORITY"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    AWAITING_EDIT_CHOICE = "AWAITING_EDIT_CHOICE"
    ADDING_COMMENT = "ADDING_COMMENT"
    UPDATING_STATUS = "UPDATING_STATUS"
    ASSIGNING_ISSUE = "ASSIGNING_ISSUE"

    @property
    def is_operation(self) -> bool:
        return self in OPERATION_STATES

    @property
    def is_creation(self) -> bool:
        return self in CREATION_STATES


CREATION_STATES: FrozenSet[WorkflowState] = frozenset(
    {
        WorkflowState.AWAITING_CATEGORY,
        WorkflowState.AWAITING_TITLE,
        WorkflowState.AWAITING_DESCRIPTION,
        WorkflowState.AWAITING_LABEL,
        WorkflowState.AWAITING_PRIORITY,
        WorkflowState.AWAITING_CONFIRMATION,
        WorkflowState.AWAITING_EDIT_CHOICE,
    }
)

OPERATION_STATES: FrozenSet[WorkflowState] = frozenset(
    {
        WorkflowState.ADDING_COMMENT,
        WorkflowState.UPDATING_STATUS,
        WorkflowState.ASSIGNING_ISSUE,
    }
)


class OperationKind(str, Enum):
    """Actions available on an already existing ticket."""

    ADD_COMMENT = "add_comment"
    UPDATE_STATUS = "update_status"
    ASSIGN = "assign"

    @property
    def state(self) -> WorkflowState:
        return {
            OperationKind.ADD_COMMENT: WorkflowState.ADDING_COMMENT,
            OperationKind.UPDATE_STATUS: WorkflowState.UPDATING_STATUS,
            OperationKind.ASSIGN: WorkflowState.ASSIGNING_ISSUE,
        }[self]


class CreationDraft(BaseModel):
    """Ticket fields accumulated by the creation flow."""

    kind: Literal["creation"] = "creation"
    title: Optional[str] = None
    description: Optional[str] = None
    label: Optional[TicketLabel] = None
    priority: Optional[TicketPriority] = None
    label_from_category: bool = False
    awaiting_template: bool = False
    template_offered: bool = False
    editing: bool = False

    def is_complete(self) -> bool:
        return all(
            value is not None
            for value in (self.title, self.description, self.label, self.priority)
        )


class OperationDraft(BaseModel):
    """Scratch space for a single action on an existing ticket."""

    kind: Literal["operation"] = "operation"
    operation: OperationKind
    target_ticket_id: str


SessionDraft = Annotated[
    Union[CreationDraft, OperationDraft], Field(discriminator="kind")
]

_draft_adapter: TypeAdapter = TypeAdapter(SessionDraft)


def parse_draft(data: Optional[Dict[str, Any]]) -> Optional[Union[CreationDraft, OperationDraft]]:
    """Rebuild a draft from its stored dict form."""
    if not data:
        return None
    return _draft_adapter.validate_python(data)


class Session(BaseModel):
    """One in-progress conversation for one user."""

    user_id: str
    state: WorkflowState = WorkflowState.IDLE
    draft: Optional[SessionDraft] = None
    created_at: datetime
    last_activity: datetime

    def draft_dict(self) -> Dict[str, Any]:
        return self.draft.model_dump(mode="json") if self.draft else {}

    def is_expired(self, now: datetime, timeout_minutes: int) -> bool:
        return (now - self.last_activity).total_seconds() > timeout_minutes * 60
