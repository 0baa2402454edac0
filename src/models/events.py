"""Inbound chat events and the effects the workflow asks the transport to perform."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from models.session import OperationKind, WorkflowState
from models.ticket import TicketRecord


class SelectionAction(str, Enum):
    """Button groups the transport can render."""

    CATEGORY = "category"
    LABEL = "label"
    PRIORITY = "priority"
    TEMPLATE = "template"
    CONFIRMATION = "confirmation"
    EDIT = "edit"
    STATUS = "status"
    ASSIGNEE = "assignee"


class ConfirmChoice(str, Enum):
    CONFIRM = "confirm"
    EDIT = "edit"
    CANCEL = "cancel"


class TemplateChoice(str, Enum):
    USE = "use"
    SKIP = "skip"


class EditChoice(str, Enum):
    TITLE = "title"
    DESCRIPTION = "description"
    LABEL = "label"
    PRIORITY = "priority"
    BACK = "back"


class Begin(BaseModel):
    """First contact or explicit reset."""

    type: Literal["begin"] = "begin"
    user_id: str


class StartCreation(BaseModel):
    type: Literal["start_creation"] = "start_creation"
    user_id: str


class TextInput(BaseModel):
    type: Literal["text"] = "text"
    user_id: str
    text: str


class Selection(BaseModel):
    """Discrete button choice, e.g. action=priority value=High."""

    type: Literal["selection"] = "selection"
    user_id: str
    action: SelectionAction
    value: str


class Cancel(BaseModel):
    type: Literal["cancel"] = "cancel"
    user_id: str


class EnterOperation(BaseModel):
    """Jump into an action on an existing ticket, e.g. from its detail view."""

    type: Literal["enter_operation"] = "enter_operation"
    user_id: str
    kind: OperationKind
    target_ticket_id: str = Field(min_length=1)


InboundEvent = Annotated[
    Union[Begin, StartCreation, TextInput, Selection, Cancel, EnterOperation],
    Field(discriminator="type"),
]


class InputKind(str, Enum):
    TEXT = "text"
    SELECTION = "selection"
    NONE = "none"


class Outcome(str, Enum):
    """Tagged result of handling one event."""

    ACCEPTED = "accepted"
    VALIDATION_FAILED = "validation_failed"
    INVALID_EVENT = "invalid_event"
    SESSION_NOT_FOUND = "session_not_found"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"
    TICKET_CREATED = "ticket_created"
    TRACKER_UNAVAILABLE = "tracker_unavailable"
    TRACKER_REJECTED = "tracker_rejected"
    OPERATION_SUCCEEDED = "operation_succeeded"
    OPERATION_FAILED = "operation_failed"
    STORAGE_FAILED = "storage_failed"


class Prompt(BaseModel):
    type: Literal["prompt"] = "prompt"
    user_id: str
    text: str
    expected_input: InputKind
    action: Optional[SelectionAction] = None
    options: List[str] = Field(default_factory=list)


class Notify(BaseModel):
    """Message for a side channel such as the reviewer chat."""

    type: Literal["notify"] = "notify"
    channel: str
    text: str


class ReportResult(BaseModel):
    type: Literal["report"] = "report"
    user_id: str
    outcome: Outcome
    text: str


Effect = Annotated[Union[Prompt, Notify, ReportResult], Field(discriminator="type")]


class WorkflowResult(BaseModel):
    """Everything the transport needs after one event."""

    outcome: Outcome
    state: Optional[WorkflowState] = None
    effects: List[Effect] = Field(default_factory=list)
    ticket: Optional[TicketRecord] = None

    @property
    def prompts(self) -> List[Prompt]:
        return [e for e in self.effects if isinstance(e, Prompt)]

    @property
    def notifications(self) -> List[Notify]:
        return [e for e in self.effects if isinstance(e, Notify)]
