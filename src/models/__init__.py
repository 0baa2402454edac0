"""Pydantic models for sessions, tickets and chat events."""

from models.events import (  # noqa: F401
    Begin,
    Cancel,
    ConfirmChoice,
    EditChoice,
    EnterOperation,
    InboundEvent,
    InputKind,
    Notify,
    Outcome,
    Prompt,
    ReportResult,
    Selection,
    SelectionAction,
    StartCreation,
    TemplateChoice,
    TextInput,
    WorkflowResult,
)
from models.session import (  # noqa: F401
    CreationDraft,
    OperationDraft,
    OperationKind,
    Session,
    WorkflowState,
)
from models.ticket import (  # noqa: F401
    TicketLabel,
    TicketPriority,
    TicketRecord,
    TicketStatus,
    TrackerComment,
    TrackerTicket,
)
