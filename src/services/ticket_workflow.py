"""
Ticket intake state machine.

Maps (session state, inbound event) to the next state plus the effects the
chat transport should perform. One event per user is processed at a time:
``handle`` holds that user's lock for the whole step, tracker call included.

Failures never escape as exceptions. Validation problems re-prompt in the
same state; missing sessions, storage and tracker failures come back as a
tagged ``Outcome`` on the ``WorkflowResult``.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Type, TypeVar

from models.events import (
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
from models.session import (
    CreationDraft,
    OperationDraft,
    OperationKind,
    Session,
    WorkflowState,
)
from models.ticket import TicketLabel, TicketPriority
from services import prompts
from services.duplicate_detector import DuplicateDetector
from services.rate_limiter import RateLimiter
from services.session_manager import SessionManager
from services.ticket_submission import TicketSubmitter
from services.tracker_gateway import TrackerGateway
from utils.error_handling import (
    RateLimitExceededError,
    SessionExpiredError,
    SessionNotFoundError,
    StorageError,
    TrackerError,
)
from utils.logging_config import get_logger
from utils.user_locks import UserLockRegistry
from utils.validators import sanitize_input, validate_description, validate_title

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)

StateHandler = Callable[[Session, InboundEvent], WorkflowResult]

_EDIT_TARGETS: Dict[EditChoice, WorkflowState] = {
    EditChoice.TITLE: WorkflowState.AWAITING_TITLE,
    EditChoice.DESCRIPTION: WorkflowState.AWAITING_DESCRIPTION,
    EditChoice.LABEL: WorkflowState.AWAITING_LABEL,
    EditChoice.PRIORITY: WorkflowState.AWAITING_PRIORITY,
}

_OPERATION_NAMES: Dict[OperationKind, str] = {
    OperationKind.ADD_COMMENT: "add comment",
    OperationKind.UPDATE_STATUS: "update status",
    OperationKind.ASSIGN: "reassign",
}


def _options(enum_cls: Type[Enum]) -> list:
    return [member.value for member in enum_cls]


def _choice(event: InboundEvent, action: SelectionAction, enum_cls: Type[E]) -> Optional[E]:
    """The selected enum member, or None if the event is not that selection."""
    if not isinstance(event, Selection) or event.action is not action:
        return None
    try:
        return enum_cls(event.value)
    except ValueError:
        return None


class TicketWorkflow:
    """Drives one intake conversation per user."""

    def __init__(
        self,
        sessions: SessionManager,
        rate_limiter: RateLimiter,
        duplicates: DuplicateDetector,
        submitter: TicketSubmitter,
        gateway: TrackerGateway,
        locks: Optional[UserLockRegistry] = None,
        *,
        description_min_length: int = 10,
        default_priority: TicketPriority = TicketPriority.MEDIUM,
        streamlined_flow: bool = True,
        reviewer_channel: Optional[str] = None,
    ):
        self.sessions = sessions
        self.rate_limiter = rate_limiter
        self.duplicates = duplicates
        self.submitter = submitter
        self.gateway = gateway
        self.locks = locks or UserLockRegistry()
        self.description_min_length = description_min_length
        self.default_priority = default_priority
        self.streamlined_flow = streamlined_flow
        self.reviewer_channel = reviewer_channel

        self._handlers: Dict[WorkflowState, StateHandler] = {
            WorkflowState.IDLE: self._invalid,
            WorkflowState.AWAITING_CATEGORY: self._on_category,
            WorkflowState.AWAITING_TITLE: self._on_title,
            WorkflowState.AWAITING_DESCRIPTION: self._on_description,
            WorkflowState.AWAITING_LABEL: self._on_label,
            WorkflowState.AWAITING_PRIORITY: self._on_priority,
            WorkflowState.AWAITING_CONFIRMATION: self._on_confirmation,
            WorkflowState.AWAITING_EDIT_CHOICE: self._on_edit_choice,
            WorkflowState.ADDING_COMMENT: self._on_comment,
            WorkflowState.UPDATING_STATUS: self._on_status,
            WorkflowState.ASSIGNING_ISSUE: self._on_assignee,
        }

    def handle(self, event: InboundEvent) -> WorkflowResult:
        """Process one event to completion for its user."""
        user_id = event.user_id
        with self.locks.hold(user_id):
            try:
                return self._dispatch(event)
            except SessionNotFoundError as exc:
                # Swept or expired between read and write.
                logger.info(
                    "Session vanished mid-event",
                    extra={"user_id": user_id, "expired": isinstance(exc, SessionExpiredError)},
                )
                return self._restart(user_id)
            except StorageError as exc:
                logger.error(
                    "Event abandoned on storage failure",
                    extra={"user_id": user_id, "event": event.type, "error": str(exc)},
                )
                return WorkflowResult(
                    outcome=Outcome.STORAGE_FAILED,
                    effects=[self._report(user_id, Outcome.STORAGE_FAILED, prompts.STORAGE_FAILED)],
                )

    def _dispatch(self, event: InboundEvent) -> WorkflowResult:
        if isinstance(event, Begin):
            session = self.sessions.create(event.user_id)
            return WorkflowResult(
                outcome=Outcome.ACCEPTED,
                state=session.state,
                effects=[self._prompt(event.user_id, prompts.WELCOME, InputKind.NONE)],
            )
        if isinstance(event, StartCreation):
            return self._start_creation(event.user_id)

        session = self.sessions.get(event.user_id)
        if session is None:
            return self._restart(event.user_id)
        if isinstance(event, Cancel):
            return self._cancel(session)
        if isinstance(event, EnterOperation):
            return self._enter_operation(session, event)
        return self._handlers[session.state](session, event)

    # Entry points

    def _start_creation(self, user_id: str) -> WorkflowResult:
        try:
            self.rate_limiter.check(user_id)
        except RateLimitExceededError as exc:
            current = self.sessions.get(user_id)
            return self._rate_limited(user_id, exc, current.state if current else None)

        self.sessions.create(user_id)
        session = self.sessions.update(
            user_id, state=WorkflowState.AWAITING_CATEGORY, new_draft=CreationDraft()
        )
        return self._accepted(
            session,
            self._prompt(
                user_id,
                prompts.ASK_CATEGORY,
                InputKind.SELECTION,
                SelectionAction.CATEGORY,
                _options(TicketLabel),
            ),
        )

    def _enter_operation(self, session: Session, event: EnterOperation) -> WorkflowResult:
        if session.state is not WorkflowState.IDLE:
            return self._invalid(session, event)
        kind = event.kind
        updated = self.sessions.update(
            session.user_id,
            state=kind.state,
            new_draft=OperationDraft(operation=kind, target_ticket_id=event.target_ticket_id),
        )
        return self._accepted(updated, self._operation_prompt(updated.user_id, kind, event.target_ticket_id))

    def _cancel(self, session: Session) -> WorkflowResult:
        self.sessions.reset(session.user_id)
        logger.info(
            "Session cancelled",
            extra={"user_id": session.user_id, "from_state": session.state.value},
        )
        return WorkflowResult(
            outcome=Outcome.CANCELLED,
            state=WorkflowState.IDLE,
            effects=[self._report(session.user_id, Outcome.CANCELLED, prompts.CANCELLED)],
        )

    # Creation flow

    def _on_category(self, session: Session, event: InboundEvent) -> WorkflowResult:
        label = _choice(event, SelectionAction.CATEGORY, TicketLabel)
        if label is None:
            return self._invalid(session, event)
        updated = self.sessions.update(
            session.user_id,
            state=WorkflowState.AWAITING_TITLE,
            draft={"label": label, "label_from_category": True},
        )
        return self._accepted(updated, self._prompt(session.user_id, prompts.ASK_TITLE))

    def _on_title(self, session: Session, event: InboundEvent) -> WorkflowResult:
        if not isinstance(event, TextInput):
            return self._invalid(session, event)
        title = sanitize_input(event.text)
        check = validate_title(title)
        if not check.is_valid:
            return self._rejected(session, check.error, prompts.ASK_TITLE)
        if self.duplicates.is_duplicate(title):
            return self._rejected(session, prompts.DUPLICATE_TITLE, prompts.ASK_TITLE)

        if session.draft.editing:
            return self._back_to_confirmation(session, {"title": title})
        updated = self.sessions.update(
            session.user_id, state=WorkflowState.AWAITING_DESCRIPTION, draft={"title": title}
        )
        return self._accepted(
            updated,
            self._prompt(session.user_id, prompts.ask_description(self.description_min_length)),
        )

    def _on_description(self, session: Session, event: InboundEvent) -> WorkflowResult:
        if not isinstance(event, TextInput):
            return self._invalid(session, event)
        draft: CreationDraft = session.draft

        if draft.awaiting_template:
            # A filled-in template is kept exactly as sent.
            description = event.text
        else:
            description = sanitize_input(event.text)
            check = validate_description(description, self.description_min_length)
            if not check.is_valid:
                return self._rejected(
                    session, check.error, prompts.ask_description(self.description_min_length)
                )

        changes = {"description": description, "awaiting_template": False}
        if draft.editing:
            return self._back_to_confirmation(session, changes)
        if draft.label is None:
            updated = self.sessions.update(
                session.user_id, state=WorkflowState.AWAITING_LABEL, draft=changes
            )
            return self._accepted(
                updated,
                self._prompt(
                    session.user_id,
                    prompts.ASK_LABEL,
                    InputKind.SELECTION,
                    SelectionAction.LABEL,
                    _options(TicketLabel),
                ),
            )
        if self.streamlined_flow and draft.label_from_category:
            if draft.priority is None:
                changes["priority"] = self.default_priority
            return self._to_confirmation(session, changes)
        return self._to_priority(session, draft.label, changes)

    def _on_label(self, session: Session, event: InboundEvent) -> WorkflowResult:
        label = _choice(event, SelectionAction.LABEL, TicketLabel)
        if label is None:
            return self._invalid(session, event)
        if session.draft.editing:
            return self._back_to_confirmation(session, {"label": label})
        return self._to_priority(session, label, {"label": label})

    def _on_priority(self, session: Session, event: InboundEvent) -> WorkflowResult:
        draft: CreationDraft = session.draft
        template = _choice(event, SelectionAction.TEMPLATE, TemplateChoice)
        if template is not None and draft.template_offered:
            if template is TemplateChoice.USE:
                updated = self.sessions.update(
                    session.user_id,
                    state=WorkflowState.AWAITING_DESCRIPTION,
                    draft={"awaiting_template": True},
                )
                return self._accepted(updated, self._prompt(session.user_id, prompts.fill_template()))
            updated = self.sessions.update(session.user_id)
            return self._accepted(updated, self._priority_prompt(session.user_id))

        priority = _choice(event, SelectionAction.PRIORITY, TicketPriority)
        if priority is None:
            return self._invalid(session, event)
        if draft.editing:
            return self._back_to_confirmation(session, {"priority": priority})
        return self._to_confirmation(session, {"priority": priority})

    def _on_confirmation(self, session: Session, event: InboundEvent) -> WorkflowResult:
        choice = _choice(event, SelectionAction.CONFIRMATION, ConfirmChoice)
        if choice is None:
            return self._invalid(session, event)
        if choice is ConfirmChoice.CANCEL:
            return self._cancel(session)
        if choice is ConfirmChoice.EDIT:
            updated = self.sessions.update(
                session.user_id,
                state=WorkflowState.AWAITING_EDIT_CHOICE,
                draft={"editing": True},
            )
            return self._accepted(
                updated,
                self._prompt(
                    session.user_id,
                    prompts.ASK_EDIT_FIELD,
                    InputKind.SELECTION,
                    SelectionAction.EDIT,
                    _options(EditChoice),
                ),
            )
        return self._submit(session)

    def _on_edit_choice(self, session: Session, event: InboundEvent) -> WorkflowResult:
        choice = _choice(event, SelectionAction.EDIT, EditChoice)
        if choice is None:
            return self._invalid(session, event)
        if choice is EditChoice.BACK:
            return self._back_to_confirmation(session, {})

        target = _EDIT_TARGETS[choice]
        updated = self.sessions.update(session.user_id, state=target)
        user_id = session.user_id
        if target is WorkflowState.AWAITING_TITLE:
            prompt = self._prompt(user_id, prompts.ASK_TITLE)
        elif target is WorkflowState.AWAITING_DESCRIPTION:
            prompt = self._prompt(user_id, prompts.ask_description(self.description_min_length))
        elif target is WorkflowState.AWAITING_LABEL:
            prompt = self._prompt(
                user_id, prompts.ASK_LABEL, InputKind.SELECTION, SelectionAction.LABEL, _options(TicketLabel)
            )
        else:
            prompt = self._priority_prompt(user_id)
        return self._accepted(updated, prompt)

    def _submit(self, session: Session) -> WorkflowResult:
        user_id = session.user_id
        draft = session.draft
        if not isinstance(draft, CreationDraft) or not draft.is_complete():
            return self._invalid(session, None)

        try:
            self.rate_limiter.check(user_id)
        except RateLimitExceededError as exc:
            self.sessions.reset(user_id)
            return self._rate_limited(user_id, exc, WorkflowState.IDLE)

        try:
            result = self.submitter.submit(user_id, draft)
        finally:
            # A confirmation consumes the draft even when storage fails mid-way.
            self.sessions.reset(user_id)
        record = result.record

        if result.created:
            effects = [self._report(user_id, Outcome.TICKET_CREATED, prompts.ticket_created(record))]
            if self.reviewer_channel:
                effects.append(
                    Notify(channel=self.reviewer_channel, text=prompts.reviewer_notification(record))
                )
            logger.info(
                "Ticket submitted",
                extra={"user_id": user_id, "record_id": record.id, "identifier": record.tracker_identifier},
            )
        else:
            effects = [self._report(user_id, result.outcome, prompts.TRACKER_FAILED)]
        return WorkflowResult(
            outcome=result.outcome, state=WorkflowState.IDLE, effects=effects, ticket=record
        )

    def _to_priority(self, session: Session, label: TicketLabel, changes: dict) -> WorkflowResult:
        draft: CreationDraft = session.draft
        effects = []
        if label.offers_template and not draft.template_offered:
            changes = {**changes, "template_offered": True}
            effects.append(
                self._prompt(
                    session.user_id,
                    prompts.ASK_TEMPLATE,
                    InputKind.SELECTION,
                    SelectionAction.TEMPLATE,
                    _options(TemplateChoice),
                )
            )
        effects.append(self._priority_prompt(session.user_id))
        updated = self.sessions.update(
            session.user_id, state=WorkflowState.AWAITING_PRIORITY, draft=changes
        )
        return self._accepted(updated, *effects)

    def _to_confirmation(self, session: Session, changes: dict) -> WorkflowResult:
        updated = self.sessions.update(
            session.user_id, state=WorkflowState.AWAITING_CONFIRMATION, draft=changes
        )
        return self._accepted(updated, self._confirmation_prompt(updated))

    def _back_to_confirmation(self, session: Session, changes: dict) -> WorkflowResult:
        return self._to_confirmation(session, {**changes, "editing": False})

    # Operations on existing tickets

    def _on_comment(self, session: Session, event: InboundEvent) -> WorkflowResult:
        if not isinstance(event, TextInput):
            return self._invalid(session, event)
        text = sanitize_input(event.text)
        if not text:
            return self._rejected(
                session,
                prompts.COMMENT_EMPTY,
                prompts.ASK_COMMENT.format(ticket_id=session.draft.target_ticket_id),
            )
        return self._run_operation(
            session, lambda target: self.gateway.add_comment(target, text) is not None
        )

    def _on_status(self, session: Session, event: InboundEvent) -> WorkflowResult:
        if not isinstance(event, Selection) or event.action is not SelectionAction.STATUS:
            return self._invalid(session, event)
        return self._run_operation(
            session, lambda target: self.gateway.update_status(target, event.value)
        )

    def _on_assignee(self, session: Session, event: InboundEvent) -> WorkflowResult:
        if not isinstance(event, Selection) or event.action is not SelectionAction.ASSIGNEE:
            return self._invalid(session, event)
        return self._run_operation(
            session, lambda target: self.gateway.update_assignee(target, event.value)
        )

    def _run_operation(
        self, session: Session, call: Callable[[str], bool]
    ) -> WorkflowResult:
        """One gateway call, then back to Idle whatever happened."""
        draft: OperationDraft = session.draft
        target = draft.target_ticket_id
        try:
            succeeded = bool(call(target))
        except TrackerError as exc:
            logger.warning(
                "Ticket operation failed",
                extra={"user_id": session.user_id, "ticket_id": target, "error": str(exc)},
            )
            succeeded = False

        self.sessions.reset(session.user_id)
        what = _OPERATION_NAMES[draft.operation]
        if succeeded:
            outcome = Outcome.OPERATION_SUCCEEDED
            text = prompts.OPERATION_DONE.format(what=what, ticket_id=target)
        else:
            outcome = Outcome.OPERATION_FAILED
            text = prompts.OPERATION_FAILED.format(what=what, ticket_id=target)
        logger.info(
            "Ticket operation finished",
            extra={
                "user_id": session.user_id,
                "operation": draft.operation.value,
                "ticket_id": target,
                "outcome": outcome.value,
            },
        )
        return WorkflowResult(
            outcome=outcome,
            state=WorkflowState.IDLE,
            effects=[self._report(session.user_id, outcome, text)],
        )

    # Result helpers

    def _rate_limited(
        self, user_id: str, exc: RateLimitExceededError, state: Optional[WorkflowState]
    ) -> WorkflowResult:
        text = prompts.RATE_LIMITED.format(limit=exc.limit)
        return WorkflowResult(
            outcome=Outcome.RATE_LIMITED,
            state=state,
            effects=[self._report(user_id, Outcome.RATE_LIMITED, text)],
        )

    def _accepted(self, session: Session, *effects) -> WorkflowResult:
        logger.info(
            "Workflow step accepted",
            extra={"user_id": session.user_id, "state": session.state.value},
        )
        return WorkflowResult(outcome=Outcome.ACCEPTED, state=session.state, effects=list(effects))

    def _rejected(self, session: Session, reason: str, reprompt: str) -> WorkflowResult:
        """Validation failure: the session is left exactly as it was."""
        logger.info(
            "Input rejected",
            extra={"user_id": session.user_id, "state": session.state.value, "reason": reason},
        )
        return WorkflowResult(
            outcome=Outcome.VALIDATION_FAILED,
            state=session.state,
            effects=[
                self._report(session.user_id, Outcome.VALIDATION_FAILED, reason),
                self._prompt(session.user_id, reprompt),
            ],
        )

    def _invalid(self, session: Session, event: Optional[InboundEvent]) -> WorkflowResult:
        logger.info(
            "Event not valid for state",
            extra={
                "user_id": session.user_id,
                "state": session.state.value,
                "event": event.type if event is not None else None,
            },
        )
        return WorkflowResult(
            outcome=Outcome.INVALID_EVENT,
            state=session.state,
            effects=[self._report(session.user_id, Outcome.INVALID_EVENT, prompts.USE_CONTROLS)],
        )

    def _restart(self, user_id: str) -> WorkflowResult:
        return WorkflowResult(
            outcome=Outcome.SESSION_NOT_FOUND,
            effects=[self._report(user_id, Outcome.SESSION_NOT_FOUND, prompts.RESTART)],
        )

    def _confirmation_prompt(self, session: Session) -> Prompt:
        return self._prompt(
            session.user_id,
            prompts.ticket_summary(session.draft),
            InputKind.SELECTION,
            SelectionAction.CONFIRMATION,
            _options(ConfirmChoice),
        )

    def _priority_prompt(self, user_id: str) -> Prompt:
        return self._prompt(
            user_id,
            prompts.ASK_PRIORITY,
            InputKind.SELECTION,
            SelectionAction.PRIORITY,
            _options(TicketPriority),
        )

    def _operation_prompt(self, user_id: str, kind: OperationKind, target: str) -> Prompt:
        if kind is OperationKind.ADD_COMMENT:
            return self._prompt(user_id, prompts.ASK_COMMENT.format(ticket_id=target))
        if kind is OperationKind.UPDATE_STATUS:
            return self._prompt(
                user_id,
                prompts.ASK_STATUS.format(ticket_id=target),
                InputKind.SELECTION,
                SelectionAction.STATUS,
            )
        return self._prompt(
            user_id,
            prompts.ASK_ASSIGNEE.format(ticket_id=target),
            InputKind.SELECTION,
            SelectionAction.ASSIGNEE,
        )

    @staticmethod
    def _prompt(
        user_id: str,
        text: str,
        expected: InputKind = InputKind.TEXT,
        action: Optional[SelectionAction] = None,
        options: Iterable[str] = (),
    ) -> Prompt:
        return Prompt(
            user_id=user_id, text=text, expected_input=expected, action=action, options=list(options)
        )

    @staticmethod
    def _report(user_id: str, outcome: Outcome, text: str) -> ReportResult:
        return ReportResult(user_id=user_id, outcome=outcome, text=text)
