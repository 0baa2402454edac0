"""User-facing texts for the intake conversation."""

from __future__ import annotations

from models.session import CreationDraft
from models.ticket import TicketRecord
from utils.validators import TITLE_MAX_LENGTH, TITLE_MIN_LENGTH

WELCOME = "Hi! I can file a ticket for you. Choose 'New ticket' to get started."
ASK_CATEGORY = "What kind of request is this?"
ASK_TITLE = (
    f"Please enter a short title ({TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters)."
)
ASK_LABEL = "Which label fits best?"
ASK_PRIORITY = "How urgent is it?"
ASK_TEMPLATE = "Would you like to use the bug report template for the description?"
ASK_EDIT_FIELD = "Which field would you like to change?"
ASK_COMMENT = "Type the comment to add to {ticket_id}."
ASK_STATUS = "Choose the new status for {ticket_id}."
ASK_ASSIGNEE = "Choose who should own {ticket_id}."

USE_CONTROLS = "Please use the provided controls to continue."
RESTART = "Your session has expired or was not found. Please start again."
CANCELLED = "Ticket creation cancelled."
DUPLICATE_TITLE = (
    "A ticket with this exact title was created recently. "
    "Please use a different title."
)
RATE_LIMITED = "You have reached the daily limit of {limit} tickets. Please try again tomorrow."
STORAGE_FAILED = "Something went wrong on our side. Please try again in a moment."
TRACKER_FAILED = (
    "Your request was saved, but the tracker could not create the ticket right now. "
    "Please try again later."
)
COMMENT_EMPTY = "The comment cannot be empty."
OPERATION_DONE = "Done: {what} on {ticket_id}."
OPERATION_FAILED = "Could not {what} on {ticket_id}. Please try again later."

BUG_TEMPLATE = """Steps to Reproduce:
1. [Step 1]
2. [Step 2]
3. [Step 3]

Expected Behavior:
[What should happen]

Actual Behavior:
[What actually happens]

Environment:
- Platform: [Web/iOS/Android]
- Version: [App version]
- User Type: [Customer/Admin/etc]

Additional Context:
[Any other relevant information]"""


def ask_description(min_length: int) -> str:
    return f"Describe the request in at least {min_length} characters."


def fill_template() -> str:
    return "Copy the template below, fill it in and send it back:\n\n" + BUG_TEMPLATE


def ticket_summary(draft: CreationDraft) -> str:
    """Summary shown at the confirmation step."""
    return (
        "Ticket summary\n\n"
        f"Title: {draft.title}\n"
        f"Label: {draft.label.value if draft.label else '-'}\n"
        f"Priority: {draft.priority.value if draft.priority else '-'}\n\n"
        f"Description:\n{draft.description}\n\n"
        "Confirm, edit or cancel?"
    )


def ticket_created(record: TicketRecord) -> str:
    return f"Ticket {record.tracker_identifier} created: {record.tracker_url}"


def reviewer_notification(record: TicketRecord) -> str:
    """Side-channel message for the reviewer when a ticket lands."""
    return (
        "New ticket created\n"
        f"Requester: {record.requester_id}\n"
        f"Ticket: {record.tracker_identifier}\n"
        f"Title: {record.title}\n"
        f"Priority: {record.priority.value}\n"
        f"Label: {record.label.value}\n"
        f"Link: {record.tracker_url}"
    )
