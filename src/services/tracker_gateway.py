"""
Issue tracker gateway.

The only code that talks to the tracker. ``LinearGateway`` speaks Linear's
GraphQL API over httpx; ``OfflineGateway`` stands in when no API key is
configured so a local run can still complete the whole flow.

Every call is a single attempt. Transport failures, timeouts, 429 and 5xx
answers raise ``TrackerUnavailableError``; any other refusal raises
``TrackerRejectedError``.
"""

from __future__ import annotations

import itertools
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx

from models.ticket import TicketLabel, TicketRecord, TrackerComment, TrackerTicket
from utils.error_handling import TrackerError, TrackerRejectedError, TrackerUnavailableError
from utils.logging_config import get_logger

logger = get_logger(__name__)

# Raised while reading an unexpected GraphQL payload shape; pydantic errors are ValueErrors.
_MALFORMED = (AttributeError, KeyError, TypeError, ValueError)

ISSUE_CREATE = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { id identifier url }
  }
}
"""

ISSUE_UPDATE = """
mutation IssueUpdate($id: String!, $input: IssueUpdateInput!) {
  issueUpdate(id: $id, input: $input) {
    success
  }
}
"""

COMMENT_CREATE = """
mutation CommentCreate($input: CommentCreateInput!) {
  commentCreate(input: $input) {
    success
    comment { id body createdAt user { name } issue { identifier } }
  }
}
"""

TEAM_LABELS = """
query TeamLabels($id: String!) {
  team(id: $id) {
    labels { nodes { id name } }
  }
}
"""


class TrackerGateway(Protocol):
    """Narrow contract the workflow needs from the tracker."""

    def create_ticket(self, record: TicketRecord) -> TrackerTicket: ...

    def update_status(self, ticket_id: str, status_id: str) -> bool: ...

    def update_assignee(self, ticket_id: str, user_id: str) -> bool: ...

    def add_comment(self, ticket_id: str, text: str) -> Optional[TrackerComment]: ...


class LabelDirectory:
    """
    Label -> tracker label id, seeded from settings.

    ``refresh`` replaces entries from the tracker's own label list, matching
    on name fragments so "Bug", "bugs" and "Bug report" all map to Bug.
    """

    def __init__(self, initial: Optional[Dict[TicketLabel, str]] = None):
        self._ids: Dict[TicketLabel, str] = {k: v for k, v in (initial or {}).items() if v}
        self._lock = threading.Lock()

    def get(self, label: TicketLabel) -> Optional[str]:
        with self._lock:
            return self._ids.get(label)

    def refresh(self, nodes: Iterable[Dict[str, Any]]) -> int:
        """Map tracker labels by name; returns how many entries changed."""
        found: Dict[TicketLabel, str] = {}
        for node in nodes:
            label = _match_label(node.get("name", ""))
            if label is not None and label not in found:
                found[label] = node["id"]
        with self._lock:
            changed = sum(1 for k, v in found.items() if self._ids.get(k) != v)
            self._ids.update(found)
        return changed

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return {label.value: label_id for label, label_id in self._ids.items()}


def _match_label(name: str) -> Optional[TicketLabel]:
    normalized = name.lower()
    if "bug" in normalized:
        return TicketLabel.BUG
    if "improvement" in normalized:
        return TicketLabel.IMPROVEMENT
    if any(word in normalized for word in ("request", "ad-hoc", "other")):
        return TicketLabel.REQUEST
    return None


def format_description(record: TicketRecord) -> str:
    """Ticket body with the requester footer appended."""
    return f"{record.description}\n\n---\n**Created by:** {record.requester_id}\n**Via:** Chat intake"


class LinearGateway:
    """Linear GraphQL client; one HTTP request per call."""

    def __init__(
        self,
        api_key: str,
        team_id: str,
        project_id: str,
        assignee_id: str,
        labels: Optional[LabelDirectory] = None,
        api_url: str = "https://api.linear.app/graphql",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.Client] = None,
    ):
        self.team_id = team_id
        self.project_id = project_id
        self.assignee_id = assignee_id
        self.labels = labels or LabelDirectory()
        self.api_url = api_url
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._headers = {"Authorization": api_key, "Content-Type": "application/json"}

    def create_ticket(self, record: TicketRecord) -> TrackerTicket:
        issue_input: Dict[str, Any] = {
            "title": record.title,
            "description": format_description(record),
            "teamId": self.team_id,
            "projectId": self.project_id,
            "assigneeId": self.assignee_id,
            "priority": record.priority.tracker_value,
        }
        label_id = self.labels.get(record.label)
        if label_id:
            issue_input["labelIds"] = [label_id]
        else:
            logger.warning("No tracker label id configured", extra={"label": record.label.value})

        data = self._execute(ISSUE_CREATE, {"input": issue_input})
        try:
            payload = data.get("issueCreate") or {}
            issue = payload.get("issue")
            if not payload.get("success") or not issue:
                raise TrackerRejectedError("Tracker did not create the issue")
            ticket = TrackerTicket(
                external_id=issue["id"], identifier=issue["identifier"], url=issue["url"]
            )
        except _MALFORMED as exc:
            raise TrackerRejectedError(f"Malformed issueCreate payload: {exc!r}") from exc
        logger.info(
            "Tracker issue created",
            extra={
                "record_id": record.id,
                "identifier": ticket.identifier,
                "requester_id": record.requester_id,
            },
        )
        return ticket

    def update_status(self, ticket_id: str, status_id: str) -> bool:
        return self._update_issue(ticket_id, {"stateId": status_id})

    def update_assignee(self, ticket_id: str, user_id: str) -> bool:
        return self._update_issue(ticket_id, {"assigneeId": user_id})

    def add_comment(self, ticket_id: str, text: str) -> Optional[TrackerComment]:
        try:
            data = self._execute(COMMENT_CREATE, {"input": {"issueId": ticket_id, "body": text}})
        except TrackerError as exc:
            logger.error("Failed to add comment", extra={"ticket_id": ticket_id, "error": str(exc)})
            return None

        try:
            payload = data.get("commentCreate") or {}
            comment = payload.get("comment")
            if not payload.get("success") or not comment:
                return None
            return TrackerComment(
                id=comment["id"],
                body=comment.get("body", text),
                created_at=comment.get("createdAt"),
                author_name=(comment.get("user") or {}).get("name"),
                issue_identifier=(comment.get("issue") or {}).get("identifier"),
            )
        except _MALFORMED as exc:
            logger.error(
                "Malformed commentCreate payload",
                extra={"ticket_id": ticket_id, "error": repr(exc)},
            )
            return None

    def refresh_labels(self) -> int:
        """Reload label ids from the team's labels; keeps old ids on failure."""
        try:
            data = self._execute(TEAM_LABELS, {"id": self.team_id})
        except TrackerError as exc:
            logger.error("Failed to refresh tracker labels", extra={"error": str(exc)})
            return 0
        try:
            nodes: List[Dict[str, Any]] = (
                ((data.get("team") or {}).get("labels") or {}).get("nodes") or []
            )
            changed = self.labels.refresh(nodes)
        except _MALFORMED as exc:
            logger.error("Malformed team labels payload", extra={"error": repr(exc)})
            return 0
        logger.info("Tracker labels refreshed", extra={"labels": self.labels.as_dict()})
        return changed

    def close(self) -> None:
        self._client.close()

    def _update_issue(self, ticket_id: str, changes: Dict[str, Any]) -> bool:
        try:
            data = self._execute(ISSUE_UPDATE, {"id": ticket_id, "input": changes})
        except TrackerError as exc:
            logger.error(
                "Failed to update issue",
                extra={"ticket_id": ticket_id, "fields": list(changes), "error": str(exc)},
            )
            return False
        payload = data.get("issueUpdate")
        return isinstance(payload, dict) and bool(payload.get("success"))

    def _execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.post(
                self.api_url,
                headers=self._headers,
                json={"query": query, "variables": variables},
            )
        except httpx.TransportError as exc:
            raise TrackerUnavailableError(f"Tracker unreachable: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TrackerUnavailableError(f"Tracker answered {response.status_code}")
        if response.status_code >= 400:
            raise TrackerRejectedError(f"Tracker answered {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise TrackerUnavailableError("Tracker returned a non-JSON body") from exc

        if not isinstance(body, dict):
            raise TrackerRejectedError("Tracker returned a non-object body")
        errors = body.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else None
            message = message or "unknown error"
            raise TrackerRejectedError(f"Tracker error: {message}")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise TrackerRejectedError("Tracker returned a non-object data field")
        return data


class OfflineGateway:
    """
    In-process tracker used when no API key is configured.

    Issues get sequential ``OFF-<n>`` identifiers and nothing leaves the
    process.
    """

    def __init__(self, prefix: str = "OFF"):
        self.prefix = prefix
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self.issues: Dict[str, TrackerTicket] = {}
        self.comments: List[TrackerComment] = []

    def create_ticket(self, record: TicketRecord) -> TrackerTicket:
        with self._lock:
            number = next(self._seq)
            identifier = f"{self.prefix}-{number}"
            ticket = TrackerTicket(
                external_id=f"offline-{number}",
                identifier=identifier,
                url=f"offline://issues/{identifier}",
            )
            self.issues[ticket.external_id] = ticket
        logger.info(
            "Offline issue recorded",
            extra={"record_id": record.id, "identifier": identifier},
        )
        return ticket

    def update_status(self, ticket_id: str, status_id: str) -> bool:
        logger.info("Offline status update", extra={"ticket_id": ticket_id, "status_id": status_id})
        return True

    def update_assignee(self, ticket_id: str, user_id: str) -> bool:
        logger.info("Offline reassignment", extra={"ticket_id": ticket_id, "assignee_id": user_id})
        return True

    def add_comment(self, ticket_id: str, text: str) -> Optional[TrackerComment]:
        with self._lock:
            comment = TrackerComment(
                id=f"offline-comment-{len(self.comments) + 1}",
                body=text,
                issue_identifier=ticket_id,
            )
            self.comments.append(comment)
        return comment

    def refresh_labels(self) -> int:
        return 0
