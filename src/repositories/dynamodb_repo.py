"""DynamoDB session store for deployments without a SQL database."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from models.session import Session, WorkflowState, parse_draft
from utils.error_handling import StorageError
from utils.logging_config import get_logger

logger = get_logger(__name__)

_CONDITION_FAILED = "ConditionalCheckFailedException"


def _ts(value: datetime) -> str:
    # Fixed width so string comparison in condition expressions orders by time.
    return value.isoformat(timespec="microseconds")


class DynamoDbSessionStore:
    """Sessions keyed by ``user_id``; timestamps kept as ISO strings."""

    def __init__(self, table_name: str, table=None):
        self.table = table if table is not None else boto3.resource("dynamodb").Table(table_name)

    def get(self, user_id: str) -> Optional[Session]:
        resp = self._call("get_item", Key={"user_id": user_id}, ConsistentRead=True)
        item = resp.get("Item")
        return _item_to_session(item) if item else None

    def put(self, session: Session) -> None:
        self._call("put_item", Item=_session_to_item(session))

    def update(self, session: Session) -> bool:
        """Conditional overwrite so a swept session is not resurrected."""
        try:
            self._call(
                "put_item",
                Item=_session_to_item(session),
                ConditionExpression="attribute_exists(user_id)",
            )
        except _ConditionFailed:
            return False
        return True

    def delete(self, user_id: str) -> bool:
        resp = self._call("delete_item", Key={"user_id": user_id}, ReturnValues="ALL_OLD")
        return "Attributes" in resp

    def delete_inactive(self, cutoff: datetime, user_id: Optional[str] = None) -> int:
        if user_id is not None:
            return 1 if self._delete_if_inactive(user_id, cutoff) else 0

        removed = 0
        scan_kwargs: Dict[str, Any] = {
            "FilterExpression": Attr("last_activity").lt(_ts(cutoff)),
            "ProjectionExpression": "user_id",
        }
        while True:
            page = self._call("scan", **scan_kwargs)
            for item in page.get("Items", []):
                if self._delete_if_inactive(item["user_id"], cutoff):
                    removed += 1
            last_key = page.get("LastEvaluatedKey")
            if not last_key:
                return removed
            scan_kwargs["ExclusiveStartKey"] = last_key

    def _delete_if_inactive(self, user_id: str, cutoff: datetime) -> bool:
        try:
            self._call(
                "delete_item",
                Key={"user_id": user_id},
                ConditionExpression="last_activity < :cutoff",
                ExpressionAttributeValues={":cutoff": _ts(cutoff)},
            )
        except _ConditionFailed:
            return False
        return True

    def _call(self, method: str, **kwargs) -> Dict[str, Any]:
        try:
            return getattr(self.table, method)(**kwargs)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == _CONDITION_FAILED:
                raise _ConditionFailed() from exc
            logger.error("DynamoDB call failed", extra={"method": method, "error": str(exc)})
            raise StorageError(f"Session table call failed: {method}") from exc
        except BotoCoreError as exc:
            logger.error("DynamoDB unreachable", extra={"method": method, "error": str(exc)})
            raise StorageError(f"Session table unreachable: {method}") from exc


class _ConditionFailed(Exception):
    pass


def _session_to_item(session: Session) -> Dict[str, Any]:
    return {
        "user_id": session.user_id,
        "state": session.state.value,
        "draft": json.dumps(session.draft_dict()),
        "last_activity": _ts(session.last_activity),
        "created_at": _ts(session.created_at),
    }


def _item_to_session(item: Dict[str, Any]) -> Session:
    return Session(
        user_id=item["user_id"],
        state=WorkflowState(item["state"]),
        draft=parse_draft(json.loads(item.get("draft") or "{}")),
        last_activity=datetime.fromisoformat(item["last_activity"]),
        created_at=datetime.fromisoformat(item["created_at"]),
    )
