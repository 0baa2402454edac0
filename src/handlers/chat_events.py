"""
Chat event handler.

The chat transport posts one inbound event per user action (text message
or button press). The body is validated into a typed event, handed to the
workflow, and the resulting effects are returned for the transport to
render.
"""

from __future__ import annotations

import json
import time
import uuid

from pydantic import TypeAdapter, ValidationError

from models.events import InboundEvent
from utils.logging_config import get_logger

logger = get_logger(__name__)

_event_adapter: TypeAdapter = TypeAdapter(InboundEvent)


def _get_workflow():
    """Lazy-load the workflow so cold imports stay cheap."""
    from services.container import get_container

    return get_container().workflow


def lambda_handler(event, context):
    """Handle POST /events."""
    start = time.perf_counter()
    correlation_id = str(uuid.uuid4())

    try:
        payload = json.loads(event.get("body") or "{}")
        inbound = _event_adapter.validate_python(payload)
    except (ValueError, ValidationError) as exc:
        logger.warning(
            "Rejected malformed chat event",
            extra={"correlation_id": correlation_id, "error": str(exc)},
        )
        return {
            "statusCode": 400,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(
                {
                    "message": "Invalid event",
                    "error": str(exc),
                    "correlation_id": correlation_id,
                }
            ),
        }

    result = _get_workflow().handle(inbound)
    logger.info(
        "Chat event handled",
        extra={
            "correlation_id": correlation_id,
            "user_id": inbound.user_id,
            "event": inbound.type,
            "outcome": result.outcome.value,
            "processing_time_ms": int((time.perf_counter() - start) * 1000),
        },
    )
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": result.model_dump_json(),
    }
