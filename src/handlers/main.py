"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

One function keeps the service container warm across routes: the engine,
session store and tracker client are built once per process.
"""

from typing import Callable, Dict, Tuple
import json

from . import chat_events, health_check, maintenance


def _response(status: int, body: Dict) -> Dict:
    """Format a JSON API Gateway HTTP API response."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context):
    """Entry point invoked by API Gateway HTTP API."""
    method = event.get("requestContext", {}).get("http", {}).get("method", "")
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    route_key = f"{method.upper()} {path}"

    # Prefix match; retry and usage routes carry an id in their path.
    route_table: Tuple[Tuple[str, Callable], ...] = (
        ("GET /health", health_check.lambda_handler),
        ("POST /events", chat_events.lambda_handler),
        ("POST /maintenance/sweep", maintenance.sweep_handler),
        ("POST /maintenance/reset-counters", maintenance.reset_counters_handler),
        ("POST /maintenance/retry/", maintenance.retry_handler),
        ("GET /maintenance/failed", maintenance.failed_records_handler),
        ("GET /maintenance/usage/", maintenance.usage_handler),
    )

    for prefix, handler in route_table:
        if route_key.startswith(prefix):
            return handler(event, context)

    return _response(404, {"message": "Route not found", "route": route_key})
