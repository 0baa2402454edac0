"""Health check handler."""

import os
import json

from utils.clock import utcnow


def lambda_handler(event, context):
    """Report liveness plus which tracker mode the process would use."""
    tracker = "linear" if os.environ.get("LINEAR_API_KEY") else "offline"
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(
            {
                "status": "ok",
                "environment": os.environ.get("ENVIRONMENT", "dev"),
                "session_backend": os.environ.get("SESSION_BACKEND", "sql"),
                "tracker": tracker,
                "timestamp": utcnow().isoformat() + "Z",
            }
        ),
    }
