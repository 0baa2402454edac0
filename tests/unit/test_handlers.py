"""
Handler tests with a fully wired in-memory container.

Run with: pytest tests/unit/test_handlers.py -v
"""

import json
import sys
from pathlib import Path

import pytest

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from config.settings import Settings  # noqa: E402
from handlers import chat_events, maintenance  # noqa: E402
from services.container import ServiceContainer, set_container  # noqa: E402
from utils.error_handling import TrackerUnavailableError  # noqa: E402


@pytest.fixture
def container(stack):
    built = ServiceContainer(
        settings=Settings(),
        sessions=stack.sessions,
        rate_limiter=stack.rate_limiter,
        submitter=stack.submitter,
        gateway=stack.gateway,
        workflow=stack.workflow,
    )
    set_container(built)
    yield built
    set_container(None)


def post(payload):
    return chat_events.lambda_handler({"body": json.dumps(payload)}, None)


class TestChatEvents:
    def test_start_creation(self, container):
        resp = post({"type": "start_creation", "user_id": "u1"})
        assert resp["statusCode"] == 200
        body = json.loads(resp["body"])
        assert body["outcome"] == "accepted"
        assert body["state"] == "AWAITING_CATEGORY"
        assert body["effects"][0]["type"] == "prompt"
        assert body["effects"][0]["action"] == "category"

    def test_selection_round_trip(self, container):
        post({"type": "start_creation", "user_id": "u1"})
        resp = post({"type": "selection", "user_id": "u1", "action": "category", "value": "Bug"})
        assert json.loads(resp["body"])["state"] == "AWAITING_TITLE"

    def test_event_without_session(self, container):
        resp = post({"type": "text", "user_id": "u1", "text": "hello there"})
        assert resp["statusCode"] == 200
        assert json.loads(resp["body"])["outcome"] == "session_not_found"

    def test_malformed_json(self, container):
        resp = chat_events.lambda_handler({"body": "{not json"}, None)
        assert resp["statusCode"] == 400
        assert "correlation_id" in json.loads(resp["body"])

    def test_unknown_event_type(self, container):
        resp = post({"type": "shout", "user_id": "u1"})
        assert resp["statusCode"] == 400
        assert json.loads(resp["body"])["message"] == "Invalid event"

    def test_missing_user(self, container):
        assert post({"type": "cancel"})["statusCode"] == 400


class TestMaintenance:
    def test_sweep(self, container, stack, clock):
        stack.sessions.create("old")
        clock.advance(hours=1)
        resp = maintenance.sweep_handler({}, None)
        assert resp["statusCode"] == 200
        assert json.loads(resp["body"])["removed"] == 1

    def test_reset_counters(self, container, stack):
        stack.rate_limiter.increment("u1")
        resp = maintenance.reset_counters_handler({}, None)
        assert json.loads(resp["body"])["reset"] == 1
        assert stack.rate_limiter.count_today("u1") == 0

    def test_retry_failed_record(self, container, stack, gateway, complete_draft):
        gateway.fail_with = TrackerUnavailableError()
        record = stack.submitter.submit("u1", complete_draft).record
        gateway.fail_with = None

        event = {
            "requestContext": {"http": {"method": "POST", "path": f"/maintenance/retry/{record.id}"}}
        }
        resp = maintenance.retry_handler(event, None)
        body = json.loads(resp["body"])
        assert resp["statusCode"] == 200
        assert body["status"] == "ok"
        assert body["record"]["status"] == "created"

    def test_retry_uses_path_parameters(self, container):
        resp = maintenance.retry_handler({"pathParameters": {"record_id": "missing"}}, None)
        assert resp["statusCode"] == 404

    def test_retry_of_created_record_conflicts(self, container, stack, complete_draft):
        record = stack.submitter.submit("u1", complete_draft).record
        resp = maintenance.retry_handler({"pathParameters": {"record_id": record.id}}, None)
        assert resp["statusCode"] == 409

    def test_retry_without_id(self, container):
        resp = maintenance.retry_handler(
            {"requestContext": {"http": {"method": "POST", "path": "/maintenance/retry/"}}}, None
        )
        assert resp["statusCode"] == 400

    def test_failed_records_listing(self, container, stack, gateway, complete_draft):
        gateway.fail_with = TrackerUnavailableError()
        failed = stack.submitter.submit("u1", complete_draft).record
        gateway.fail_with = None

        resp = maintenance.failed_records_handler({}, None)
        body = json.loads(resp["body"])
        assert resp["statusCode"] == 200
        assert body["count"] == 1
        assert body["records"][0]["id"] == failed.id
        assert body["records"][0]["status"] == "failed"

    def test_failed_records_rejects_bad_limit(self, container):
        resp = maintenance.failed_records_handler({"queryStringParameters": {"limit": "many"}}, None)
        assert resp["statusCode"] == 400

    def test_usage_reports_counts(self, container, stack):
        stack.rate_limiter.increment("u1")
        stack.rate_limiter.increment("u1")
        stack.rate_limiter.reset_all()
        stack.rate_limiter.increment("u1")

        event = {"requestContext": {"http": {"method": "GET", "path": "/maintenance/usage/u1"}}}
        body = json.loads(maintenance.usage_handler(event, None)["body"])
        assert body == {"user_id": "u1", "tickets_today": 1, "tickets_total": 3, "limit": 5}

    def test_usage_without_user(self, container):
        assert maintenance.usage_handler({}, None)["statusCode"] == 400
