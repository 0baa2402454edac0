import json

from handlers import main


def _event(method, path):
    return {"requestContext": {"http": {"method": method, "path": path}}}


def test_main_routes_health(monkeypatch):
    monkeypatch.setattr(main.health_check, "lambda_handler", lambda e, c: {"status": "ok"})
    resp = main.lambda_handler(_event("GET", "/health"), None)
    assert resp["status"] == "ok"


def test_main_routes_chat_events(monkeypatch):
    marker = {}

    def fake_handler(event, context):
        marker["called"] = True
        return {"statusCode": 200}

    monkeypatch.setattr(main.chat_events, "lambda_handler", fake_handler)
    resp = main.lambda_handler(_event("POST", "/events"), None)
    assert resp["statusCode"] == 200
    assert marker["called"] is True


def test_main_routes_sweep(monkeypatch):
    monkeypatch.setattr(main.maintenance, "sweep_handler", lambda e, c: {"sweep": True})
    resp = main.lambda_handler(_event("POST", "/maintenance/sweep"), None)
    assert resp["sweep"] is True


def test_main_routes_counter_reset(monkeypatch):
    monkeypatch.setattr(main.maintenance, "reset_counters_handler", lambda e, c: {"reset": True})
    resp = main.lambda_handler(_event("POST", "/maintenance/reset-counters"), None)
    assert resp["reset"] is True


def test_main_routes_retry(monkeypatch):
    monkeypatch.setattr(main.maintenance, "retry_handler", lambda e, c: {"retry": True})
    resp = main.lambda_handler(_event("POST", "/maintenance/retry/rec-1"), None)
    assert resp["retry"] is True


def test_main_routes_failed_listing(monkeypatch):
    monkeypatch.setattr(main.maintenance, "failed_records_handler", lambda e, c: {"failed": True})
    resp = main.lambda_handler(_event("GET", "/maintenance/failed"), None)
    assert resp["failed"] is True


def test_main_routes_usage(monkeypatch):
    monkeypatch.setattr(main.maintenance, "usage_handler", lambda e, c: {"usage": True})
    resp = main.lambda_handler(_event("GET", "/maintenance/usage/u1"), None)
    assert resp["usage"] is True


def test_main_wrong_method_is_not_routed():
    resp = main.lambda_handler(_event("GET", "/events"), None)
    assert resp["statusCode"] == 404


def test_main_unknown_route():
    resp = main.lambda_handler(_event("GET", "/unknown"), None)
    assert resp["statusCode"] == 404
    body = json.loads(resp["body"])
    assert body["message"] == "Route not found"
