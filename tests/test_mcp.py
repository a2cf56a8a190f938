"""Unit tests for the MCP gateway dispatcher."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date

import pytest

from taskgate import __version__ as PACKAGE_VERSION
from taskgate.config import ServerConfig
from taskgate.mcp.server import MCPError, MCPGateway
from taskgate.repository import MemoryTaskRepository, RepositoryError


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class DummyRepository(MemoryTaskRepository):
    """Memory repository whose deletes always fail."""

    async def delete_task(self, args):
        raise RepositoryError("not found")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def gateway(clock):
    repository = DummyRepository(
        [{"id": "T1", "content": "Write report", "priority": 3}],
        today=date(2025, 8, 15),
    )
    config = ServerConfig(auth_token="secret", instance_id="app-1")
    return MCPGateway(lambda: repository, config, clock=clock)


def _run(coro):
    return asyncio.run(coro)


def _request(method, params=None, message_id=1):
    message = {"jsonrpc": "2.0", "id": message_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def _initialize(gateway) -> str:
    outcome = _run(
        gateway.dispatch(_request("initialize", {"protocolVersion": "2025-06-18"}))
    )
    assert outcome.session_header
    return outcome.session_header


def _call_tool(gateway, session_id, name, arguments):
    outcome = _run(
        gateway.dispatch(
            _request("tools/call", {"name": name, "arguments": arguments}), session_id
        )
    )
    return outcome.envelope


def _tool_payload(envelope):
    return json.loads(envelope["result"]["content"][0]["text"])


def test_initialize_creates_session_out_of_band(gateway):
    outcome = _run(
        gateway.dispatch(
            _request(
                "initialize",
                {
                    "protocolVersion": "2024-11-05",
                    "clientInfo": {"name": "client", "version": "1.0"},
                },
            )
        )
    )

    result = outcome.envelope["result"]
    assert outcome.session_header in gateway.sessions
    assert "sessionId" not in result
    assert "_sessionId" not in outcome.envelope
    assert result["protocolVersion"] == "2024-11-05"
    assert result["serverInfo"] == {"name": "taskgate", "version": PACKAGE_VERSION}
    assert set(result["capabilities"]) >= {"tools", "resources", "prompts"}


def test_initialize_offers_latest_version_for_unknown_requests(gateway):
    outcome = _run(gateway.dispatch(_request("initialize", {"protocolVersion": "1999-01-01"})))
    assert outcome.envelope["result"]["protocolVersion"] == "2025-06-18"


def test_every_initialize_creates_a_new_session(gateway):
    first = _initialize(gateway)
    second = _initialize(gateway)
    assert first != second
    assert len(gateway.sessions) == 2


def test_scenario_list_tools_by_category(gateway):
    session_id = _initialize(gateway)

    envelope = _call_tool(gateway, session_id, "mcp_list_tools", {"category": "query"})

    items = _tool_payload(envelope)
    assert items
    for item in items:
        assert set(item) == {"name", "title", "description", "category"}
        assert item["category"] == "query"


def test_scenario_update_task_projection(gateway):
    session_id = _initialize(gateway)

    envelope = _call_tool(
        gateway,
        session_id,
        "update_task",
        {"taskId": "T1", "updates": {"completed": True}, "fields": ["id", "completed"]},
    )

    assert _tool_payload(envelope)["task"] == {"id": "T1", "completed": True}


def test_scenario_business_error_is_a_successful_envelope(gateway):
    session_id = _initialize(gateway)

    envelope = _call_tool(gateway, session_id, "delete_task", {"taskId": "does-not-exist"})

    assert "error" not in envelope
    assert envelope["result"]["isError"] is True
    assert _tool_payload(envelope) == {"success": False, "error": "not found"}
    entry = gateway.logs[0]
    assert entry.tool_name == "delete_task"
    assert entry.error == "not found"
    assert entry.session_id == session_id


def test_unknown_tool_is_a_protocol_error(gateway):
    session_id = _initialize(gateway)

    envelope = _call_tool(gateway, session_id, "not_a_tool", {})

    assert "result" not in envelope
    assert envelope["error"] == {"code": -32602, "message": "Tool not found: not_a_tool"}
    assert gateway.logs[0].error == "Tool not found: not_a_tool"


def test_tools_call_validates_params(gateway):
    session_id = _initialize(gateway)

    missing_name = _run(gateway.dispatch(_request("tools/call", {"arguments": {}}), session_id))
    bad_arguments = _run(
        gateway.dispatch(
            _request("tools/call", {"name": "query_tasks", "arguments": []}), session_id
        )
    )

    assert missing_name.envelope["error"]["code"] == -32602
    assert bad_arguments.envelope["error"]["message"] == "arguments must be an object"


def test_scenario_missing_session_is_a_protocol_error(gateway):
    outcome = _run(gateway.dispatch(_request("tools/list")))

    error = outcome.envelope["error"]
    assert error["code"] == -32603
    assert "session" in error["message"].lower()


def test_session_expires_after_idle_window(gateway, clock):
    session_id = _initialize(gateway)

    clock.now += 1800
    ok = _run(gateway.dispatch(_request("tools/list"), session_id))
    assert "tools" in ok.envelope["result"]

    clock.now += 3601
    gateway.sessions.sweep()
    expired = _run(gateway.dispatch(_request("tools/list"), session_id))
    assert expired.envelope["error"]["message"] == "Invalid or expired session"


def test_tools_list_returns_full_catalog(gateway):
    session_id = _initialize(gateway)
    tools = _run(gateway.dispatch(_request("tools/list"), session_id)).envelope["result"]["tools"]
    assert len(tools) == 23
    assert all("inputSchema" in tool for tool in tools)


def test_prompts(gateway):
    session_id = _initialize(gateway)

    listed = _run(gateway.dispatch(_request("prompts/list"), session_id))
    names = [prompt["name"] for prompt in listed.envelope["result"]["prompts"]]
    assert names == [
        "daily_review",
        "weekly_planning",
        "project_overview",
        "overdue_tasks",
        "task_search",
    ]

    rendered = _run(
        gateway.dispatch(
            _request(
                "prompts/get",
                {"name": "task_search", "arguments": {"query": "report", "priority": "2"}},
            ),
            session_id,
        )
    ).envelope["result"]
    text = rendered["messages"][0]["content"]["text"]
    assert rendered["title"] == "Advanced Task Search"
    assert text.startswith('Search for tasks matching: "report" with priority 2.')

    missing = _run(gateway.dispatch(_request("prompts/get", {"name": "nope"}), session_id))
    assert missing.envelope["error"] == {"code": -32602, "message": "Prompt not found: nope"}


def test_resources(gateway):
    session_id = _initialize(gateway)
    listed = _run(gateway.dispatch(_request("resources/list"), session_id))
    assert listed.envelope["result"] == {"resources": []}

    read = _run(gateway.dispatch(_request("resources/read", {"uri": "x"}), session_id))
    assert read.envelope["error"]["message"] == "No resources available"


def test_unknown_method(gateway):
    session_id = _initialize(gateway)
    outcome = _run(gateway.dispatch(_request("bogus/method"), session_id))
    assert outcome.envelope["error"] == {"code": -32601, "message": "Method not found: bogus/method"}


def test_envelope_validation(gateway):
    wrong_version = _run(gateway.dispatch({"jsonrpc": "1.0", "id": 1, "method": "ping"}))
    not_object = _run(gateway.dispatch(["not", "an", "object"]))
    bad_params = _run(gateway.dispatch({"jsonrpc": "2.0", "id": 2, "method": "ping", "params": [1]}))

    assert wrong_version.envelope["error"]["code"] == -32600
    assert not_object.envelope["error"]["code"] == -32600
    assert bad_params.envelope["error"]["code"] == -32602
    assert bad_params.envelope["id"] == 2


def test_notifications_have_no_envelope(gateway):
    outcome = _run(
        gateway.dispatch({"jsonrpc": "2.0", "method": "notifications/initialized"})
    )
    assert outcome.is_notification
    assert outcome.envelope is None


def test_ping_and_set_level(gateway):
    session_id = _initialize(gateway)
    package_logger = logging.getLogger("taskgate")
    previous = package_logger.level
    try:
        assert _run(gateway.dispatch(_request("ping"), session_id)).envelope["result"] == {}
        outcome = _run(
            gateway.dispatch(_request("logging/setLevel", {"level": "warn"}), session_id)
        )
        assert outcome.envelope["result"] == {}
        assert package_logger.level == logging.WARNING

        invalid = _run(
            gateway.dispatch(_request("logging/setLevel", {"level": "loud"}), session_id)
        )
        assert invalid.envelope["error"]["code"] == -32602
    finally:
        package_logger.setLevel(previous)
        logging.getLogger().setLevel(logging.WARNING)


def test_internal_errors_are_wrapped(gateway, monkeypatch):
    session_id = _initialize(gateway)

    async def explode(_params, _session_id):
        raise RuntimeError("boom")

    monkeypatch.setitem(gateway._methods, "tools/list", explode)

    outcome = _run(gateway.dispatch(_request("tools/list", message_id=9), session_id))

    assert outcome.envelope == {
        "jsonrpc": "2.0",
        "id": 9,
        "error": {"code": -32603, "message": "Internal error", "data": {"detail": "boom"}},
    }


def test_update_config_reaches_every_component(gateway):
    gateway.update_config(tool_timeout=5, auth_token="rotated", session_idle_timeout=10)

    assert gateway.executor.tool_timeout == 5
    assert gateway.gatekeeper.config.auth_token == "rotated"
    assert gateway.sessions.idle_timeout == 10
    with pytest.raises(KeyError):
        gateway.update_config(unknown=True)


def test_update_config_applies_any_known_level_name(gateway):
    package_logger = logging.getLogger("taskgate")
    previous = package_logger.level
    try:
        gateway.update_config(log_level="critical")
        assert package_logger.level == logging.CRITICAL
        gateway.update_config(log_level="trace")
        assert package_logger.level == logging.DEBUG
        with pytest.raises(ValueError):
            gateway.update_config(log_level="chatty")
        assert gateway.config.log_level == "trace"
    finally:
        package_logger.setLevel(previous)


def test_health_and_describe(gateway, clock):
    _initialize(gateway)
    clock.now += 2.5
    gateway.record_request()

    health = gateway.health()
    assert health == {"status": "healthy", "uptime": 2500, "requestCount": 1, "sessions": 1}
    assert gateway.describe()["endpoints"] == {"mcp": "/mcp", "health": "/health", "logs": "/logs"}


def test_mcp_error_to_dict():
    assert MCPError(-32602, "bad").to_dict() == {"code": -32602, "message": "bad"}
    assert MCPError(-32602, "bad", {"x": 1}).to_dict()["data"] == {"x": 1}
