from __future__ import annotations

import asyncio
import json
from typing import Any, Dict

from fastapi.testclient import TestClient

from vectorize_mcp.router import ToolRouter
from vectorize_mcp.server import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    McpProtocol,
    SseSessions,
    create_app,
)

from conftest import FakeVectorizeClient, make_settings, pending


def _app(**overrides: Any):
    fake = FakeVectorizeClient()
    app = create_app(make_settings(**overrides), client=fake)
    return app, fake


def _rpc(client: TestClient, body: Dict[str, Any], session_id: str = "s-1"):
    return client.post(f"/messages?session_id={session_id}", json=body)


def test_health():
    app, _ = _app(default_pipeline_id="p1")
    client = TestClient(app)

    r = client.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["service"] == "vectorize-mcp"
    assert body["default_pipeline_configured"] is True


def test_initialize_and_list_tools():
    app, _ = _app()
    client = TestClient(app)

    r = _rpc(client, {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": PROTOCOL_VERSION}})
    result = r.json()["result"]
    assert result["protocolVersion"] == PROTOCOL_VERSION
    assert result["serverInfo"]["name"] == "vectorize-mcp"
    assert "tools" in result["capabilities"] and "logging" in result["capabilities"]

    r = _rpc(client, {"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    tools = r.json()["result"]["tools"]
    assert [t["name"] for t in tools] == ["retrieve", "extract", "deep-research"]


def test_notifications_get_no_jsonrpc_response():
    app, _ = _app()
    client = TestClient(app)

    r = _rpc(client, {"jsonrpc": "2.0", "method": "notifications/initialized"})

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_ping_and_set_level():
    app, _ = _app()
    client = TestClient(app)

    assert _rpc(client, {"jsonrpc": "2.0", "id": "a", "method": "ping"}).json()["result"] == {}
    r = _rpc(client, {"jsonrpc": "2.0", "id": "b", "method": "logging/setLevel", "params": {"level": "debug"}})
    assert r.json()["result"] == {}


def test_unknown_method_and_missing_method():
    app, _ = _app()
    client = TestClient(app)

    r = _rpc(client, {"jsonrpc": "2.0", "id": 3, "method": "resources/list"})
    assert r.json()["error"]["code"] == METHOD_NOT_FOUND

    r = _rpc(client, {"jsonrpc": "2.0", "id": 4})
    assert r.json()["error"]["code"] == INVALID_REQUEST


def test_non_object_body_rejected():
    app, _ = _app()
    client = TestClient(app)

    r = client.post("/messages?session_id=s-1", json=[1, 2, 3])

    assert r.status_code == 400
    assert r.json()["error"]["code"] == INVALID_REQUEST


def test_tools_call_success_and_tool_error():
    app, fake = _app(default_pipeline_id="p1")
    client = TestClient(app)

    r = _rpc(
        client,
        {"jsonrpc": "2.0", "id": 5, "method": "tools/call", "params": {"name": "retrieve", "arguments": {"question": "q"}}},
    )
    result = r.json()["result"]
    assert result["isError"] is False
    assert fake.calls == [("retrieve_documents", ("p1", "q", 4))]

    r = _rpc(client, {"jsonrpc": "2.0", "id": 6, "method": "tools/call", "params": {"name": "bogus-tool", "arguments": {}}})
    result = r.json()["result"]
    assert result["isError"] is True
    assert result["content"][0]["text"] == "Request failed: Tool not found: bogus-tool"


def test_tools_call_bad_params():
    app, _ = _app()
    client = TestClient(app)

    r = _rpc(client, {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"arguments": {}}})
    assert r.json()["error"]["code"] == INVALID_PARAMS

    r = _rpc(client, {"jsonrpc": "2.0", "id": 8, "method": "tools/call", "params": {"name": "retrieve", "arguments": "q"}})
    assert r.json()["error"]["code"] == INVALID_PARAMS


def test_direct_tool_endpoint():
    app, fake = _app(default_pipeline_id="p1")
    client = TestClient(app)

    r = client.post("/tools/retrieve", json={"question": "q", "k": 2})
    assert r.status_code == 200
    assert r.json()["isError"] is False
    assert fake.calls == [("retrieve_documents", ("p1", "q", 2))]

    r = client.post("/tools/bogus", json={})
    assert r.status_code == 404


def test_shutdown_closes_client():
    app, fake = _app()

    with TestClient(app) as client:
        client.get("/health")

    assert fake.closed is True


def test_cancelled_notification_stops_polling_call():
    fake = FakeVectorizeClient(research_statuses=[pending()])
    settings = make_settings(default_pipeline_id="p1", poll_interval_s=30.0)
    protocol = McpProtocol(ToolRouter(settings, fake))

    async def _go():
        call = asyncio.create_task(
            protocol.handle(
                {
                    "jsonrpc": "2.0",
                    "id": 42,
                    "method": "tools/call",
                    "params": {"name": "deep-research", "arguments": {"query": "x", "webSearch": True}},
                },
                session_id="s-1",
            )
        )
        await asyncio.sleep(0.05)
        ack = await protocol.handle(
            {"jsonrpc": "2.0", "method": "notifications/cancelled", "params": {"requestId": 42}},
            session_id="s-1",
        )
        assert ack is None
        return await asyncio.wait_for(call, timeout=5.0)

    response = asyncio.run(_go())

    result = response["result"]
    assert response["id"] == 42
    assert result["isError"] is True
    assert "cancelled" in result["content"][0]["text"]


def test_cancel_is_scoped_to_session():
    fake = FakeVectorizeClient()
    protocol = McpProtocol(ToolRouter(make_settings(), fake))

    assert asyncio.run(protocol.cancel("other-session", 42)) is False


def test_reused_request_id_rejected_while_in_flight():
    fake = FakeVectorizeClient(research_statuses=[pending()])
    settings = make_settings(default_pipeline_id="p1", poll_interval_s=30.0)
    protocol = McpProtocol(ToolRouter(settings, fake))
    call = {
        "jsonrpc": "2.0",
        "id": 7,
        "method": "tools/call",
        "params": {"name": "deep-research", "arguments": {"query": "x", "webSearch": True}},
    }

    async def _go():
        first = asyncio.create_task(protocol.handle(call, session_id="s-1"))
        await asyncio.sleep(0.05)
        duplicate = await protocol.handle(call, session_id="s-1")
        other_session = asyncio.create_task(protocol.handle(call, session_id="s-2"))
        await asyncio.sleep(0.05)

        assert await protocol.cancel("s-1", 7) is True
        first_response = await asyncio.wait_for(first, timeout=5.0)
        assert not other_session.done()
        assert await protocol.cancel("s-2", 7) is True
        await asyncio.wait_for(other_session, timeout=5.0)
        return duplicate, first_response

    duplicate, first_response = asyncio.run(_go())

    assert duplicate["error"]["code"] == INVALID_REQUEST
    assert "already in flight" in duplicate["error"]["message"]
    assert "cancelled" in first_response["result"]["content"][0]["text"]


def test_sse_sessions_publish_only_to_connected_streams():
    sessions = SseSessions()

    async def _go():
        dropped = await sessions.publish("nobody", {"jsonrpc": "2.0", "id": 1, "result": {}})

        stream = sessions.stream("s-1")
        first = await stream.__anext__()
        await sessions.notifier("s-1")("info", "hello")
        second = await stream.__anext__()
        await stream.aclose()
        after_close = await sessions.publish("s-1", {"jsonrpc": "2.0", "id": 2, "result": {}})
        return dropped, first, second, after_close

    dropped, first, second, after_close = asyncio.run(_go())

    assert dropped is False
    assert first == {"event": "endpoint", "data": "/messages?session_id=s-1"}
    assert second["event"] == "message"
    message = json.loads(second["data"])
    assert message["method"] == "notifications/message"
    assert message["params"]["level"] == "info"
    assert message["params"]["data"] == "hello"
    assert after_close is False
