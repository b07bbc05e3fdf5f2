import json

import pytest
from fastapi.testclient import TestClient

from swarm_mcp import server as server_mod
from swarm_mcp.bee_api import NotFoundError
from swarm_mcp.config import SwarmConfig
from swarm_mcp.errors import McpError
from swarm_mcp.mcp import (
    MCP_SERVER_NAME,
    MCP_SERVER_VERSION,
    NODE_ONLY_TOOLS,
    TOOL_REGISTRY,
    McpDispatcher,
    call_tool,
    list_tools,
    wrap_tool_result,
)
from swarm_mcp.metrics import default_metrics
from swarm_mcp.rate_limiter import PerKeyRateLimiter
from swarm_mcp.server import app

REFERENCE = "cd" * 32
CONFIG = SwarmConfig(bee_api_url="http://bee.test", auto_assign_stamp=False, node_check_timeout=1)


class StubClient:
    def __init__(self, node_error=None):
        self.node_error = node_error
        self.node_checks = 0
        self.downloads = []

    async def get_node_info(self):
        self.node_checks += 1
        if self.node_error:
            raise self.node_error
        return {"beeMode": "full"}

    async def download_data(self, reference):
        self.downloads.append(reference)
        return b"stored text"

    async def buy_storage(self, size_bytes, seconds, *, label=None):
        return "ef" * 32


@pytest.fixture
def stub_client(monkeypatch):
    client = StubClient()
    monkeypatch.setattr(server_mod, "http_dispatcher", McpDispatcher("http", client=client, config=CONFIG))
    return client


def _post(payload):
    return TestClient(app).post("/mcp", json=payload)


def test_registry_marks_node_only_tools():
    assert len(TOOL_REGISTRY) == 12
    assert NODE_ONLY_TOOLS == {
        "list_postage_stamps",
        "get_postage_stamp",
        "create_postage_stamp",
        "extend_postage_stamp",
        "query_upload_progress",
    }
    gateway_names = {tool["name"] for tool in list_tools(is_gateway=True)}
    assert len(gateway_names) == 7
    assert not gateway_names & NODE_ONLY_TOOLS
    assert len(list_tools()) == 12
    assert all(tool["inputSchema"]["type"] == "object" for tool in list_tools())


@pytest.mark.asyncio
async def test_call_tool_maps_camel_case_and_ignores_unknown():
    client = StubClient()
    result = await call_tool("download_data", {"reference": REFERENCE, "somethingElse": 1}, client=client, config=CONFIG)
    assert result == {"textData": "stored text"}
    assert client.downloads == [REFERENCE]


@pytest.mark.asyncio
async def test_call_tool_unknown_tool():
    with pytest.raises(McpError) as excinfo:
        await call_tool("does_not_exist", {})
    assert excinfo.value.code == -32601
    assert excinfo.value.message == "Unknown tool: does_not_exist"


def test_wrap_tool_result():
    assert wrap_tool_result("plain") == {"content": [{"type": "text", "text": "plain"}]}
    wrapped = wrap_tool_result({"a": 1})
    assert wrapped["structuredContent"] == {"a": 1}
    assert json.loads(wrapped["content"][0]["text"]) == {"a": 1}


def test_mcp_initialize(stub_client):
    resp = _post(
        {
            "jsonrpc": "2.0",
            "id": 10,
            "method": "initialize",
            "params": {
                "protocolVersion": "2025-03-26",
                "capabilities": {},
                "clientInfo": {"name": "test-client", "version": "0.0.0"},
            },
        }
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == 10
    result = data["result"]
    assert result["protocolVersion"] == "2025-03-26"
    assert result["serverInfo"] == {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION}
    assert result["capabilities"]["tools"]["listChanged"] is False


def test_mcp_initialize_requires_protocol_version(stub_client):
    data = _post({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}).json()
    assert data["error"]["code"] == -32602


def test_mcp_ping(stub_client):
    assert _post({"jsonrpc": "2.0", "id": 2, "method": "ping"}).json() == {"jsonrpc": "2.0", "id": 2, "result": {}}


def test_mcp_tools_list_on_full_node(stub_client):
    resp = _post({"jsonrpc": "2.0", "id": 3, "method": "tools/list"})
    assert resp.status_code == 200
    names = {tool["name"] for tool in resp.json()["result"]["tools"]}
    assert names == set(TOOL_REGISTRY)


def test_mcp_tools_list_on_gateway_is_cached(monkeypatch):
    client = StubClient(node_error=NotFoundError("no /node on gateways"))
    monkeypatch.setattr(server_mod, "http_dispatcher", McpDispatcher("http", client=client, config=CONFIG))

    for rpc_id in (1, 2):
        data = _post({"jsonrpc": "2.0", "id": rpc_id, "method": "list_tools"}).json()
        names = {tool["name"] for tool in data["result"]["tools"]}
        assert not names & NODE_ONLY_TOOLS
        assert "upload_data" in names
    assert client.node_checks == 1


def test_mcp_tools_call_returns_structured_content(stub_client):
    resp = _post(
        {
            "jsonrpc": "2.0",
            "id": 4,
            "method": "tools/call",
            "params": {"name": "download_data", "arguments": {"reference": REFERENCE}},
        }
    )
    assert resp.status_code == 200
    result = resp.json()["result"]
    assert result["structuredContent"] == {"textData": "stored text"}
    assert result["content"][0]["type"] == "text"
    assert default_metrics.snapshot()["tool_success"] == {"download_data": 1}


def test_mcp_call_tool_string_result_has_no_structured_content(stub_client):
    resp = _post(
        {
            "jsonrpc": "2.0",
            "id": 5,
            "method": "call_tool",
            "params": {"tool": "create_postage_stamp", "params": {"size": 1, "duration": "1d"}},
        }
    )
    result = resp.json()["result"]
    assert result == {"content": [{"type": "text", "text": "Postage batch ID: " + "ef" * 32}]}


def test_mcp_tool_error_is_jsonrpc_error(stub_client):
    data = _post(
        {"jsonrpc": "2.0", "id": 6, "method": "tools/call", "params": {"name": "download_data", "arguments": {}}}
    ).json()
    assert data["error"] == {"code": -32602, "message": "Missing required parameter: reference"}
    assert default_metrics.snapshot()["tool_error"] == {"download_data": 1}


def test_mcp_unknown_method_returns_error(stub_client):
    data = _post({"jsonrpc": "2.0", "id": 7, "method": "not_a_real_method"}).json()
    assert data["error"]["code"] == -32601


def test_mcp_invalid_params_type(stub_client):
    data = _post({"jsonrpc": "2.0", "id": 11, "method": "call_tool", "params": []}).json()
    assert data["id"] == 11
    assert data["error"]["code"] == -32602


def test_mcp_notification_is_accepted(stub_client):
    resp = _post({"jsonrpc": "2.0", "method": "notifications/initialized"})
    assert resp.status_code == 202
    assert resp.content == b""


def test_mcp_parse_error_invalid_json():
    resp = TestClient(app).post("/mcp", content="{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == -32700


def test_mcp_non_object_body():
    resp = _post([{"jsonrpc": "2.0", "id": 1, "method": "ping"}])
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == -32600


def test_mcp_get_not_allowed():
    resp = TestClient(app).get("/mcp")
    assert resp.status_code == 405
    assert resp.headers["allow"] == "POST"


def test_mcp_rate_limited(stub_client, monkeypatch):
    monkeypatch.setattr(server_mod, "rate_limiter", PerKeyRateLimiter(rate_per_sec=0.001, burst=1))
    assert _post({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}).status_code == 200
    resp = _post({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == 429
    # ping is never limited
    assert _post({"jsonrpc": "2.0", "id": 3, "method": "ping"}).status_code == 200
    assert default_metrics.snapshot()["rate_limited"] == 1
