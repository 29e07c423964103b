import pytest

from mcpclient.client import (
    Client,
    JSONRPCNotification,
    JSONRPCRequest,
    MCPError,
    NotInitializedError,
    RPCError,
    Transport,
    TransportError,
)


class FakeTransport(Transport):
    def __init__(self, responder=None):
        self.responder = responder or (lambda req: {"jsonrpc": "2.0", "id": req.id, "result": {}})
        self.requests = []
        self.notifications = []
        self.handler = None
        self.started = False
        self.closed = False
        self.fail_notifications = False

    def start(self):
        self.started = True

    def send_request(self, request):
        self.requests.append(request)
        return self.responder(request)

    def send_notification(self, notification):
        if self.fail_notifications:
            raise OSError("pipe closed")
        self.notifications.append(notification)

    def set_notification_handler(self, handler):
        self.handler = handler

    def close(self):
        self.closed = True


def mock_server(request):
    results = {
        "initialize": {
            "protocolVersion": "1.0",
            "serverInfo": {"name": "mock-server", "version": "1.0.0"},
            "capabilities": {"tools": {"listChanged": True}},
        },
        "tools/list": {"tools": [{"name": "test-tool", "inputSchema": {"type": "object"}}]},
        "tools/call": {"content": [{"type": "text", "text": "tool result"}]},
        "prompts/get": {"messages": [{"role": "assistant", "content": {"type": "text", "text": "test message"}}]},
        "completion/complete": {"completion": {"values": ["test completion"]}},
        "resources/read": {"contents": [{"text": "test content", "uri": "test://resource"}]},
    }
    if request.method in results:
        return {"jsonrpc": "2.0", "id": request.id, "result": results[request.method]}
    if request.method in ("ping", "resources/subscribe", "resources/unsubscribe", "logging/setLevel"):
        return {"jsonrpc": "2.0", "id": request.id, "result": {}}
    return {"jsonrpc": "2.0", "id": request.id, "error": {"code": -32601, "message": "Method not found"}}


def make_client(responder=mock_server):
    transport = FakeTransport(responder)
    client = Client(transport)
    client.start()
    client.initialize("1.0", {"name": "test-client", "version": "1.0.0"})
    return client, transport


def test_request_before_initialize_fails():
    transport = FakeTransport(mock_server)
    client = Client(transport)
    client.start()
    with pytest.raises(NotInitializedError, match="client not initialized"):
        client.list_tools()
    assert transport.requests == []


def test_start_without_transport_raises():
    with pytest.raises(MCPError):
        Client(None).start()


def test_initialize_sends_params_and_notification():
    client, transport = make_client()
    init = transport.requests[0]
    assert init.method == "initialize"
    assert init.params == {
        "protocolVersion": "1.0",
        "clientInfo": {"name": "test-client", "version": "1.0.0"},
        "capabilities": {},
    }
    assert [n.method for n in transport.notifications] == ["notifications/initialized"]
    assert client.server_capabilities == {"tools": {"listChanged": True}}


def test_initialize_result_returned():
    transport = FakeTransport(mock_server)
    client = Client(transport)
    client.start()
    result = client.initialize("1.0", {"name": "test-client", "version": "1.0.0"})
    assert result["serverInfo"]["name"] == "mock-server"


def test_initialized_notification_failure():
    transport = FakeTransport(mock_server)
    transport.fail_notifications = True
    client = Client(transport)
    client.start()
    with pytest.raises(MCPError, match="failed to send initialized notification"):
        client.initialize("1.0", {"name": "test-client", "version": "1.0.0"})
    with pytest.raises(NotInitializedError):
        client.ping()


def test_request_ids_increase():
    client, transport = make_client()
    client.ping()
    client.ping()
    ids = [r.id for r in transport.requests]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_basic_requests():
    client, transport = make_client()
    assert len(client.list_tools()["tools"]) == 1
    assert len(client.call_tool("test-tool", {"param1": "value1"})["content"]) == 1
    assert len(client.get_prompt("test-prompt")["messages"]) == 1
    assert len(client.read_resource("test://resource")["contents"]) == 1
    result = client.complete({"type": "ref/prompt", "name": "test-prompt"}, "test-arg", "test-value")
    assert result["completion"]["values"] == ["test completion"]


def test_request_params_shape():
    client, transport = make_client()
    client.call_tool("test-tool", {"param1": "value1"})
    client.subscribe("test://resource")
    client.unsubscribe("test://resource")
    client.set_level("info")
    client.complete({"type": "ref/prompt", "name": "test-prompt"}, "test-arg", "test-value")
    sent = {r.method: r.params for r in transport.requests}
    assert sent["tools/call"] == {"name": "test-tool", "arguments": {"param1": "value1"}}
    assert sent["resources/subscribe"] == {"uri": "test://resource"}
    assert sent["resources/unsubscribe"] == {"uri": "test://resource"}
    assert sent["logging/setLevel"] == {"level": "info"}
    assert sent["completion/complete"]["argument"] == {"name": "test-arg", "value": "test-value"}


def test_ping_has_no_params():
    client, transport = make_client()
    client.ping()
    assert transport.requests[-1].to_dict() == {"jsonrpc": "2.0", "id": transport.requests[-1].id, "method": "ping"}


def test_rpc_error_raised():
    client, _ = make_client()
    with pytest.raises(RPCError) as info:
        client.list_resource_templates()
    assert str(info.value) == "Method not found"
    assert info.value.code == -32601


def test_transport_error_wrapped():
    def responder(request):
        if request.method == "initialize":
            return mock_server(request)
        raise ConnectionError("boom")

    client, _ = make_client(responder)
    with pytest.raises(TransportError, match="transport error: boom"):
        client.ping()


def test_non_object_result_rejected():
    def responder(request):
        if request.method == "initialize":
            return mock_server(request)
        return {"jsonrpc": "2.0", "id": request.id, "result": [1, 2]}

    client, _ = make_client(responder)
    with pytest.raises(MCPError, match="failed to unmarshal response"):
        client.list_tools_by_page()


def test_pagination_merges_pages():
    pages = {
        None: {"tools": [{"name": "a"}], "nextCursor": "c1"},
        "c1": {"tools": [{"name": "b"}], "nextCursor": "c2"},
        "c2": {"tools": [{"name": "c"}]},
    }

    def responder(request):
        if request.method == "initialize":
            return mock_server(request)
        return {"jsonrpc": "2.0", "id": request.id, "result": pages[request.params.get("cursor")]}

    client, transport = make_client(responder)
    result = client.list_tools()
    assert [t["name"] for t in result["tools"]] == ["a", "b", "c"]
    assert not result["nextCursor"]
    cursors = [r.params.get("cursor") for r in transport.requests if r.method == "tools/list"]
    assert cursors == [None, "c1", "c2"]


def test_by_page_returns_single_page():
    pages = {None: {"prompts": [{"name": "a"}], "nextCursor": "c1"}}

    def responder(request):
        if request.method == "initialize":
            return mock_server(request)
        return {"jsonrpc": "2.0", "id": request.id, "result": pages[request.params.get("cursor")]}

    client, _ = make_client(responder)
    page = client.list_prompts_by_page()
    assert page["nextCursor"] == "c1"
    assert [p["name"] for p in page["prompts"]] == ["a"]


def test_notification_handlers_called_in_order():
    client, transport = make_client()
    seen = []
    client.on_notification(lambda n: seen.append(("first", n.method)))
    client.on_notification(lambda n: seen.append(("second", n.method)))
    transport.handler(JSONRPCNotification(method="debug/test"))
    assert seen == [("first", "debug/test"), ("second", "debug/test")]


def test_context_manager_starts_and_closes():
    transport = FakeTransport(mock_server)
    with Client(transport, {"roots": {"listChanged": True}}) as client:
        assert transport.started
        assert client.transport is transport
        assert client.client_capabilities == {"roots": {"listChanged": True}}
    assert transport.closed


def test_notification_round_trip():
    note = JSONRPCNotification(method="notifications/initialized", params={"x": 1})
    assert JSONRPCNotification.from_dict(note.to_dict()) == note


def test_request_to_dict_includes_params():
    request = JSONRPCRequest(id=7, method="tools/list", params={"cursor": "c"})
    assert request.to_dict()["params"] == {"cursor": "c"}
    assert request.to_dict()["jsonrpc"] == "2.0"