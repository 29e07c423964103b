# mcpclient

A client for the Model Context Protocol (MCP). It speaks JSON-RPC 2.0 to an
MCP server through a transport, negotiates capabilities, and gives you plain
Python methods for listing and reading resources, fetching prompts, calling
tools, setting the server's log level and asking for completions. Results
come back as plain dictionaries holding the server's JSON.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Talking to a server over stdio

`mcpclient.stdio.new_stdio_mcp_client(command, env, *args)` launches the
server as a subprocess, exchanges newline-delimited JSON-RPC messages over
its stdin and stdout, and starts the transport for you. Do not call
`start()` on the client it returns. `env` is a list of `KEY=VALUE` entries
added to the current environment of the child process.

```python
from mcpclient.stdio import new_stdio_mcp_client, get_stderr

client = new_stdio_mcp_client("./my_mcp_server", [], "--verbose")
try:
    result = client.initialize(
        "2025-03-26",
        {"name": "example-client", "version": "1.0.0"},
        {},
    )
    print(result["serverInfo"]["name"])

    client.ping()

    for tool in client.list_tools()["tools"]:
        print(tool["name"])

    answer = client.call_tool("echo", {"message": "hello"})
    print(answer["content"])
finally:
    client.close()
```

`get_stderr(client)` returns the server's standard error as a readable
binary stream, or `None` when the client is not using a `StdioTransport`.
Closing the client closes the child's stdin and waits for it to exit,
killing it if it has not done so within five seconds.

`StdioTransport(command, env, args)` can also be built directly and passed
to `Client`; in that case call `client.start()` yourself.

## Using your own transport

`Client` works with any subclass of `mcpclient.client.Transport`, which
defines `start`, `send_request`, `send_notification`,
`set_notification_handler` and `close`. `send_request` receives a
`JSONRPCRequest` and returns the decoded response as a mapping holding
either `result` or `error`.

```python
from mcpclient.client import Client

client = Client(my_transport, client_capabilities={})
client.start()
client.initialize("2025-03-26", {"name": "example-client", "version": "1.0.0"}, {})
```

`Client` is also a context manager: entering it calls `start()`, leaving it
calls `close()`.

After `initialize`, the client sends the `notifications/initialized`
notification; `client.server_capabilities` then holds what the server
announced, and `client.client_capabilities` what the client was built with.

## Notifications

Register any number of handlers; each `JSONRPCNotification` from the server
is passed to all of them, in the order they were registered.

```python
client.on_notification(lambda note: print(note.method, note.params))
```

## Pagination

`list_resources`, `list_resource_templates`, `list_prompts` and
`list_tools` follow `nextCursor` until the server has sent every page and
return the merged result. The matching `*_by_page` methods fetch a single
page, starting from the cursor you give them.

## Errors

All errors derive from `MCPError`:

- `NotInitializedError` — a request other than `initialize` was made before
  `initialize()`.
- `TransportError` — the transport failed to deliver the request or return
  its response.
- `RPCError` — the server answered with a JSON-RPC error; its `message`,
  `code` and `data` are kept as attributes.

`MCPError` itself is raised when the client has no transport, when a result
is not a JSON object, or when the initialized notification cannot be sent.

## What this package does not do

The only transport included is `StdioTransport`. There is no HTTP or
server-sent-events transport, no OAuth support, and no MCP server; to reach
a server by other means, write a `Transport` subclass.