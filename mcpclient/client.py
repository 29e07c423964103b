"""A client for the Model Context Protocol over a pluggable transport."""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

JSONRPC_VERSION = "2.0"

NotificationHandler = Callable[["JSONRPCNotification"], None]


class MCPError(Exception):
    """Base class for errors raised by the client."""


class NotInitializedError(MCPError):
    """A request other than ``initialize`` was made before initialization."""

    def __init__(self) -> None:
        super().__init__("client not initialized")


class TransportError(MCPError):
    """The transport failed to deliver a request or return its response."""


class RPCError(MCPError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


@dataclass
class JSONRPCRequest:
    """A JSON-RPC request sent to the server."""

    id: int | str
    method: str
    params: Any = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params is not None:
            message["params"] = self.params
        return message


@dataclass
class JSONRPCNotification:
    """A JSON-RPC notification, sent or received."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params:
            message["params"] = self.params
        return message

    @classmethod
    def from_dict(cls, message: Mapping[str, Any]) -> JSONRPCNotification:
        return cls(
            method=message["method"],
            params=dict(message.get("params") or {}),
            jsonrpc=message.get("jsonrpc", JSONRPC_VERSION),
        )


class Transport(ABC):
    """The channel a client uses to talk to a server.

    ``send_request`` returns the decoded JSON-RPC response as a mapping
    holding either ``result`` or ``error``.
    """

    @abstractmethod
    def start(self) -> None:
        """Open the connection."""

    @abstractmethod
    def send_request(self, request: JSONRPCRequest) -> Mapping[str, Any]:
        """Send a request and wait for its response."""

    @abstractmethod
    def send_notification(self, notification: JSONRPCNotification) -> None:
        """Send a notification; no response is expected."""

    @abstractmethod
    def set_notification_handler(self, handler: NotificationHandler) -> None:
        """Install the callback for notifications sent by the server."""

    @abstractmethod
    def close(self) -> None:
        """Shut the connection down."""


def _as_object(result: Any) -> dict[str, Any]:
    if not isinstance(result, Mapping):
        raise MCPError(f"failed to unmarshal response: expected an object, got {type(result).__name__}")
    return dict(result)


def _page_params(cursor: str | None) -> dict[str, Any]:
    return {"cursor": cursor} if cursor else {}


class Client:
    """An MCP client bound to one transport."""

    def __init__(
        self,
        transport: Transport | None,
        client_capabilities: Mapping[str, Any] | None = None,
    ) -> None:
        self._transport = transport
        self._client_capabilities: dict[str, Any] = dict(client_capabilities or {})
        self._server_capabilities: dict[str, Any] = {}
        self._initialized = False
        self._handlers: list[NotificationHandler] = []
        self._handlers_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

    def __enter__(self) -> Client:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        """Start the transport and route its notifications to the handlers."""
        if self._transport is None:
            raise MCPError("transport is nil")
        self._transport.start()
        self._transport.set_notification_handler(self._dispatch)

    def close(self) -> None:
        """Close the transport."""
        if self._transport is None:
            raise MCPError("transport is nil")
        self._transport.close()

    def on_notification(self, handler: NotificationHandler) -> None:
        """Register a handler; handlers run in the order they were added."""
        with self._handlers_lock:
            self._handlers.append(handler)

    def _dispatch(self, notification: JSONRPCNotification) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(notification)

    def _next_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def _send_request(self, method: str, params: Any = None) -> Any:
        if not self._initialized and method != "initialize":
            raise NotInitializedError()
        if self._transport is None:
            raise MCPError("transport is nil")
        request = JSONRPCRequest(id=self._next_id(), method=method, params=params)
        try:
            response = self._transport.send_request(request)
        except Exception as exc:
            raise TransportError(f"transport error: {exc}") from exc
        error = response.get("error")
        if error:
            if isinstance(error, Mapping):
                raise RPCError(str(error.get("message", "")), error.get("code"), error.get("data"))
            raise RPCError(str(error))
        return response.get("result")

    def initialize(
        self,
        protocol_version: str,
        client_info: Mapping[str, Any],
        capabilities: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Negotiate with the server; must be called after ``start``."""
        params = {
            "protocolVersion": protocol_version,
            "clientInfo": dict(client_info),
            "capabilities": dict(capabilities or {}),
        }
        result = _as_object(self._send_request("initialize", params))
        self._server_capabilities = dict(result.get("capabilities") or {})
        try:
            self._transport.send_notification(JSONRPCNotification(method="notifications/initialized"))
        except Exception as exc:
            raise MCPError(f"failed to send initialized notification: {exc}") from exc
        self._initialized = True
        return result

    def ping(self) -> None:
        self._send_request("ping")

    def _list_page(self, method: str, cursor: str | None) -> dict[str, Any]:
        return _as_object(self._send_request(method, _page_params(cursor)))

    def _list_all(self, method: str, key: str, cursor: str | None) -> dict[str, Any]:
        result = self._list_page(method, cursor)
        result[key] = list(result.get(key) or [])
        while result.get("nextCursor"):
            page = self._list_page(method, result["nextCursor"])
            result[key].extend(page.get(key) or [])
            result["nextCursor"] = page.get("nextCursor", "")
        return result

    def list_resources_by_page(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_page("resources/list", cursor)

    def list_resources(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_all("resources/list", "resources", cursor)

    def list_resource_templates_by_page(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_page("resources/templates/list", cursor)

    def list_resource_templates(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_all("resources/templates/list", "resourceTemplates", cursor)

    def read_resource(self, uri: str, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"uri": uri}
        if arguments:
            params["arguments"] = dict(arguments)
        return _as_object(self._send_request("resources/read", params))

    def subscribe(self, uri: str) -> None:
        self._send_request("resources/subscribe", {"uri": uri})

    def unsubscribe(self, uri: str) -> None:
        self._send_request("resources/unsubscribe", {"uri": uri})

    def list_prompts_by_page(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_page("prompts/list", cursor)

    def list_prompts(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_all("prompts/list", "prompts", cursor)

    def get_prompt(self, name: str, arguments: Mapping[str, str] | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"name": name}
        if arguments:
            params["arguments"] = dict(arguments)
        return _as_object(self._send_request("prompts/get", params))

    def list_tools_by_page(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_page("tools/list", cursor)

    def list_tools(self, cursor: str | None = None) -> dict[str, Any]:
        return self._list_all("tools/list", "tools", cursor)

    def call_tool(self, name: str, arguments: Any = None) -> dict[str, Any]:
        params: dict[str, Any] = {"name": name}
        if arguments is not None:
            params["arguments"] = arguments
        return _as_object(self._send_request("tools/call", params))

    def set_level(self, level: str) -> None:
        self._send_request("logging/setLevel", {"level": level})

    def complete(self, ref: Mapping[str, Any], argument_name: str, argument_value: str) -> dict[str, Any]:
        params = {
            "ref": dict(ref),
            "argument": {"name": argument_name, "value": argument_value},
        }
        return _as_object(self._send_request("completion/complete", params))

    @property
    def transport(self) -> Transport | None:
        """The underlying transport."""
        return self._transport

    @property
    def server_capabilities(self) -> dict[str, Any]:
        """Capabilities the server announced during initialization."""
        return self._server_capabilities

    @property
    def client_capabilities(self) -> dict[str, Any]:
        """Capabilities this client was configured with."""
        return self._client_capabilities