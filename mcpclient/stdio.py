"""Transport that runs an MCP server as a subprocess and talks JSON-RPC over its stdio."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import Future
from typing import IO, Any

from mcpclient.client import (
    Client,
    JSONRPCNotification,
    JSONRPCRequest,
    MCPError,
    NotificationHandler,
    Transport,
    TransportError,
)

log = logging.getLogger(__name__)


def _request_key(request_id: Any) -> str:
    return json.dumps(request_id, sort_keys=True)


class StdioTransport(Transport):
    """Runs a server command and exchanges newline-delimited JSON-RPC messages with it.

    ``env`` holds ``KEY=VALUE`` entries that are added to the current
    environment of the child process.
    """

    def __init__(
        self,
        command: str,
        env: Sequence[str] | None = None,
        args: Sequence[str] = (),
    ) -> None:
        self.command = command
        self.env = list(env or [])
        self.args = list(args)
        self._process: subprocess.Popen[bytes] | None = None
        self._reader: threading.Thread | None = None
        self._pending: dict[str, Future[Mapping[str, Any]]] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._handler: NotificationHandler | None = None
        self._closed = False
        self._shut_down = False

    def _environment(self) -> dict[str, str]:
        environment = dict(os.environ)
        for entry in self.env:
            key, sep, value = entry.partition("=")
            if sep:
                environment[key] = value
        return environment

    def start(self) -> None:
        """Launch the command and begin reading its output."""
        with self._lock:
            if self._process is not None:
                raise TransportError("stdio transport already started")
            try:
                self._process = subprocess.Popen(
                    [self.command, *self.args],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=self._environment(),
                )
            except OSError as exc:
                raise TransportError(f"failed to start command: {exc}") from exc
        self._reader = threading.Thread(
            target=self._read_loop, name="stdio-transport-reader", daemon=True
        )
        self._reader.start()

    def _require_process(self) -> subprocess.Popen[bytes]:
        if self._process is None:
            raise TransportError("stdio transport not started")
        return self._process

    def _read_loop(self) -> None:
        process = self._require_process()
        stdout = process.stdout
        try:
            if stdout is not None:
                for raw in stdout:
                    line = raw.strip()
                    if not line:
                        continue
                    try:
                        message = json.loads(line)
                    except ValueError:
                        continue
                    if isinstance(message, dict):
                        self._route(message)
        except (OSError, ValueError):
            pass
        finally:
            self._fail_pending(TransportError("stdio transport closed"))

    def _route(self, message: dict[str, Any]) -> None:
        if "method" in message:
            if "id" not in message:
                self._notify(message)
            return
        if "id" not in message:
            return
        try:
            key = _request_key(message["id"])
        except TypeError:
            return
        with self._lock:
            future = self._pending.pop(key, None)
        if future is not None:
            future.set_result(message)

    def _notify(self, message: dict[str, Any]) -> None:
        handler = self._handler
        if handler is None:
            return
        try:
            handler(JSONRPCNotification.from_dict(message))
        except Exception:
            log.exception("notification handler failed for %r", message.get("method"))

    def _fail_pending(self, error: Exception) -> None:
        with self._lock:
            self._closed = True
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            future.set_exception(error)

    def _write(self, message: Mapping[str, Any]) -> None:
        process = self._require_process()
        data = (json.dumps(message) + "\n").encode("utf-8")
        with self._write_lock:
            try:
                if process.stdin is None:
                    raise TransportError("stdin is not available")
                process.stdin.write(data)
                process.stdin.flush()
            except (OSError, ValueError) as exc:
                raise TransportError(f"failed to write message: {exc}") from exc

    def send_request(self, request: JSONRPCRequest) -> Mapping[str, Any]:
        """Write the request and block until the matching response arrives."""
        self._require_process()
        future: Future[Mapping[str, Any]] = Future()
        key = _request_key(request.id)
        with self._lock:
            if self._closed:
                raise TransportError("stdio transport closed")
            self._pending[key] = future
        try:
            self._write(request.to_dict())
        except TransportError:
            with self._lock:
                self._pending.pop(key, None)
            raise
        return future.result()

    def send_notification(self, notification: JSONRPCNotification) -> None:
        """Write a notification; nothing is awaited."""
        with self._lock:
            if self._closed:
                raise TransportError("stdio transport closed")
        self._write(notification.to_dict())

    def set_notification_handler(self, handler: NotificationHandler) -> None:
        self._handler = handler

    def close(self) -> None:
        """Close the child's stdin and wait for it to exit."""
        process = self._process
        if process is None:
            return
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
        with self._write_lock:
            try:
                if process.stdin is not None:
                    process.stdin.close()
            except OSError:
                pass
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if self._reader is not None:
            self._reader.join(timeout=5)
        if process.stdout is not None:
            process.stdout.close()

    def stderr(self) -> IO[bytes] | None:
        """The child's stderr stream, or None before the command is started."""
        if self._process is None:
            return None
        return self._process.stderr


def new_stdio_mcp_client(command: str, env: Sequence[str] | None = None, *args: str) -> Client:
    """Launch ``command`` and return a client bound to it.

    The transport is started here; the returned client's ``start`` must not
    be called again.
    """
    transport = StdioTransport(command, env, args)
    try:
        transport.start()
    except MCPError as exc:
        raise MCPError(f"failed to start stdio transport: {exc}") from exc
    return Client(transport)


def get_stderr(client: Client) -> IO[bytes] | None:
    """The server's stderr stream when the client runs over stdio, else None."""
    transport = client.transport
    if isinstance(transport, StdioTransport):
        return transport.stderr()
    return None