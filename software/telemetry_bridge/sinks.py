"""Downstream sinks: the WebSocket fan-out and the OSC client.

python-osc docs: https://pypi.org/project/python-osc/
websockets (sync API) docs: https://websockets.readthedocs.io/
"""

from __future__ import annotations

import http
import logging
import threading
from typing import Optional, Set

from pythonosc import osc_message_builder, udp_client
from websockets.exceptions import ConnectionClosed
from websockets.sync.server import serve

from .schema import Chars, Scalar

log = logging.getLogger(__name__)

WEBSOCKET_PATH = "/ws"


class WebSocketBindError(OSError):
    """The WebSocket feed could not claim its listening socket."""


class WebSocketBroadcaster:
    """Shared set of live connections plus the fan-out loop.

    The lock is held for the whole fan-out, so one slow client stalls the
    rest.
    """

    def __init__(self) -> None:
        self._clients: Set = set()
        self._lock = threading.Lock()

    def add(self, connection) -> None:
        with self._lock:
            self._clients.add(connection)
        log.info("WebSocket client connected (%d total)", len(self))

    def discard(self, connection) -> None:
        with self._lock:
            self._clients.discard(connection)

    def broadcast(self, message: str) -> int:
        """Send ``message`` to every client; returns how many took it."""

        delivered = 0
        with self._lock:
            for connection in list(self._clients):
                try:
                    connection.send(message)
                except (ConnectionClosed, OSError) as exc:
                    log.info("Dropping WebSocket client after write failure: %s", exc)
                    self._clients.discard(connection)
                    connection.close()
                else:
                    delivered += 1
        return delivered

    def close_all(self) -> None:
        with self._lock:
            clients, self._clients = list(self._clients), set()
        for connection in clients:
            connection.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)


class WebSocketServer:
    """Accept upgrades on ``/ws`` and register them with a broadcaster."""

    def __init__(self, broadcaster: WebSocketBroadcaster, host: str = "127.0.0.1", port: int = 1337):
        self.broadcaster = broadcaster
        self.host = host
        self.requested_port = port
        self._server = None
        self._thread: Optional[threading.Thread] = None

    @staticmethod
    def _process_request(connection, request):
        if request.path != WEBSOCKET_PATH:
            return connection.respond(http.HTTPStatus.NOT_FOUND, "Not found\n")
        return None

    def _handle(self, connection) -> None:
        self.broadcaster.add(connection)
        try:
            # Clients never send anything meaningful; reading just tracks liveness.
            for _message in connection:
                pass
        except ConnectionClosed:
            pass
        finally:
            self.broadcaster.discard(connection)
            log.info("WebSocket client disconnected (%d left)", len(self.broadcaster))

    def start(self) -> None:
        try:
            self._server = serve(
                self._handle,
                self.host,
                self.requested_port,
                process_request=self._process_request,
            )
        except OSError as exc:
            raise WebSocketBindError(
                f"ws://{self.host}:{self.requested_port}{WEBSOCKET_PATH}: {exc}"
            ) from exc
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="ws-server", daemon=True
        )
        self._thread.start()
        log.info("WebSocket feed on ws://%s:%d%s", self.host, self.port, WEBSOCKET_PATH)

    @property
    def port(self) -> int:
        if self._server is None:
            return self.requested_port
        return self._server.socket.getsockname()[1]

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
        self.broadcaster.close_all()
        if self._thread is not None:
            self._thread.join(timeout=1)
            self._thread = None


# ---- OSC --------------------------------------------------------------------


class OscEncodeError(Exception):
    """Value cannot be expressed as an OSC int32/float32/string argument."""


_INT32_SPAN = 1 << 32


def _wrap_int32(value: int) -> int:
    return ((value + (1 << 31)) % _INT32_SPAN) - (1 << 31)


def coerce_osc_arg(value, codec=None):
    """Map a decoded value onto OSC's argument types.

    Integers up to 32 bits wrap to int32 (two's complement) and every
    float goes out as float32.  64-bit integers have no int32 form and are
    rejected.
    """

    Builder = osc_message_builder.OscMessageBuilder
    if isinstance(codec, Chars) or isinstance(value, str):
        return Builder.ARG_TYPE_STRING, str(value)
    if isinstance(codec, Scalar):
        if codec.is_float:
            return Builder.ARG_TYPE_FLOAT, float(value)
        if codec.size > 4:
            raise OscEncodeError(f"unsupported type {codec!r} for value {value!r}")
        return Builder.ARG_TYPE_INT, _wrap_int32(int(value))
    if isinstance(value, bool):
        return Builder.ARG_TYPE_INT, int(value)
    if isinstance(value, float):
        return Builder.ARG_TYPE_FLOAT, value
    if isinstance(value, int):
        if -(1 << 31) <= value < (1 << 31):
            return Builder.ARG_TYPE_INT, value
        raise OscEncodeError(f"integer {value} does not fit in int32")
    raise OscEncodeError(f"unsupported type {type(value).__name__}")


def build_osc_message(address: str, value, codec=None):
    arg_type, arg = coerce_osc_arg(value, codec)
    builder = osc_message_builder.OscMessageBuilder(address=address)
    builder.add_arg(arg, arg_type)
    try:
        return builder.build()
    except osc_message_builder.BuildError as exc:
        raise OscEncodeError(str(exc)) from exc


class OscTargetUnavailable(OSError):
    """No OSC client exists yet; the first target never resolved."""


class OscSink:
    """One long-lived UDP client, rebuilt only when the target changes.

    A failed rebuild leaves the previous client (and its target) in place.
    """

    def __init__(self, addr: str = "127.0.0.1", port: int = 9000):
        self._lock = threading.Lock()
        self._client: Optional[udp_client.UDPClient] = None
        self.addr = addr
        self.port = port
        self.restart(addr, port)

    @property
    def ready(self) -> bool:
        return self._client is not None

    def restart(self, addr: Optional[str] = None, port: Optional[int] = None) -> bool:
        addr = self.addr if addr is None else addr
        port = self.port if port is None else port
        try:
            client = udp_client.UDPClient(addr, port)
        except OSError as exc:
            if self._client is None:
                log.error("OSC client for %s:%d could not be created: %s", addr, port, exc)
            else:
                log.error(
                    "OSC client for %s:%d could not be created, keeping %s:%d: %s",
                    addr,
                    port,
                    self.addr,
                    self.port,
                    exc,
                )
            return False
        with self._lock:
            self._client = client
            self.addr, self.port = addr, port
        log.info("OSC client targeting %s:%d", addr, port)
        return True

    def send(self, address: str, value, codec=None) -> None:
        msg = build_osc_message(address, value, codec)
        with self._lock:
            if self._client is None:
                raise OscTargetUnavailable(f"no OSC client for {self.addr}:{self.port}")
            log.debug("Sending OSC message: %s %r", address, value)
            self._client.send(msg)
