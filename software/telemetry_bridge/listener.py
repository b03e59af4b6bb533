"""UDP frame listener with restart support.

One daemon thread owns the socket.  Each datagram is read into a reused
2048-byte buffer and handed to ``handler`` before the next receive, so
there is no queue between the socket and the sinks.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Optional, Tuple

log = logging.getLogger(__name__)

BUFFER_SIZE = 2048
# How often the read loop wakes up to notice a stop request.
POLL_TIMEOUT = 0.5


def _bind(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.settimeout(POLL_TIMEOUT)
    return sock


class _ReadLoop:
    """One socket + one thread; never reused after :meth:`stop`."""

    def __init__(self, sock: socket.socket, handler: Callable[[memoryview], object]):
        self.sock = sock
        self.handler = handler
        self.address: Tuple[str, int] = sock.getsockname()
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"udp-listener:{self.address[1]}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        buf = bytearray(BUFFER_SIZE)
        view = memoryview(buf)
        while not self._stop.is_set():
            try:
                n = self.sock.recv_into(buf)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stop.is_set():
                    break
                # No backoff: a socket that keeps failing spins here.
                log.error("UDP read error: %s", exc)
                continue
            try:
                self.handler(view[:n])
            except Exception:  # noqa: BLE001
                log.exception("Frame handler crashed; continuing with next datagram")

    def stop(self) -> None:
        self._stop.set()
        # A receive in flight pins the port even after close(), so let the
        # loop notice the stop flag before the socket goes away.
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=POLL_TIMEOUT * 4)
        self.sock.close()


class FrameListener:
    """Owns the current read loop and swaps it out on restart.

    :meth:`start` raises if the first bind fails so the operator sees it.
    :meth:`restart` never raises: when the new bind fails the bridge keeps
    (or re-acquires) the previous endpoint instead of going deaf.
    """

    def __init__(self, handler: Callable[[memoryview], object]):
        self.handler = handler
        self._loop: Optional[_ReadLoop] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._loop is not None

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        loop = self._loop
        return loop.address if loop is not None else None

    def start(self, host: str, port: int) -> Tuple[str, int]:
        with self._lock:
            if self._loop is not None:
                raise RuntimeError("listener already running; use restart()")
            self._loop = _ReadLoop(_bind(host, port), self.handler)
            self._loop.start()
            log.info("Listening for F1 UDP on %s:%d", *self._loop.address)
            return self._loop.address

    def restart(self, host: str, port: int) -> bool:
        """Rebind to ``host:port``; returns ``False`` if the new bind failed."""

        with self._lock:
            old = self._loop
            if old is None:
                try:
                    self._loop = _ReadLoop(_bind(host, port), self.handler)
                except OSError as exc:
                    log.error("Failed to listen on UDP %s:%d: %s", host, port, exc)
                    return False
                self._loop.start()
                log.info("Listening for F1 UDP on %s:%d", *self._loop.address)
                return True

            same_port = port != 0 and port == old.address[1]
            if not same_port:
                # Bind first so a bad endpoint leaves the old socket serving.
                try:
                    sock = _bind(host, port)
                except OSError as exc:
                    log.error(
                        "Failed to listen on UDP %s:%d, keeping %s:%d: %s",
                        host,
                        port,
                        *old.address,
                        exc,
                    )
                    return False
                old.stop()
            else:
                # Same port: the old socket has to go before we can rebind it.
                old.stop()
                try:
                    sock = _bind(host, port)
                except OSError as exc:
                    log.error("Failed to rebind UDP %s:%d: %s", host, port, exc)
                    self._loop = None
                    try:
                        sock = _bind(*old.address)
                    except OSError as fallback_exc:
                        log.error("Previous endpoint %s:%d is gone too: %s", *old.address, fallback_exc)
                        return False
                    self._loop = _ReadLoop(sock, self.handler)
                    self._loop.start()
                    log.warning("Fell back to UDP %s:%d", *self._loop.address)
                    return False

            self._loop = _ReadLoop(sock, self.handler)
            self._loop.start()
            log.info("Listening for F1 UDP on %s:%d", *self._loop.address)
            return True

    def stop(self) -> None:
        with self._lock:
            if self._loop is not None:
                self._loop.stop()
                self._loop = None
