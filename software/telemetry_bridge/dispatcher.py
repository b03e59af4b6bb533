"""Frame dispatch: accept → decode → walk → gate → sink.

:class:`BridgeSession` is the one object that owns the mutable state the
pipeline needs, including one gate per sink.  Everything runs
synchronously on the caller's thread; in production that is the UDP
listener thread, so a slow sink delays the next receive.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .config_validation import BridgeConfig
from .decoders import DecodeError, decode, packet_kind
from .gate import ThrottleGate
from .packets import PacketKind
from .schema import F32
from .sinks import OscEncodeError, OscSink, WebSocketBroadcaster
from .walker import Leaf, walk_hierarchical, walk_mnemonic

log = logging.getLogger(__name__)

# Event frames arrive at a high rate; a malformed stream would flood the log.
EVENT_ERROR_LOG_INTERVAL = 10.0


def format_value(value, codec=None) -> str:
    if isinstance(value, float) and codec is F32:
        # Seven significant digits covers float32.
        return f"{value:.7g}"
    return str(value)


def format_ws_message(leaf: Leaf) -> str:
    return f"{leaf.key} {format_value(leaf.value, leaf.codec)}"


class BridgeSession:
    def __init__(
        self,
        config: BridgeConfig,
        broadcaster: Optional[WebSocketBroadcaster] = None,
        osc_sink: Optional[OscSink] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.broadcaster = broadcaster if broadcaster is not None else WebSocketBroadcaster()
        if osc_sink is None:
            osc_sink = OscSink(config.osc_addr, config.osc_port)
        self.osc_sink = osc_sink
        self.ws_gate = ThrottleGate(config, clock=clock)
        self.osc_gate = ThrottleGate(config, clock=clock)
        self._clock = clock
        self._last_event_error: Optional[float] = None

    # ---- ingestion ------------------------------------------------------

    def handle_frame(self, data) -> int:
        """Process one raw frame; returns how many sink emissions it caused."""

        try:
            kind = packet_kind(data)
        except DecodeError:
            # Runt frames and unknown kinds are dropped without a word.
            return 0
        if not self.config.forwarding_enabled(kind):
            return 0
        if self.config.debug_output:
            log.debug("[raw] %s | %d bytes: %s", kind.name, len(data), bytes(data).hex())
        try:
            packet = decode(kind, data)
        except DecodeError as exc:
            self._log_decode_error(kind, exc)
            return 0
        return self.forward(kind, packet)

    def _log_decode_error(self, kind: PacketKind, exc: DecodeError) -> None:
        if kind is PacketKind.Event:
            now = self._clock()
            if (
                self._last_event_error is not None
                and now - self._last_event_error < EVENT_ERROR_LOG_INTERVAL
            ):
                return
            self._last_event_error = now
        log.error("decode %s: %s", kind.name, exc)

    # ---- forwarding -----------------------------------------------------

    def forward(self, kind: PacketKind, packet) -> int:
        emitted = self._forward_websocket(kind, packet)
        if self.config.enable_osc:
            emitted += self._forward_osc(packet)
        return emitted

    def _forward_websocket(self, kind: PacketKind, packet) -> int:
        emitted = 0
        debug = self.config.debug_output
        for leaf in walk_hierarchical(kind, packet):
            if debug:
                log.debug("WebSocket key: %s value: %r", leaf.key, leaf.value)
            if self.ws_gate.admit(leaf.key, leaf.value, tolerance=leaf.codec.tolerance):
                self.broadcaster.broadcast(format_ws_message(leaf))
                emitted += 1
        return emitted

    def _forward_osc(self, packet) -> int:
        emitted = 0
        addresses = self.config.osc_addresses
        for leaf in walk_mnemonic(packet):
            entry = addresses.get(leaf.key)
            if entry is None or not entry.enabled:
                continue
            if not self.osc_gate.admit(
                leaf.key,
                leaf.value,
                tolerance=leaf.codec.tolerance,
                allow_zero=entry.allow_zero,
            ):
                continue
            try:
                self.osc_sink.send(entry.address, leaf.value, leaf.codec)
            except OscEncodeError as exc:
                log.error("OSC encode for %s (%s) failed: %s", leaf.key, entry.address, exc)
                continue
            except OSError as exc:
                log.error("OSC send to %s failed: %s", entry.address, exc)
                continue
            emitted += 1
        return emitted

    def reset_gates(self) -> None:
        self.ws_gate.clear()
        self.osc_gate.clear()
