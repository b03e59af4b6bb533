"""F1 UDP telemetry → WebSocket + OSC bridge.

Point the game's UDP telemetry at ``bridge.udp_addr:udp_port`` and every
decoded field shows up two ways:

* as ``"<Kind/Field/path> <value>"`` text frames on ``ws://<ws_host>:<ws_port>/ws``;
* as OSC messages for the fields listed under ``osc.addresses`` in the
  YAML config (when ``osc.enabled`` is true).

Both sinks are rate limited by ``bridge.broadcast_rate_hz`` and only send a
field when its value changes.

References worth keeping open:

* F1 25 UDP format: https://forums.ea.com/blog/f1-games-game-info-hub-en/ea-sports-f1-25-udp-specification/
* python-osc docs: https://pypi.org/project/python-osc/
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import threading
from pathlib import Path
from typing import Iterable, Optional

import yaml

from .audit import AuditLogger, NullAuditLogger
from .config_validation import BridgeConfig, ValidationError, load_config
from .dispatcher import BridgeSession
from .listener import FrameListener
from .sinks import OscSink, WebSocketBindError, WebSocketBroadcaster, WebSocketServer

log = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = (REPO_ROOT / "config" / "bridge.yaml").resolve()


class BridgeService:
    """Wire the session, UDP listener and WebSocket server together.

    Outer layers (a settings UI, the smoke-test harness) drive it through
    the restart primitives and :meth:`ingest`.
    """

    def __init__(self, config: BridgeConfig, *, audit=None, serve_websocket: bool = True):
        self.config = config
        self.audit = audit if audit is not None else NullAuditLogger()
        self.broadcaster = WebSocketBroadcaster()
        self.osc_sink = OscSink(config.osc_addr, config.osc_port)
        self.session = BridgeSession(config, self.broadcaster, self.osc_sink)
        self.listener = FrameListener(self.session.handle_frame)
        self.ws_server = (
            WebSocketServer(self.broadcaster, config.ws_host, config.ws_port)
            if serve_websocket
            else None
        )
        # Restarts and gate resets must not interleave.
        self._restart_lock = threading.Lock()

    def start(self) -> None:
        """Bind everything.

        Raises ``OSError`` if the UDP port is unavailable and
        :class:`WebSocketBindError` if the WebSocket port is.
        """

        host, port = self.listener.start(*self.config.udp_endpoint)
        self.audit.write(
            "listener_boot",
            message=f"Listening for F1 UDP on {host}:{port}",
            details={"udp_addr": host, "udp_port": port},
        )
        if self.ws_server is not None:
            self.ws_server.start()

    def ingest(self, data) -> int:
        """Feed one raw frame through the pipeline as if it came off the socket."""

        return self.session.handle_frame(data)

    def restart_listener(self) -> bool:
        with self._restart_lock:
            ok = self.listener.restart(*self.config.udp_endpoint)
            address = self.listener.address
        details = {
            "requested": list(self.config.udp_endpoint),
            "bound": list(address) if address else None,
        }
        if ok:
            self.audit.write("listener_restart", message="UDP listener restarted", details=details)
        else:
            self.audit.write(
                "listener_restart_failed",
                status="error",
                message="UDP listener restart failed",
                details=details,
            )
        return ok

    def restart_osc(self) -> bool:
        with self._restart_lock:
            ok = self.osc_sink.restart(*self.config.osc_endpoint)
            if ok:
                # A new target has seen nothing yet.
                self.session.osc_gate.clear()
        self.audit.write(
            "osc_restart",
            status="info" if ok else "error",
            message=f"OSC target {self.config.osc_addr}:{self.config.osc_port}",
        )
        return ok

    def restart_all(self) -> bool:
        udp_ok = self.restart_listener()
        osc_ok = self.restart_osc()
        return udp_ok and osc_ok

    def apply_config(self, new_config: BridgeConfig) -> None:
        """Copy ``new_config`` into the live config and restart what moved."""

        old_udp = self.config.udp_endpoint
        old_osc = self.config.osc_endpoint
        with self._restart_lock:
            for field in dataclasses.fields(BridgeConfig):
                setattr(self.config, field.name, getattr(new_config, field.name))
        if self.config.osc_endpoint != old_osc:
            log.info(
                "[config] OSC address/port changed: %s:%d -> %s:%d",
                *old_osc,
                *self.config.osc_endpoint,
            )
            self.restart_osc()
        if self.config.udp_endpoint != old_udp:
            log.info(
                "[config] UDP address/port changed: %s:%d -> %s:%d",
                *old_udp,
                *self.config.udp_endpoint,
            )
            self.restart_listener()

    def reset_gates(self) -> None:
        with self._restart_lock:
            self.session.reset_gates()

    def stop(self) -> None:
        self.listener.stop()
        if self.ws_server is not None:
            self.ws_server.stop()
        self.audit.write("bridge_shutdown", status="closed", message="Bridge stopped")


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Decode F1 UDP telemetry and forward fields over WebSocket and OSC."
    )
    ap.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to the bridge YAML (default: {DEFAULT_CONFIG_PATH}).",
    )
    ap.add_argument("--udp-addr", help="Override bridge.udp_addr")
    ap.add_argument("--udp-port", type=int, help="Override bridge.udp_port")
    ap.add_argument("--ws-port", type=int, help="Override bridge.ws_port")
    ap.add_argument("--osc-port", type=int, help="Override osc.port")
    ap.add_argument("--enable-osc", action="store_true", help="Force OSC forwarding on")
    ap.add_argument("--hz", type=float, help="Override bridge.broadcast_rate_hz")
    ap.add_argument("--debug", action="store_true", help="Log raw frames and every key")
    return ap.parse_args(list(argv) if argv is not None else None)


def apply_overrides(config: BridgeConfig, args: argparse.Namespace) -> BridgeConfig:
    if args.udp_addr:
        config.udp_addr = args.udp_addr
    if args.udp_port is not None:
        config.udp_port = args.udp_port
    if args.ws_port is not None:
        config.ws_port = args.ws_port
    if args.osc_port is not None:
        config.osc_port = args.osc_port
    if args.enable_osc:
        config.enable_osc = True
    if args.hz is not None:
        config.broadcast_rate_hz = args.hz
    if args.debug:
        config.debug_output = True
    return config


def main(argv: Iterable[str] | None = None, *, stop_event: Optional[threading.Event] = None) -> int:
    args = parse_args(argv)
    config_path = Path(args.config).expanduser()
    try:
        config = load_config(config_path)
    except (OSError, ValidationError, yaml.YAMLError) as exc:
        print(f"[bridge] could not load {config_path}: {exc}", file=sys.stderr)
        return 1
    config = apply_overrides(config, args)

    logging.basicConfig(
        level=logging.DEBUG if config.debug_output else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    audit = AuditLogger()
    service = BridgeService(config, audit=audit)
    try:
        service.start()
    except WebSocketBindError as exc:
        log.error("Failed to serve WebSocket feed: %s", exc)
        audit.write(
            "websocket_boot",
            status="error",
            message=f"Could not bind ws://{config.ws_host}:{config.ws_port}/ws",
            details={"error": str(exc)},
        )
        service.stop()
        return 2
    except OSError as exc:
        log.error("Failed to listen on UDP %s:%d: %s", config.udp_addr, config.udp_port, exc)
        audit.write(
            "listener_boot",
            status="error",
            message=f"Could not bind {config.udp_addr}:{config.udp_port}",
            details={"error": str(exc)},
        )
        service.stop()
        return 2

    stop_event = stop_event or threading.Event()
    try:
        while not stop_event.wait(0.5):
            pass
    except KeyboardInterrupt:
        log.info("[shutdown] shutting down...")
    finally:
        service.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
