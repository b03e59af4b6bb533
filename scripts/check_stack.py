#!/usr/bin/env python3
"""End-to-end stack check for the F1 telemetry bridge.

This harness plays the game on one side and a dashboard plus an OSC
lighting desk on the other.  Run it before a session to catch a broken
config or a dead sink without booting the game.
"""
from __future__ import annotations

import argparse
import contextlib
import socket
import struct
import sys
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import yaml
from pythonosc import dispatcher
from pythonosc.osc_server import ThreadingOSCUDPServer
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from software.telemetry_bridge import config_validation as cv
from software.telemetry_bridge.audit import AuditLogger, NullAuditLogger
from software.telemetry_bridge.bridge import BridgeService
from software.telemetry_bridge.packets import (
    CAR_TELEMETRY_SLOT_SIZE,
    EXPECTED_LENGTHS,
    PacketHeader,
    PacketKind,
)

HEADER_STRUCT = struct.Struct("<HBBBBBQfIIBB")
# Speed, Throttle, Steer, Brake, Clutch, Gear, EngineRPM: the head of a car slot.
TELEMETRY_HEAD = struct.Struct("<HfffBbH")
SPEED_KEY = "CarTelemetry/CarTelemetryData/Speed"


def build_frame(
    kind: PacketKind,
    *,
    player_car_index: int = 0,
    session_time: float = 0.0,
    frame_id: int = 0,
    length: Optional[int] = None,
) -> bytearray:
    """Zero-filled frame of ``kind`` with a plausible F1 25 header."""

    buf = bytearray(EXPECTED_LENGTHS[kind] if length is None else length)
    HEADER_STRUCT.pack_into(
        buf,
        0,
        2025,  # packet format
        25,  # game year
        1,
        0,
        1,
        int(kind),
        0xF1F1F1F1,
        session_time,
        frame_id,
        frame_id,
        player_car_index,
        255,
    )
    return buf


def car_telemetry_frame(
    speed: int,
    gear: int,
    throttle: float = 0.0,
    *,
    player_car_index: int = 0,
    frame_id: int = 0,
) -> bytearray:
    buf = build_frame(PacketKind.CarTelemetry, player_car_index=player_car_index, frame_id=frame_id)
    offset = PacketHeader.size + player_car_index * CAR_TELEMETRY_SLOT_SIZE
    TELEMETRY_HEAD.pack_into(buf, offset, speed, throttle, 0.0, 0.0, 0, gear, 9000 + speed)
    return buf


class OscCapture:
    """Stand-in for the lighting desk: records every OSC message it hears."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0) -> None:
        self._messages: List[Tuple[str, tuple]] = []
        self._lock = threading.Lock()
        disp = dispatcher.Dispatcher()
        disp.set_default_handler(self._record)
        self._server = ThreadingOSCUDPServer((host, port), disp)
        self._server.daemon_threads = True
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def _record(self, address: str, *args) -> None:
        with self._lock:
            self._messages.append((address, args))

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()
        if self._thread:
            self._thread.join(timeout=1)
            self._thread = None

    def messages(self, address: Optional[str] = None) -> List[Tuple[str, tuple]]:
        with self._lock:
            if address is None:
                return list(self._messages)
            return [m for m in self._messages if m[0] == address]


class WebSocketCapture:
    """Stand-in for a dashboard tab on the ``/ws`` feed."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._messages: List[str] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._conn = None
        self._exit_stack = contextlib.ExitStack()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._conn = self._exit_stack.enter_context(connect(self.url, open_timeout=2))
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                message = self._conn.recv(timeout=0.1)
            except TimeoutError:
                continue
            except ConnectionClosed:
                break
            with self._lock:
                self._messages.append(message)

    def stop(self) -> None:
        self._stop.set()
        self._exit_stack.close()
        if self._thread:
            self._thread.join(timeout=1)
            self._thread = None

    def messages(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [m for m in self._messages if m.startswith(prefix)]


class StackHarness:
    """Real BridgeService on ephemeral ports, wired to both capture sinks."""

    def __init__(self, config_path: Path, *, hz: float, audit=None) -> None:
        cfg = cv.load_config(config_path)
        cfg.udp_addr = "127.0.0.1"
        cfg.udp_port = 0
        cfg.ws_host = "127.0.0.1"
        cfg.ws_port = 0
        cfg.broadcast_rate_hz = hz
        cfg.enable_osc = True
        self.osc = OscCapture()
        cfg.osc_addr = "127.0.0.1"
        cfg.osc_port = self.osc.port
        self.cfg = cfg
        self.service = BridgeService(cfg, audit=audit)
        self.dashboard: Optional[WebSocketCapture] = None
        self._sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    @property
    def udp_address(self) -> Tuple[str, int]:
        return self.service.listener.address

    @property
    def ws_url(self) -> str:
        return f"ws://127.0.0.1:{self.service.ws_server.port}/ws"

    def start(self) -> None:
        self.osc.start()
        self.service.start()
        self.dashboard = WebSocketCapture(self.ws_url)
        self.dashboard.start()

    def wait_ready(self, timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self.service.broadcaster) >= 1:
                return True
            time.sleep(0.01)
        return False

    def send(self, frame) -> None:
        self._sender.sendto(bytes(frame), self.udp_address)

    def stop(self) -> None:
        if self.dashboard is not None:
            self.dashboard.stop()
        self.service.stop()
        self.osc.stop()
        self._sender.close()


def assert_osc_activity(harness: StackHarness, frames_sent: int) -> None:
    speed_addr = harness.cfg.osc_addresses["Speed"].address
    gear_addr = harness.cfg.osc_addresses["Gear"].address
    speeds = harness.osc.messages(speed_addr)
    if not speeds:
        raise AssertionError(f"Bridge never emitted {speed_addr} over OSC")
    if len(speeds) > frames_sent:
        raise AssertionError(f"More {speed_addr} messages ({len(speeds)}) than frames ({frames_sent})")
    gears = [args[0] for _addr, args in harness.osc.messages(gear_addr)]
    if gears and harness.cfg.osc_addresses["Gear"].allow_zero and gears[0] != 0:
        raise AssertionError(f"Neutral gear should go out first, saw {gears[0]}")


def assert_ws_activity(harness: StackHarness) -> None:
    lines = harness.dashboard.messages(SPEED_KEY + " ")
    if not lines:
        raise AssertionError("Dashboard never saw a Speed line on the WebSocket feed")
    value = lines[-1].split(" ", 1)[1]
    if not value.isdigit():
        raise AssertionError(f"Speed line carried a non-integer payload: {lines[-1]!r}")


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Spin up a telemetry bridge loopback smoke test.")
    default_config = (REPO_ROOT / "config" / "bridge.yaml").resolve()
    parser.add_argument(
        "--config",
        default=str(default_config),
        help=(
            "Bridge YAML whose OSC address table is exercised. Relative paths are"
            " resolved from the repo root (defaults to config/bridge.yaml)."
        ),
    )
    parser.add_argument("--frames", type=int, default=40, help="How many CarTelemetry frames to send")
    parser.add_argument(
        "--send-interval",
        type=float,
        default=0.03,
        help="Delay between UDP frames in seconds",
    )
    parser.add_argument(
        "--hz",
        type=float,
        default=50.0,
        help="Per-key broadcast rate for the run (default 50 so most frames pass the gate)",
    )
    parser.add_argument("--warmup", type=float, default=0.1, help="Pause after boot before streaming")
    parser.add_argument("--cooldown", type=float, default=0.2, help="Pause before tearing down")
    parser.add_argument(
        "--log-events",
        action="store_true",
        help="Append lifecycle events to ops_events.jsonl (honours TELEMETRY_BRIDGE_LOG_DIR)",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = (REPO_ROOT / config_path).resolve()
    if not config_path.exists():
        print(f"Config file not found: {config_path}", file=sys.stderr)
        return 2
    try:
        audit = AuditLogger() if args.log_events else NullAuditLogger()
        harness = StackHarness(config_path, hz=args.hz, audit=audit)
    except (cv.ValidationError, yaml.YAMLError) as exc:
        print(f"Config rejected: {exc}", file=sys.stderr)
        return 2

    harness.start()
    try:
        if not harness.wait_ready():
            raise AssertionError("WebSocket dashboard never registered with the bridge")
        time.sleep(max(0.0, args.warmup))
        for i in range(args.frames):
            frame = car_telemetry_frame(
                speed=120 + i,
                gear=min(i, 8),
                throttle=min(1.0, i / 10.0),
                frame_id=i,
            )
            harness.send(frame)
            time.sleep(max(0.0, args.send_interval))
        # A runt datagram must be ignored without taking the listener down.
        harness.send(b"\x00" * 10)
        time.sleep(max(0.0, args.cooldown))
    finally:
        harness.stop()

    assert_osc_activity(harness, args.frames)
    assert_ws_activity(harness)
    audit.write(
        "stack_check",
        message="Loopback smoke test passed",
        details={
            "frames": args.frames,
            "osc_messages": len(harness.osc.messages()),
            "ws_messages": len(harness.dashboard.messages()),
        },
    )

    print("✅ UDP listener decoded CarTelemetry frames from the loopback socket.")
    print("✅ WebSocket dashboard received per-field lines on /ws.")
    print("✅ OSC desk received mapped addresses (neutral gear included).")
    print("All green. Go fire up the game.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
