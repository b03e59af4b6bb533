import json
import socket
import sys
import threading
import time
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from scripts.check_stack import car_telemetry_frame
from software.telemetry_bridge import bridge
from software.telemetry_bridge.audit import AuditLogger
from software.telemetry_bridge.config_validation import BridgeConfig


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.messages = []

    def broadcast(self, message: str) -> int:
        self.messages.append(message)
        return 1


def _actions(log_dir: Path):
    log_path = log_dir / "ops_events.jsonl"
    return [json.loads(line)["action"] for line in log_path.read_text().splitlines() if line.strip()]


@pytest.fixture
def service(tmp_path):
    cfg = BridgeConfig(udp_port=0, ws_port=0, osc_port=9)
    svc = bridge.BridgeService(cfg, audit=AuditLogger(tmp_path), serve_websocket=False)
    svc.session.broadcaster = RecordingBroadcaster()
    svc.start()
    yield svc
    svc.stop()


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_ingest_runs_the_pipeline(service):
    emitted = service.ingest(car_telemetry_frame(speed=150, gear=4))
    assert emitted > 0
    assert "CarTelemetry/CarTelemetryData/Speed 150" in service.session.broadcaster.messages


def test_udp_frames_reach_the_session(service):
    sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sender.sendto(bytes(car_telemetry_frame(speed=222, gear=5)), service.listener.address)
    finally:
        sender.close()
    messages = service.session.broadcaster.messages
    assert _wait_for(lambda: "CarTelemetry/CarTelemetryData/Speed 222" in messages)


def test_restart_listener_is_audited(service, tmp_path):
    assert service.restart_listener()
    assert service.listener.running
    assert _actions(tmp_path)[:2] == ["listener_boot", "listener_restart"]


def test_failed_restart_keeps_listening(service, tmp_path):
    old = service.listener.address
    squatter = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    squatter.bind(("127.0.0.1", 0))
    try:
        service.config.udp_port = squatter.getsockname()[1]
        assert service.restart_listener() is False
    finally:
        squatter.close()
    assert service.listener.address == old
    assert "listener_restart_failed" in _actions(tmp_path)


def test_apply_config_restarts_only_what_moved(service, tmp_path):
    bound = service.listener.address
    new_cfg = BridgeConfig(udp_port=0, ws_port=0, osc_port=10, broadcast_rate_hz=10, enable_osc=True)
    service.apply_config(new_cfg)
    assert service.osc_sink.port == 10
    assert service.listener.address == bound
    assert service.config.enable_osc is True
    assert service.session.ws_gate.interval() == pytest.approx(0.1)
    actions = _actions(tmp_path)
    assert "osc_restart" in actions
    assert "listener_restart" not in actions


def test_restart_all_reports_both(service):
    assert service.restart_all() is True


def test_reset_gates_lets_values_through_again(service):
    frame = car_telemetry_frame(speed=99, gear=2)
    assert service.ingest(frame) > 0
    assert service.ingest(frame) == 0
    service.reset_gates()
    assert service.ingest(frame) > 0


def test_osc_restart_clears_the_osc_gate(service):
    service.session.osc_gate.admit("Speed", 111)
    assert service.restart_osc()
    assert len(service.session.osc_gate) == 0


def test_failed_osc_restart_keeps_target_and_gate(service, tmp_path):
    service.session.osc_gate.admit("Speed", 111)
    service.config.osc_addr = "no-such-host.invalid"
    assert service.restart_osc() is False
    assert service.osc_sink.addr == "127.0.0.1"
    assert service.osc_sink.ready
    assert service.session.osc_gate.last("Speed") is not None
    assert "osc_restart" in _actions(tmp_path)


def test_parse_args_and_overrides():
    args = bridge.parse_args(
        ["--udp-port", "20800", "--ws-port", "0", "--osc-port", "9100", "--enable-osc", "--hz", "5", "--debug"]
    )
    cfg = bridge.apply_overrides(BridgeConfig(), args)
    assert cfg.udp_port == 20800
    assert cfg.ws_port == 0
    assert cfg.osc_port == 9100
    assert cfg.enable_osc and cfg.debug_output
    assert cfg.broadcast_rate_hz == 5.0


def test_main_rejects_bad_config(tmp_path, capsys):
    bad = tmp_path / "bad.yaml"
    bad.write_text("bridge:\n  udp_port: nope\n")
    assert bridge.main(["--config", str(bad)]) == 1
    assert "could not load" in capsys.readouterr().err
    assert bridge.main(["--config", str(tmp_path / "missing.yaml")]) == 1


def test_main_exits_2_when_udp_port_is_taken(tmp_path, monkeypatch):
    monkeypatch.setenv("TELEMETRY_BRIDGE_LOG_DIR", str(tmp_path / "logs"))
    squatter = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    squatter.bind(("127.0.0.1", 0))
    try:
        port = squatter.getsockname()[1]
        exit_code = bridge.main(["--udp-port", str(port), "--ws-port", "0"])
    finally:
        squatter.close()
    assert exit_code == 2
    assert _actions(tmp_path / "logs")[0] == "listener_boot"


def test_main_runs_until_stopped(tmp_path, monkeypatch):
    monkeypatch.setenv("TELEMETRY_BRIDGE_LOG_DIR", str(tmp_path / "logs"))
    stop = threading.Event()
    timer = threading.Timer(0.3, stop.set)
    timer.start()
    try:
        exit_code = bridge.main(["--udp-port", "0", "--ws-port", "0"], stop_event=stop)
    finally:
        timer.cancel()
    assert exit_code == 0
    actions = _actions(tmp_path / "logs")
    assert actions[0] == "listener_boot"
    assert actions[-1] == "bridge_shutdown"


def test_main_exits_2_when_websocket_port_is_taken(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("TELEMETRY_BRIDGE_LOG_DIR", str(tmp_path / "logs"))
    squatter = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    squatter.bind(("127.0.0.1", 0))
    squatter.listen()
    try:
        port = squatter.getsockname()[1]
        exit_code = bridge.main(["--udp-port", "0", "--ws-port", str(port)])
    finally:
        squatter.close()
    assert exit_code == 2
    assert "Failed to serve WebSocket feed" in caplog.text
    assert "Failed to listen on UDP" not in caplog.text
    assert _actions(tmp_path / "logs") == ["listener_boot", "websocket_boot", "bridge_shutdown"]
