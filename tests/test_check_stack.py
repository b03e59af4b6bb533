import json
import sys
import time
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import scripts.check_stack as check_stack
from software.telemetry_bridge.packets import (
    EXPECTED_LENGTHS,
    PACKET_ID_OFFSET,
    PLAYER_CAR_INDEX_OFFSET,
    PacketKind,
)

CONFIG = REPO_ROOT / "config" / "bridge.yaml"


def test_frame_builders_produce_wire_lengths():
    for kind in PacketKind:
        frame = check_stack.build_frame(kind)
        assert len(frame) == EXPECTED_LENGTHS[kind]
        assert frame[PACKET_ID_OFFSET] == int(kind)
    telemetry = check_stack.car_telemetry_frame(speed=300, gear=8, player_car_index=4)
    assert telemetry[PLAYER_CAR_INDEX_OFFSET] == 4


def test_harness_streams_to_both_sinks():
    harness = check_stack.StackHarness(CONFIG, hz=50.0)
    harness.start()
    try:
        assert harness.wait_ready(), "WebSocket dashboard never registered"
        for i in range(10):
            harness.send(check_stack.car_telemetry_frame(speed=200 + i, gear=min(i, 8), frame_id=i))
            time.sleep(0.03)
        time.sleep(0.1)
    finally:
        harness.stop()
    check_stack.assert_osc_activity(harness, 10)
    check_stack.assert_ws_activity(harness)


def test_cli_entrypoint_runs_fast():
    exit_code = check_stack.main(
        ["--frames", "15", "--send-interval", "0.03", "--warmup", "0.02", "--cooldown", "0.1"]
    )
    assert exit_code == 0


def test_cli_rejects_missing_config(tmp_path, capsys):
    exit_code = check_stack.main(["--config", str(tmp_path / "nope.yaml")])
    captured = capsys.readouterr()
    assert exit_code == 2
    assert "Config file not found" in captured.err


def test_cli_rejects_invalid_config(tmp_path, capsys):
    bad = tmp_path / "bad.yaml"
    bad.write_text("osc:\n  port: 123456\n")
    exit_code = check_stack.main(["--config", str(bad)])
    assert exit_code == 2
    assert "Config rejected" in capsys.readouterr().err


def test_check_stack_logs_audit_events(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("TELEMETRY_BRIDGE_LOG_DIR", str(log_dir))
    exit_code = check_stack.main(
        [
            "--frames",
            "10",
            "--send-interval",
            "0.03",
            "--warmup",
            "0.01",
            "--cooldown",
            "0.1",
            "--log-events",
        ]
    )
    assert exit_code == 0
    log_path = log_dir / "ops_events.jsonl"
    assert log_path.exists(), "ops_events.jsonl missing despite logging flag"
    actions = [
        json.loads(line)["action"]
        for line in log_path.read_text().splitlines()
        if line.strip()
    ]
    assert actions == ["listener_boot", "bridge_shutdown", "stack_check"]
