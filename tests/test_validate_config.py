import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import scripts.validate_config as validate_config


def test_validate_defaults_pass():
    exit_code = validate_config.main([str(REPO_ROOT / "config" / "bridge.yaml"), "--quiet"])
    assert exit_code == 0


def test_validate_without_arguments_uses_shipped_config(capsys):
    assert validate_config.main([]) == 0
    out = capsys.readouterr().out
    assert "UDP 127.0.0.1:20777" in out
    assert "all clear" in out


def test_validate_flags_bad_config(tmp_path: Path, capsys):
    bad = tmp_path / "bad.yaml"
    bad.write_text(
        """
bridge:
  udp_port: 99999
  broadcast_rate_hz: -1
osc:
  addresses:
    Speed: {address: car/speed}
forwarding:
  CarTelemetry: maybe
"""
    )

    exit_code = validate_config.main([str(bad), "--quiet"])
    assert exit_code == 1
    out = capsys.readouterr().out
    assert "udp_port" in out
    assert "broadcast_rate_hz" in out
    assert "forwarding.CarTelemetry" in out


def test_validate_flags_duplicate_osc_addresses(tmp_path: Path, capsys):
    dupes = tmp_path / "dupes.yaml"
    dupes.write_text(
        """
osc:
  addresses:
    Speed: {address: /car/speed}
    EngineRPM: {address: /car/speed, type: int}
    Gear: {address: /car/speed, enabled: false}
"""
    )
    assert validate_config.main([str(dupes), "--quiet"]) == 1
    out = capsys.readouterr().out
    assert "/car/speed used by both Speed and EngineRPM" in out
    assert "Gear" not in out


def test_validate_reports_missing_and_unparseable_files(tmp_path: Path, capsys):
    broken = tmp_path / "broken.yaml"
    broken.write_text("bridge: [unterminated\n")
    exit_code = validate_config.main([str(tmp_path / "nope.yaml"), str(broken), "--quiet"])
    assert exit_code == 1
    out = capsys.readouterr().out
    assert "file not found" in out
    assert "YAML parse error" in out
