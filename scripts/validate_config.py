#!/usr/bin/env python3
"""Validate bridge.yaml (and any extra configs) before a session."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, List

import yaml

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from software.telemetry_bridge import config_validation as cv
from software.telemetry_bridge.walker import WHEEL_TAGS

DEFAULT_CONFIG = REPO_ROOT / "config" / "bridge.yaml"


def _summarize(cfg: cv.BridgeConfig) -> List[str]:
    enabled = [entry for entry in cfg.osc_addresses.values() if entry.enabled]
    muted = [kind.name for kind, flag in cfg.forwarding.items() if not flag]
    wheel_rows = sum(1 for name in cfg.osc_addresses if name.endswith(WHEEL_TAGS))
    lines = [
        f"UDP {cfg.udp_addr}:{cfg.udp_port} → ws://{cfg.ws_host}:{cfg.ws_port}/ws",
        f"OSC {'on' if cfg.enable_osc else 'off'} → {cfg.osc_addr}:{cfg.osc_port}"
        f" ({len(enabled)} enabled addresses, {wheel_rows} per-wheel)",
        f"rate {cfg.broadcast_rate_hz} Hz per key",
    ]
    if muted:
        lines.append(f"not forwarding: {', '.join(muted)}")
    return lines


def _duplicate_addresses(cfg: cv.BridgeConfig) -> List[str]:
    seen = {}
    problems = []
    for name, entry in cfg.osc_addresses.items():
        if not entry.enabled:
            continue
        if entry.address in seen:
            problems.append(f"OSC address {entry.address} used by both {seen[entry.address]} and {name}")
        else:
            seen[entry.address] = name
    return problems


def validate(paths: Iterable[Path], *, verbose: bool = False) -> List[Path]:
    failures: List[Path] = []
    errors: List[str] = []
    for path in paths:
        path = path.resolve()
        if verbose:
            print(f"[validate] config → {path}")
        try:
            raw = cv.validate_file(path, source_label=path.name)
        except FileNotFoundError:
            failures.append(path)
            errors.append(f"{path}: file not found")
            continue
        except yaml.YAMLError as exc:
            failures.append(path)
            errors.append(f"{path.name}: YAML parse error: {exc}")
            continue
        except cv.ValidationError as exc:
            failures.append(path)
            errors.extend(exc.errors)
            continue
        cfg = cv.build_config(raw)
        dupes = _duplicate_addresses(cfg)
        if dupes:
            failures.append(path)
            errors.extend(f"{path.name}: {line}" for line in dupes)
            continue
        if verbose:
            for line in _summarize(cfg):
                print(f"[validate]   {line}")
    if errors:
        raise cv.ValidationError(errors)
    if verbose:
        print("[validate] all clear.")
    return failures


def main(argv: Iterable[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Sanity-check telemetry bridge configs")
    ap.add_argument(
        "configs",
        nargs="*",
        type=Path,
        help=f"Config files to check (default: {DEFAULT_CONFIG})",
    )
    ap.add_argument("--quiet", action="store_true", help="Suppress success chatter")
    args = ap.parse_args(list(argv) if argv is not None else None)

    try:
        validate(args.configs or [DEFAULT_CONFIG], verbose=not args.quiet)
    except cv.ValidationError as exc:  # noqa: BLE001
        if not args.quiet:
            print("[validate] config errors detected")
        for line in exc.errors:
            print(f"[validate] ✖ {line}")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
