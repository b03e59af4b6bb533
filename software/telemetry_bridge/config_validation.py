"""Config loading + validation for the telemetry bridge."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Dict, Iterable, Mapping, MutableMapping

import yaml

from .packets import PacketKind


class ValidationError(Exception):
    """Aggregates config validation failures."""

    def __init__(self, errors: Iterable[str]):
        messages = list(errors)
        super().__init__("; ".join(messages))
        self.errors = messages


VALID_VALUE_TYPES = {"float", "int", "string"}


@dataclasses.dataclass
class AddressEntry:
    """One row of the OSC address table, keyed elsewhere by field mnemonic."""

    address: str
    value_type: str = "float"
    enabled: bool = True
    allow_zero: bool = False


@dataclasses.dataclass
class BridgeConfig:
    udp_addr: str = "127.0.0.1"
    udp_port: int = 20777
    ws_host: str = "127.0.0.1"
    ws_port: int = 1337
    osc_addr: str = "127.0.0.1"
    osc_port: int = 9000
    enable_osc: bool = False
    broadcast_rate_hz: float = 2
    debug_output: bool = False
    forwarding: Dict[PacketKind, bool] = dataclasses.field(
        default_factory=lambda: {kind: True for kind in PacketKind}
    )
    osc_addresses: Dict[str, AddressEntry] = dataclasses.field(default_factory=dict)

    def forwarding_enabled(self, kind: PacketKind) -> bool:
        return self.forwarding.get(kind, True)

    @property
    def udp_endpoint(self):
        return self.udp_addr, self.udp_port

    @property
    def osc_endpoint(self):
        return self.osc_addr, self.osc_port


# ---- validation primitives -------------------------------------------------


def _check_type(section: Mapping, key: str, path: str, kind: type, label: str, errors: list[str]) -> None:
    if key not in section:
        return
    value = section[key]
    # bool is an int subclass; only accept it where a bool is wanted.
    if isinstance(value, bool) != (kind is bool) or not isinstance(value, kind):
        errors.append(f"'{path}.{key}' must be {label}")


def _check_port(section: Mapping, key: str, path: str, errors: list[str]) -> None:
    if key not in section:
        return
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 65535:
        errors.append(f"'{path}.{key}' must be an integer port 0-65535")


def _section(cfg: Mapping, key: str, source: str, errors: list[str]) -> Mapping:
    value = cfg.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        errors.append(f"{source}: '{key}' must be a mapping")
        return {}
    return value


def _check_addresses(addresses, path: str, errors: list[str]) -> None:
    if not isinstance(addresses, Mapping):
        errors.append(f"'{path}' must be a mapping of field → entry")
        return
    for field_name, entry in addresses.items():
        entry_path = f"{path}.{field_name}"
        if not isinstance(entry, Mapping):
            errors.append(f"'{entry_path}' must be a mapping")
            continue
        address = entry.get("address")
        if not isinstance(address, str) or not address.startswith("/"):
            errors.append(f"'{entry_path}.address' must be a string starting with '/'")
        value_type = entry.get("type", "float")
        if value_type not in VALID_VALUE_TYPES:
            errors.append(f"'{entry_path}.type' must be one of {sorted(VALID_VALUE_TYPES)}")
        for flag in ("enabled", "allowZero"):
            if flag in entry and not isinstance(entry[flag], bool):
                errors.append(f"'{entry_path}.{flag}' must be boolean")


def validate_bridge_config(cfg: Mapping, source: str = "bridge") -> None:
    errors: list[str] = []
    if not isinstance(cfg, Mapping):
        raise ValidationError([f"{source}: config must be a mapping"])

    bridge = _section(cfg, "bridge", source, errors)
    path = f"{source}.bridge"
    _check_type(bridge, "udp_addr", path, str, "a string", errors)
    _check_port(bridge, "udp_port", path, errors)
    _check_type(bridge, "ws_host", path, str, "a string", errors)
    _check_port(bridge, "ws_port", path, errors)
    _check_type(bridge, "debug_output", path, bool, "boolean", errors)
    rate = bridge.get("broadcast_rate_hz", 2)
    if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate < 0:
        errors.append(f"'{path}.broadcast_rate_hz' must be a number >= 0")

    osc = _section(cfg, "osc", source, errors)
    path = f"{source}.osc"
    _check_type(osc, "enabled", path, bool, "boolean", errors)
    _check_type(osc, "addr", path, str, "a string", errors)
    _check_port(osc, "port", path, errors)
    if "addresses" in osc:
        _check_addresses(osc["addresses"], f"{path}.addresses", errors)

    forwarding = _section(cfg, "forwarding", source, errors)
    known = {kind.name for kind in PacketKind}
    for name, flag in forwarding.items():
        if name not in known:
            errors.append(f"{source}: forwarding.{name} is not a packet kind (known: {sorted(known)})")
        elif not isinstance(flag, bool):
            errors.append(f"{source}: forwarding.{name} must be boolean")

    if errors:
        raise ValidationError(errors)


def build_config(cfg: Mapping) -> BridgeConfig:
    """Turn an already-validated mapping into a :class:`BridgeConfig`."""

    bridge = cfg.get("bridge") or {}
    osc = cfg.get("osc") or {}
    forwarding = cfg.get("forwarding") or {}
    defaults = BridgeConfig()

    addresses = {
        name: AddressEntry(
            address=entry["address"],
            value_type=entry.get("type", "float"),
            enabled=entry.get("enabled", True),
            allow_zero=entry.get("allowZero", False),
        )
        for name, entry in (osc.get("addresses") or {}).items()
    }
    return BridgeConfig(
        udp_addr=bridge.get("udp_addr", defaults.udp_addr),
        udp_port=bridge.get("udp_port", defaults.udp_port),
        ws_host=bridge.get("ws_host", defaults.ws_host),
        ws_port=bridge.get("ws_port", defaults.ws_port),
        osc_addr=osc.get("addr", defaults.osc_addr),
        osc_port=osc.get("port", defaults.osc_port),
        enable_osc=osc.get("enabled", defaults.enable_osc),
        broadcast_rate_hz=bridge.get("broadcast_rate_hz", defaults.broadcast_rate_hz),
        debug_output=bridge.get("debug_output", defaults.debug_output),
        forwarding={kind: forwarding.get(kind.name, True) for kind in PacketKind},
        osc_addresses=addresses,
    )


def load_yaml(path: Path) -> MutableMapping:
    return yaml.safe_load(Path(path).read_text()) or {}


def validate_file(path: Path, *, source_label: str | None = None) -> MutableMapping:
    cfg = load_yaml(path)
    validate_bridge_config(cfg, source_label or Path(path).name)
    return cfg


def load_config(path: Path) -> BridgeConfig:
    return build_config(validate_file(path))
