"""Flatten decoded records into ``(key, value)`` leaves for the sinks.

Two key schemes share the same traversal rules:

* hierarchical keys for the WebSocket feed, e.g.
  ``LapData/LapData[3]/CarPosition`` or
  ``CarTelemetry/CarTelemetryData/TyresPressureRL``;
* bare mnemonic keys for OSC, e.g. ``Speed`` or ``TyresPressureRL``, which
  are looked up in the operator's address table.

Any 4-slot array is a per-wheel array and gets ``RL``/``RR``/``FL``/``FR``
tags in index order.  Everything else is indexed numerically.
"""

from __future__ import annotations

from typing import Iterator, NamedTuple

from .packets import CAR_SLOTS, PacketKind
from .schema import Array, Chars, Record

WHEEL_TAGS = ("RL", "RR", "FL", "FR")


class Leaf(NamedTuple):
    key: str
    value: object
    codec: object


def _is_record(codec) -> bool:
    return isinstance(codec, type) and issubclass(codec, Record)


def _leaf(key: str, codec, value) -> Leaf:
    if isinstance(codec, Chars):
        return Leaf(key, Chars.text(value), codec)
    return Leaf(key, value, codec)


# ---- hierarchical (WebSocket) ----------------------------------------------


def _ws_labels(length: int):
    if length == len(WHEEL_TAGS):
        return WHEEL_TAGS
    return [f"[{i}]" for i in range(length)]


def _ws_record(record: Record, path: str) -> Iterator[Leaf]:
    for name, codec, value in record.items():
        yield from _ws_field(f"{path}/{name}", codec, value)


def _ws_field(key: str, codec, value) -> Iterator[Leaf]:
    if _is_record(codec):
        yield from _ws_record(value, key)
    elif isinstance(codec, Array):
        for label, elem in zip(_ws_labels(codec.length), value):
            yield from _ws_field(key + label, codec.elem, elem)
    else:
        yield _leaf(key, codec, value)


def walk_hierarchical(kind: PacketKind, packet: Record) -> Iterator[Leaf]:
    """Yield every leaf of ``packet`` keyed ``Kind/Field/...``."""

    return _ws_record(packet, kind.name)


# ---- mnemonic (OSC) ---------------------------------------------------------


def _osc_labels(length: int):
    if length == len(WHEEL_TAGS):
        return WHEEL_TAGS
    return [f"_{i}" for i in range(length)]


def _osc_record(record: Record, prefix: str, player: int) -> Iterator[Leaf]:
    for name, codec, value in record.items():
        yield from _osc_field(prefix + name, codec, value, prefix, player)


def _osc_field(key: str, codec, value, prefix: str, player: int) -> Iterator[Leaf]:
    if _is_record(codec):
        # Nested single records (header, time-trial data sets) keep bare names.
        yield from _osc_record(value, prefix, player)
    elif isinstance(codec, Array):
        if _is_record(codec.elem) and codec.length == CAR_SLOTS:
            # Car-indexed arrays: only the player's own car goes out over OSC.
            if player < CAR_SLOTS:
                yield from _osc_record(value[player], prefix, player)
            return
        for label, elem in zip(_osc_labels(codec.length), value):
            if _is_record(codec.elem):
                yield from _osc_record(elem, f"{key}{label}_", player)
            else:
                yield from _osc_field(key + label, codec.elem, elem, prefix, player)
    else:
        yield _leaf(key, codec, value)


def walk_mnemonic(packet: Record) -> Iterator[Leaf]:
    """Yield leaves keyed by bare field mnemonics (``Speed``, ``WheelSpeedFL``)."""

    return _osc_record(packet, "", packet.header.player_car_index)
