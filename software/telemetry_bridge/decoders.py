"""Frame → record decoders, one per packet kind.

Decoding is all-or-nothing: a frame shorter than its kind's expected
length raises before a single field is read, so a half-filled record can
never reach the sinks.
"""

from __future__ import annotations

from .packets import (
    CAR_SLOTS,
    CAR_TELEMETRY_SLOT_SIZE,
    EXPECTED_LENGTHS,
    MIN_FRAME_LENGTH,
    PACKET_ID_OFFSET,
    PACKET_RECORDS,
    CarTelemetryData,
    CarTelemetryPacket,
    PacketHeader,
    PacketKind,
)


class DecodeError(Exception):
    """A frame could not be turned into a record."""


class FrameLengthError(DecodeError):
    def __init__(self, kind: PacketKind, got: int, want: int):
        super().__init__(f"{kind.name}: data too short (got {got}, want {want})")
        self.kind = kind
        self.got = got
        self.want = want


class PlayerIndexError(DecodeError):
    def __init__(self, index: int):
        super().__init__(f"CarTelemetry: invalid player car index {index}")
        self.index = index


class UnknownPacketKind(DecodeError):
    def __init__(self, packet_id: int):
        super().__init__(f"unknown packet id {packet_id}")
        self.packet_id = packet_id


def _check_length(kind: PacketKind, data) -> None:
    want = EXPECTED_LENGTHS[kind]
    if len(data) < want:
        raise FrameLengthError(kind, len(data), want)


def _decoder_for(kind: PacketKind):
    record_cls = PACKET_RECORDS[kind]

    def decode_packet(data):
        _check_length(kind, data)
        return record_cls.read(data)

    decode_packet.__name__ = f"decode_{kind.name.lower()}"
    return decode_packet


def decode_car_telemetry(data) -> CarTelemetryPacket:
    """Extract only the player's car from a CarTelemetry frame."""

    _check_length(PacketKind.CarTelemetry, data)
    header = PacketHeader.read(data)
    index = header.player_car_index
    if index >= CAR_SLOTS:
        raise PlayerIndexError(index)
    start = PacketHeader.size + index * CAR_TELEMETRY_SLOT_SIZE
    return CarTelemetryPacket(header, CarTelemetryData.read(data, start))


DECODERS = {kind: _decoder_for(kind) for kind in PacketKind}
DECODERS[PacketKind.CarTelemetry] = decode_car_telemetry


def packet_kind(data) -> PacketKind:
    """Read the discriminant byte; the frame must hold at least a header prefix."""

    if len(data) < MIN_FRAME_LENGTH:
        raise DecodeError(f"frame of {len(data)} bytes is shorter than a header")
    packet_id = data[PACKET_ID_OFFSET]
    try:
        return PacketKind(packet_id)
    except ValueError:
        raise UnknownPacketKind(packet_id) from None


def decode(kind: PacketKind, data):
    return DECODERS[kind](data)


def decode_frame(data):
    """Return ``(kind, record)`` for a raw frame or raise :class:`DecodeError`."""

    kind = packet_kind(data)
    return kind, decode(kind, data)
