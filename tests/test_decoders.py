import struct
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from scripts.check_stack import build_frame, car_telemetry_frame
from software.telemetry_bridge.decoders import (
    DecodeError,
    FrameLengthError,
    PlayerIndexError,
    UnknownPacketKind,
    decode,
    decode_frame,
    packet_kind,
)
from software.telemetry_bridge.packets import (
    EXPECTED_LENGTHS,
    PACKET_RECORDS,
    PacketHeader,
    PacketKind,
)

WIRE_LENGTHS = {
    PacketKind.Motion: 1349,
    PacketKind.Session: 753,
    PacketKind.LapData: 1285,
    PacketKind.Event: 45,
    PacketKind.Participants: 1284,
    PacketKind.CarSetups: 1133,
    PacketKind.CarTelemetry: 1381,
    PacketKind.CarStatus: 1239,
    PacketKind.FinalClassification: 1042,
    PacketKind.LobbyInfo: 954,
    PacketKind.CarDamage: 1041,
    PacketKind.SessionHistory: 1460,
    PacketKind.TyreSets: 231,
    PacketKind.MotionEx: 273,
    PacketKind.TimeTrial: 101,
    PacketKind.LapPositions: 1131,
}


def test_expected_lengths_match_wire_format():
    assert EXPECTED_LENGTHS == WIRE_LENGTHS
    assert PacketHeader.size == 29


def test_record_sizes_match_frames_except_car_telemetry():
    for kind, record in PACKET_RECORDS.items():
        if kind is PacketKind.CarTelemetry:
            assert record.size == 29 + 60
            continue
        assert record.size == WIRE_LENGTHS[kind], kind.name


@pytest.mark.parametrize("kind", list(PacketKind))
def test_every_kind_decodes_at_exact_length(kind):
    frame = build_frame(kind, frame_id=7)
    record = decode(kind, frame)
    assert isinstance(record, PACKET_RECORDS[kind])
    assert record.header.packet_id == int(kind)
    assert record.header.frame_identifier == 7


@pytest.mark.parametrize("kind", list(PacketKind))
def test_every_kind_rejects_one_byte_short(kind):
    want = WIRE_LENGTHS[kind]
    frame = build_frame(kind, length=want - 1)
    with pytest.raises(FrameLengthError) as excinfo:
        decode(kind, frame)
    assert excinfo.value.got == want - 1
    assert excinfo.value.want == want
    assert "data too short" in str(excinfo.value)


def test_longer_frames_are_accepted():
    frame = build_frame(PacketKind.TyreSets, length=WIRE_LENGTHS[PacketKind.TyreSets] + 16)
    kind, record = decode_frame(frame)
    assert kind is PacketKind.TyreSets
    assert record.header.packet_id == 12


def test_decoding_is_deterministic():
    frame = build_frame(PacketKind.Motion, session_time=12.5)
    struct.pack_into("<fff", frame, 29, 1.5, -2.0, 300.25)
    first = decode(PacketKind.Motion, frame)
    second = decode(PacketKind.Motion, bytes(frame))
    assert first == second
    assert first.car_motion_data[0].world_position_x == 1.5
    assert first.header.session_time == 12.5


def test_header_fields_parse_little_endian():
    frame = build_frame(PacketKind.Session, player_car_index=5)
    header = decode(PacketKind.Session, frame).header
    assert header.packet_format == 2025
    assert header.game_year == 25
    assert header.session_uid == 0xF1F1F1F1
    assert header.player_car_index == 5
    assert header.secondary_player_car_index == 255


def test_car_telemetry_extracts_player_slot():
    frame = car_telemetry_frame(speed=250, gear=6, player_car_index=3)
    # Slot 0 carries a different car; it must not leak into the result.
    struct.pack_into("<H", frame, 29, 99)
    record = decode(PacketKind.CarTelemetry, frame)
    assert record.car_telemetry_data.speed == 250
    assert record.car_telemetry_data.gear == 6
    assert record.car_telemetry_data.engine_rpm == 9250


def test_car_telemetry_rejects_out_of_range_player_index():
    frame = build_frame(PacketKind.CarTelemetry, player_car_index=22)
    with pytest.raises(PlayerIndexError) as excinfo:
        decode(PacketKind.CarTelemetry, frame)
    assert excinfo.value.index == 22


def test_event_frame_one_byte_short():
    frame = build_frame(PacketKind.Event, length=44)
    with pytest.raises(FrameLengthError) as excinfo:
        decode_frame(frame)
    assert excinfo.value.kind is PacketKind.Event
    assert (excinfo.value.got, excinfo.value.want) == (44, 45)


def test_event_code_and_details():
    frame = build_frame(PacketKind.Event)
    frame[29:33] = b"FTLP"
    frame[33] = 4
    record = decode(PacketKind.Event, frame)
    assert record.event_string_code == b"FTLP"
    assert record.event_details[0] == 4
    assert len(record.event_details) == 12


def test_nested_arrays_and_names():
    frame = build_frame(PacketKind.Participants)
    name_offset = 29 + 1 + 2 * 57 + 7
    frame[name_offset : name_offset + 6] = b"NORRIS"
    record = decode(PacketKind.Participants, frame)
    assert record.participants[2].name.rstrip(b"\x00") == b"NORRIS"

    grid = build_frame(PacketKind.LapPositions)
    grid[31 + 3 * 22 + 5] = 9
    positions = decode(PacketKind.LapPositions, grid).position_for_vehicle_idx
    assert len(positions) == 50 and len(positions[0]) == 22
    assert positions[3][5] == 9


def test_packet_kind_guards():
    with pytest.raises(DecodeError):
        packet_kind(b"\x00" * 23)
    frame = build_frame(PacketKind.Motion)
    frame[6] = 16
    with pytest.raises(UnknownPacketKind) as excinfo:
        packet_kind(frame)
    assert excinfo.value.packet_id == 16
    assert packet_kind(build_frame(PacketKind.LapData)) is PacketKind.LapData
