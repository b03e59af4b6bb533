"""Decode F1 UDP telemetry and fan individual fields out to WebSocket and OSC."""

from .config_validation import AddressEntry, BridgeConfig, ValidationError, load_config
from .decoders import DecodeError, FrameLengthError, PlayerIndexError, decode, decode_frame
from .dispatcher import BridgeSession
from .gate import ThrottleGate
from .packets import EXPECTED_LENGTHS, PacketKind

__all__ = [
    "AddressEntry",
    "BridgeConfig",
    "BridgeSession",
    "DecodeError",
    "EXPECTED_LENGTHS",
    "FrameLengthError",
    "PacketKind",
    "PlayerIndexError",
    "ThrottleGate",
    "ValidationError",
    "decode",
    "decode_frame",
    "load_config",
]
