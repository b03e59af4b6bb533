"""Fixed-layout codecs for the F1 UDP wire format.

Every packet on the wire is a packed little-endian struct whose arrays are
always full-size.  Rather than poking offsets by hand for ~400 fields we
describe each struct once as an ordered list of ``(WireName, codec)`` pairs
and let :class:`Record` do the walking.

A codec is anything with a ``size`` (bytes on the wire) and a
``read(buf, offset)`` method.  Records themselves are codecs, so nesting
(header inside packet, car record inside a 22-slot array) just works.
"""

from __future__ import annotations

import re
import struct
from typing import Iterator, Tuple


class Scalar:
    """One fixed-width number."""

    def __init__(self, fmt: str, name: str, tolerance: float | None = None):
        self.struct = struct.Struct("<" + fmt)
        self.fmt = fmt
        self.name = name
        self.size = self.struct.size
        self.is_float = fmt in "fd"
        # Equality slack used by the throttle gate; ``None`` means exact.
        self.tolerance = tolerance

    def read(self, buf, offset: int = 0):
        return self.struct.unpack_from(buf, offset)[0]

    def __repr__(self) -> str:
        return self.name


U8 = Scalar("B", "u8")
I8 = Scalar("b", "i8")
U16 = Scalar("H", "u16")
I16 = Scalar("h", "i16")
U32 = Scalar("I", "u32")
I32 = Scalar("i", "i32")
U64 = Scalar("Q", "u64")
F32 = Scalar("f", "f32", tolerance=1e-4)
F64 = Scalar("d", "f64", tolerance=1e-7)


class Array:
    """Fixed-length array of any codec (scalars, records or other arrays)."""

    def __init__(self, elem, length: int):
        self.elem = elem
        self.length = length
        self.size = elem.size * length

    def read(self, buf, offset: int = 0) -> tuple:
        step = self.elem.size
        return tuple(self.elem.read(buf, offset + i * step) for i in range(self.length))

    def __repr__(self) -> str:
        return f"{self.elem!r}[{self.length}]"


class Chars:
    """NUL-padded byte string such as a driver name.

    The raw bytes are kept on the record so nothing is lost; :meth:`text`
    gives the printable form used when the value is forwarded.
    """

    tolerance = None
    is_float = False

    def __init__(self, length: int):
        self.length = length
        self.size = length

    def read(self, buf, offset: int = 0) -> bytes:
        return bytes(buf[offset : offset + self.length])

    @staticmethod
    def text(raw: bytes) -> str:
        return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return f"chars[{self.length}]"


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """``WorldPositionX`` → ``world_position_x``, ``DRSAllowed`` → ``drs_allowed``."""

    return _CAMEL_BOUNDARY.sub("_", name).lower()


class Record:
    """Base class for a packed struct.

    Subclasses set ``FIELDS``; the byte size and attribute names are
    derived once at class creation.  Records whose fields are all scalars
    are unpacked with a single precompiled :class:`struct.Struct`.
    """

    FIELDS: Tuple[Tuple[str, object], ...] = ()
    size = 0

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.size = sum(codec.size for _name, codec in cls.FIELDS)
        cls._attrs = tuple(snake_case(name) for name, _codec in cls.FIELDS)
        if cls.FIELDS and all(isinstance(codec, Scalar) for _n, codec in cls.FIELDS):
            cls._flat = struct.Struct("<" + "".join(codec.fmt for _n, codec in cls.FIELDS))
        else:
            cls._flat = None

    def __init__(self, *values):
        if len(values) != len(self._attrs):
            raise TypeError(
                f"{type(self).__name__} expects {len(self._attrs)} values, got {len(values)}"
            )
        for attr, value in zip(self._attrs, values):
            setattr(self, attr, value)

    @classmethod
    def read(cls, buf, offset: int = 0):
        if cls._flat is not None:
            return cls(*cls._flat.unpack_from(buf, offset))
        values = []
        for _name, codec in cls.FIELDS:
            values.append(codec.read(buf, offset))
            offset += codec.size
        return cls(*values)

    def items(self) -> Iterator[Tuple[str, object, object]]:
        """Yield ``(wire_name, codec, value)`` in declaration order."""

        for (name, codec), attr in zip(self.FIELDS, self._attrs):
            yield name, codec, getattr(self, attr)

    def values(self) -> tuple:
        return tuple(getattr(self, attr) for attr in self._attrs)

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.values() == other.values()

    def __hash__(self):
        return hash((type(self).__name__, self.values()))

    def __repr__(self) -> str:
        body = ", ".join(f"{attr}={getattr(self, attr)!r}" for attr in self._attrs[:4])
        more = ", ..." if len(self._attrs) > 4 else ""
        return f"{type(self).__name__}({body}{more})"
