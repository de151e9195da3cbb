"""Binary Canonical Serialization (BCS) for Move transaction payloads."""

import struct
from typing import Callable, Iterable, TypeVar


T = TypeVar("T")

MAX_U8 = 2 ** 8 - 1
MAX_U64 = 2 ** 64 - 1


def encode_u64(value: int) -> bytes:
    """Little-endian u64, the encoding Move entry functions expect for u64 args."""
    if not 0 <= value <= MAX_U64:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack("<Q", value)


def parse_address(address: str) -> bytes:
    """32-byte account address from a (possibly short) 0x-prefixed hex string."""
    hex_str = address[2:] if address.startswith("0x") else address
    if len(hex_str) > 64:
        raise ValueError(f"Address too long: {address}")
    return bytes.fromhex(hex_str.rjust(64, "0"))


class Serializer:
    """Accumulates BCS-encoded values."""

    def __init__(self):
        self._buffer = bytearray()

    def output(self) -> bytes:
        return bytes(self._buffer)

    def u8(self, value: int) -> None:
        if not 0 <= value <= MAX_U8:
            raise ValueError(f"u8 out of range: {value}")
        self._buffer.append(value)

    def u64(self, value: int) -> None:
        self._buffer.extend(encode_u64(value))

    def uleb128(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"uleb128 cannot encode negative value: {value}")
        while value >= 0x80:
            self._buffer.append((value & 0x7F) | 0x80)
            value >>= 7
        self._buffer.append(value)

    def fixed_bytes(self, value: bytes) -> None:
        self._buffer.extend(value)

    def to_bytes(self, value: bytes) -> None:
        """Length-prefixed byte vector."""
        self.uleb128(len(value))
        self._buffer.extend(value)

    def str(self, value: str) -> None:
        self.to_bytes(value.encode("utf-8"))

    def address(self, address: str) -> None:
        self.fixed_bytes(parse_address(address))

    def sequence(self, values: Iterable[T], encoder: Callable[["Serializer", T], None]) -> None:
        values = list(values)
        self.uleb128(len(values))
        for value in values:
            encoder(self, value)
