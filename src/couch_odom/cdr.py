from __future__ import annotations

import struct

# Second byte of the encapsulation header
_CDR_BE = 0x00
_CDR_LE = 0x01


class CdrReader:
    """XCDR1 deserializer for ROS 2 messages stored in MCAP bags."""

    def __init__(self, data: bytes) -> None:
        if len(data) < 4:
            raise ValueError("CDR payload shorter than its encapsulation header")
        self.endian = "<" if data[1] == _CDR_LE else ">"
        self.data = memoryview(data)[4:]
        self.offset = 0

    def _align(self, boundary: int) -> None:
        rem = self.offset % boundary
        if rem:
            self.offset += boundary - rem

    def _unpack(self, code: str, size: int) -> int | float:
        self._align(size)
        (val,) = struct.unpack_from(self.endian + code, self.data, self.offset)
        self.offset += size
        return val  # type: ignore[no-any-return]

    def uint8(self) -> int:
        val = self.data[self.offset]
        self.offset += 1
        return val

    def boolean(self) -> bool:
        return self.uint8() != 0

    def int32(self) -> int:
        return int(self._unpack("i", 4))

    def uint32(self) -> int:
        return int(self._unpack("I", 4))

    def float64(self) -> float:
        return float(self._unpack("d", 8))

    def string(self) -> str:
        length = self.uint32()
        # length includes the trailing NUL
        val = bytes(self.data[self.offset : self.offset + length - 1]).decode("utf-8")
        self.offset += length
        return val

    def byte_sequence(self) -> bytes:
        length = self.uint32()
        val = bytes(self.data[self.offset : self.offset + length])
        self.offset += length
        return val

    def float64_array(self, count: int) -> list[float]:
        return [self.float64() for _ in range(count)]

    def stamp(self) -> float:
        """builtin_interfaces/Time as seconds."""
        sec = self.int32()
        nsec = self.uint32()
        return sec + nsec * 1e-9
