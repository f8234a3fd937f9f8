"""Decoder for PReg-style binary registry-policy files (``Registry.pol``).

Layout::

    "PReg" <u32 version>
    [key\\0;valueName\\0;<u32 type>;<u32 size>;<size bytes of data>]
    ...

Delimiters and strings are UTF-16LE. The data segment is consumed by its
declared size, never by scanning for delimiters.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import BadSignatureError, MalformedEntryError, PolicyFileError, TruncatedError
from .models import RegistrySetting


LOG = logging.getLogger(__name__)

SIGNATURE = b"PReg"
HEADER_SIZE = 8

_OPEN = "[".encode("utf-16-le")
_CLOSE = "]".encode("utf-16-le")
_SEP = ";".encode("utf-16-le")
_NUL = b"\x00\x00"


@dataclass
class PolicyFile:
    version: int
    settings: list[RegistrySetting] = field(default_factory=list)
    error: Optional[PolicyFileError] = None


class BinaryPolicyReader:
    def __init__(self, max_data_size: Optional[int] = None):
        self.max_data_size = max_data_size

    def parse(self, data: bytes) -> list[RegistrySetting]:
        """Decode every entry, raising on the first structural problem.

        The raised :class:`PolicyFileError` carries the entries decoded so far.
        """
        result = self.read(data)
        if result.error is not None:
            raise result.error
        return result.settings

    def parse_file(self, path: Path) -> list[RegistrySetting]:
        return self.parse(Path(path).read_bytes())

    def read(self, data: bytes) -> PolicyFile:
        """Decode as much as possible; only a bad signature is raised."""
        buf = bytes(data)
        if buf[:4] != SIGNATURE[:len(buf[:4])]:
            raise BadSignatureError(f"Bad signature {buf[:4]!r}, expected {SIGNATURE!r}", offset=0)
        if len(buf) < HEADER_SIZE:
            return PolicyFile(
                version=0,
                error=TruncatedError("Header shorter than 8 bytes", offset=len(buf)),
            )

        version = struct.unpack_from("<I", buf, 4)[0]
        result = PolicyFile(version=version)
        cursor = _Cursor(buf, HEADER_SIZE)
        try:
            while not cursor.at_end():
                result.settings.append(self._read_entry(cursor))
        except PolicyFileError as exc:
            exc.settings = list(result.settings)
            exc.version = version
            result.error = exc
            LOG.warning("%s after %d settings: %s", exc.kind, len(result.settings), exc)
        return result

    def _read_entry(self, cursor: "_Cursor") -> RegistrySetting:
        start = cursor.pos
        cursor.expect(_OPEN, "'['")
        key = cursor.read_wstring()
        cursor.expect(_SEP, "';' after key")
        value_name = cursor.read_wstring()
        cursor.expect(_SEP, "';' after value name")
        value_type = cursor.read_u32()
        cursor.expect(_SEP, "';' after type")
        size = cursor.read_u32()
        if self.max_data_size is not None and size > self.max_data_size:
            raise MalformedEntryError(
                f"Declared data size {size} exceeds limit {self.max_data_size}",
                offset=cursor.pos - 4,
            )
        cursor.expect(_SEP, "';' after size")
        payload = cursor.read_bytes(size)
        cursor.expect(_CLOSE, "']'")
        return RegistrySetting(key=key, value_name=value_name, value_type=value_type, data=payload, offset=start)


class _Cursor:
    def __init__(self, buf: bytes, pos: int):
        self.buf = buf
        self.pos = pos

    def at_end(self) -> bool:
        return self.pos >= len(self.buf)

    def _need(self, n: int, what: str) -> None:
        if self.pos + n > len(self.buf):
            raise TruncatedError(
                f"Entry truncated reading {what}: need {n} bytes, {len(self.buf) - self.pos} left",
                offset=self.pos,
            )

    def expect(self, token: bytes, what: str) -> None:
        self._need(len(token), what)
        found = self.buf[self.pos:self.pos + len(token)]
        if found != token:
            raise MalformedEntryError(f"Expected {what}, found {found!r}", offset=self.pos)
        self.pos += len(token)

    def read_wstring(self) -> str:
        end = self.pos
        while True:
            self._need(end - self.pos + 2, "null-terminated string")
            if self.buf[end:end + 2] == _NUL:
                break
            end += 2
        text = self.buf[self.pos:end].decode("utf-16-le", errors="surrogatepass")
        self.pos = end + 2
        return text

    def read_u32(self) -> int:
        self._need(4, "u32")
        value = struct.unpack_from("<I", self.buf, self.pos)[0]
        self.pos += 4
        return value

    def read_bytes(self, n: int) -> bytes:
        self._need(n, f"{n} data bytes")
        chunk = self.buf[self.pos:self.pos + n]
        self.pos += n
        return chunk
