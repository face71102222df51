"""Accumulating output buffer for a PTY session."""

from __future__ import annotations

import re
from dataclasses import dataclass

from shellprobe.text import EXCERPT_BYTES, EXCERPT_LINES, tail_excerpt

# Round-trips arbitrary bytes, so offsets in the decoded text map back exactly.
_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class BufferMatch:
    """A regex match located in the buffer, with byte offsets."""

    text: str
    start: int
    end: int
    groups: tuple[str | None, ...] = ()


class OutputBuffer:
    """Terminal transcript accumulated from the pty master.

    Bytes are stored raw and decoded as UTF-8 on every search, so a
    multi-byte character split across two reads still matches once its
    tail arrives. Invalid sequences are kept as opaque surrogate escapes
    instead of failing the decode.

    The buffer only grows while ``expect`` runs. It shrinks only through
    ``consume()`` or ``clear()``.
    """

    def __init__(self) -> None:
        self._data = bytearray()
        self._total_bytes: int = 0  # Total bytes ever appended

    def append(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        self._total_bytes += len(chunk)

    def text(self) -> str:
        """Decode the whole buffer."""
        return bytes(self._data).decode("utf-8", errors=_ERRORS)

    def raw(self) -> bytes:
        return bytes(self._data)

    def search(self, pattern: re.Pattern[str]) -> BufferMatch | None:
        """Search the full buffer for ``pattern``.

        Returns:
            The first match with byte offsets into the buffer, or None.
        """
        text = self.text()
        m = pattern.search(text)
        if m is None:
            return None
        start = _byte_len(text[: m.start()])
        end = start + _byte_len(m.group(0))
        return BufferMatch(text=m.group(0), start=start, end=end, groups=m.groups())

    def consume(self, end: int) -> None:
        """Drop the first ``end`` bytes (everything up to a match end)."""
        del self._data[:end]

    def tail(
        self, max_lines: int = EXCERPT_LINES, max_bytes: int = EXCERPT_BYTES
    ) -> str:
        """Cleaned trailing excerpt, for failure reports."""
        return tail_excerpt(self.text(), max_lines=max_lines, max_bytes=max_bytes)

    @property
    def total_bytes(self) -> int:
        """Total bytes ever appended, including consumed ones."""
        return self._total_bytes

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", errors=_ERRORS))
