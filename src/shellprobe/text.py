"""Terminal text cleanup — make transcripts readable in failure reports."""

from __future__ import annotations

import re

EXCERPT_LINES = 20
EXCERPT_BYTES = 2048

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07")


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences (CSI and OSC) from text."""
    return _ANSI_RE.sub("", text)


def sanitize_binary_output(text: str) -> str:
    """Remove binary garbage from output.

    Keeps printable chars, tabs and newlines. Carriage returns are dropped
    since the pty turns every ``\\n`` into ``\\r\\n``. Undecodable bytes
    (lone surrogates from ``surrogateescape``) are dropped too.
    """
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if ch in ("\t", "\n"):
            cleaned.append(ch)
        elif cp >= 32 and cp not in range(0x7F, 0xA0):
            # C1 controls, surrogates and format chars
            if cp not in range(0xD800, 0xE000) and cp not in range(0xFFF9, 0xFFFC):
                cleaned.append(ch)
    return "".join(cleaned)


def tail_excerpt(
    text: str,
    max_lines: int = EXCERPT_LINES,
    max_bytes: int = EXCERPT_BYTES,
) -> str:
    """Return the cleaned tail of a terminal transcript.

    Errors and prompts tend to be at the end, so the tail is kept.

    Args:
        text: Decoded transcript, possibly containing escape sequences.
        max_lines: Maximum number of lines to keep.
        max_bytes: Maximum UTF-8 bytes to keep.

    Returns:
        The cleaned excerpt, prefixed with ``...`` when something was cut.
    """
    cleaned = sanitize_binary_output(strip_ansi(text))
    if not cleaned:
        return cleaned

    lines = cleaned.split("\n")
    cut = len(lines) > max_lines
    result = "\n".join(lines[-max_lines:])

    encoded = result.encode("utf-8")
    if len(encoded) > max_bytes:
        result = encoded[-max_bytes:].decode("utf-8", errors="ignore")
        cut = True

    return f"...{result}" if cut else result
