"""PTY harness — drive a child through a pseudo-terminal and an input pipe.

The child's stdout/stderr go to a pty that the harness reads; its stdin
is a plain pipe that the harness writes lines into. ``expect`` blocks
until a regex shows up in the accumulated transcript or a timeout runs
out.
"""

from shellprobe.pty.buffer import BufferMatch, OutputBuffer
from shellprobe.pty.errors import (
    EndOfOutput,
    HarnessError,
    ReadError,
    SpawnError,
    WriteError,
)
from shellprobe.pty.harness import ProcessHarness, Session
from shellprobe.pty.reader import ExpectMatch, ExpectReader, ExpectResult, ExpectTimeout
from shellprobe.pty.sender import LineSender

__all__ = [
    "BufferMatch",
    "EndOfOutput",
    "ExpectMatch",
    "ExpectReader",
    "ExpectResult",
    "ExpectTimeout",
    "HarnessError",
    "LineSender",
    "OutputBuffer",
    "ProcessHarness",
    "ReadError",
    "Session",
    "SpawnError",
    "WriteError",
]
