"""Errors raised by the PTY harness.

Timeouts are not errors: ``expect`` reports them as an ``ExpectTimeout``
value. Everything here means the session (or its spawn) is unusable.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for harness failures."""


class SpawnError(HarnessError):
    """The child process could not be created."""

    def __init__(self, command: list[str], reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to spawn {' '.join(command)!r}: {reason}")


class WriteError(HarnessError):
    """Writing to the child's stdin pipe failed (closed handle or broken pipe)."""


class ReadError(HarnessError):
    """Reading the terminal failed for a reason other than a timeout."""


class EndOfOutput(ReadError):
    """The terminal reached EOF: every holder of the pty slave has exited."""
