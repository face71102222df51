"""Expect — wait for a regex to show up in a session's terminal output."""

from __future__ import annotations

import errno
import logging
import os
import re
import select
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shellprobe.pty.errors import EndOfOutput, ReadError
from shellprobe.text import EXCERPT_BYTES, EXCERPT_LINES

if TYPE_CHECKING:
    from shellprobe.pty.harness import Session

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


@dataclass
class ExpectResult:
    """Outcome of one ``expect`` call: a match or a timeout, nothing else."""

    pattern: str
    timed_out: bool = False

    def __bool__(self) -> bool:
        return not self.timed_out


@dataclass
class ExpectMatch(ExpectResult):
    """The pattern was found. ``offset`` is the byte offset in the buffer."""

    text: str = ""
    offset: int = 0
    end: int = 0
    groups: tuple[str | None, ...] = ()
    timed_out: bool = False


@dataclass
class ExpectTimeout(ExpectResult):
    """The pattern did not appear within ``timeout`` seconds."""

    timeout: float = 0.0
    excerpt: str = ""
    timed_out: bool = True

    @property
    def message(self) -> str:
        return (
            f"pattern {self.pattern!r} not found within {self.timeout:g} seconds, "
            f"buffer contained: {self.excerpt!r}"
        )


class ExpectReader:
    """Reads the pty master into the session buffer until a pattern matches.

    Blocks the calling thread; there is no background reader. Each call
    gets its own time budget, measured on the monotonic clock.
    """

    def __init__(
        self,
        chunk_size: int = READ_CHUNK_SIZE,
        excerpt_lines: int = EXCERPT_LINES,
        excerpt_bytes: int = EXCERPT_BYTES,
    ) -> None:
        self.chunk_size = chunk_size
        self.excerpt_lines = excerpt_lines
        self.excerpt_bytes = excerpt_bytes

    def expect(
        self,
        session: Session,
        pattern: str | re.Pattern[str],
        timeout: float | None = None,
        consume: bool = False,
    ) -> ExpectResult:
        """Wait until ``pattern`` appears anywhere in the session transcript.

        Args:
            session: A started session.
            pattern: Regex (string or compiled) searched over the full buffer.
            timeout: Seconds to wait; defaults to the session's timeout.
            consume: Drop the buffer up to the end of the match on success.

        Returns:
            ``ExpectMatch`` or ``ExpectTimeout``.

        Raises:
            ReadError: The session is stopped or the terminal read failed.
            EndOfOutput: The child side closed before the pattern appeared.
        """
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        if timeout is None:
            timeout = session.default_timeout
        buffer = session.buffer

        # Already satisfied by earlier output: no read at all
        found = buffer.search(compiled)

        deadline = time.monotonic() + timeout
        while found is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                excerpt = buffer.tail(self.excerpt_lines, self.excerpt_bytes)
                logger.debug(
                    "Session %s: %r timed out after %gs", session.id, compiled.pattern, timeout
                )
                return ExpectTimeout(
                    pattern=compiled.pattern, timeout=timeout, excerpt=excerpt
                )

            chunk = self._read_chunk(session, remaining)
            if chunk is None:
                continue
            if not chunk:
                raise EndOfOutput(
                    f"Session {session.id}: terminal closed before {compiled.pattern!r} "
                    f"appeared, buffer contained: "
                    f"{buffer.tail(self.excerpt_lines, self.excerpt_bytes)!r}"
                )
            buffer.append(chunk)
            found = buffer.search(compiled)

        logger.debug(
            "Session %s: %r matched at byte %d", session.id, compiled.pattern, found.start
        )
        if consume:
            buffer.consume(found.end)
        return ExpectMatch(
            pattern=compiled.pattern,
            text=found.text,
            offset=found.start,
            end=found.end,
            groups=found.groups,
        )

    def _read_chunk(self, session: Session, timeout: float) -> bytes | None:
        """Read one chunk from the pty master.

        Returns None if nothing became readable within ``timeout``, and
        ``b""`` at end of output.
        """
        if session.closed:
            raise ReadError(f"Session {session.id} is stopped")

        fd = session.pty_read_fd
        try:
            readable, _, _ = select.select([fd], [], [], timeout)
        except (OSError, ValueError) as e:
            raise ReadError(f"Session {session.id}: select failed: {e}") from e
        if not readable:
            return None

        try:
            chunk = os.read(fd, self.chunk_size)
        except OSError as e:
            # Linux reports a hung-up pty master as EIO instead of EOF
            if e.errno == errno.EIO:
                return b""
            raise ReadError(f"Session {session.id}: read failed: {e}") from e

        logger.debug("Session %s: read %d bytes", session.id, len(chunk))
        return chunk
