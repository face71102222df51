"""Line sender — type commands into the child's stdin pipe."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from shellprobe.pty.errors import WriteError

if TYPE_CHECKING:
    from shellprobe.pty.harness import Session

logger = logging.getLogger(__name__)


class LineSender:
    """Writes newline-terminated lines to a session's input pipe.

    No buffering beyond the OS pipe buffer and no retries: a write that
    fails is raised to the caller straight away. A full pipe blocks.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def send_line(self, session: Session, text: str) -> None:
        """Write ``text`` followed by a single ``\\n``.

        Raises:
            WriteError: The session is stopped or the child closed its stdin.
        """
        if session.closed:
            raise WriteError(f"Session {session.id} is stopped")

        data = (text + "\n").encode(self.encoding)
        view = memoryview(data)
        try:
            while view:
                written = os.write(session.pipe_write_fd, view)
                view = view[written:]
        except OSError as e:
            raise WriteError(f"Session {session.id}: write failed: {e}") from e

        logger.debug("Session %s: sent %r", session.id, text)
