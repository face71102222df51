"""Process harness — spawn a child on a pty (output) and a pipe (input)."""

from __future__ import annotations

import logging
import os
import pty
import re
import shlex
import signal
import subprocess
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field

from shellprobe.config import HarnessConfig, ReportConfig
from shellprobe.pty.buffer import OutputBuffer
from shellprobe.pty.errors import SpawnError
from shellprobe.pty.reader import ExpectReader, ExpectResult
from shellprobe.pty.sender import LineSender

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


@dataclass
class Session:
    """One child process under test.

    The harness keeps only the two caller-facing ends: the pty master
    (``pty_read_fd``) to read what the child prints, and the pipe write
    end (``pipe_write_fd``) to feed its stdin. The child-facing ends are
    closed right after spawn. Both kept ends are closed exactly once, by
    ``stop()``.

    The child is *not* killed by ``stop()``; it is expected to exit on
    its own (e.g. after an ``exit`` line or EOF on stdin). Use ``kill()``
    to tear down its whole process group.
    """

    pid: int
    pty_read_fd: int
    pipe_write_fd: int
    command: list[str] = field(default_factory=list)
    default_timeout: float = DEFAULT_TIMEOUT
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    buffer: OutputBuffer = field(default_factory=OutputBuffer)
    reader: ExpectReader = field(default_factory=ExpectReader, repr=False)
    sender: LineSender = field(default_factory=LineSender, repr=False)

    _proc: subprocess.Popen | None = field(default=None, repr=False)
    _closed: bool = field(default=False, init=False)

    def send_line(self, text: str) -> None:
        self.sender.send_line(self, text)

    def expect(
        self,
        pattern: str | re.Pattern[str],
        timeout: float | None = None,
        consume: bool = False,
    ) -> ExpectResult:
        return self.reader.expect(self, pattern, timeout=timeout, consume=consume)

    def reset_buffer(self) -> None:
        """Forget all output seen so far."""
        self.buffer.clear()

    def poll(self) -> int | None:
        """Exit status of the child, or None while it runs."""
        if self._proc is None:
            return None
        return self._proc.poll()

    def kill(self) -> None:
        """SIGKILL the child's process group and reap the child.

        Background jobs started by a shell under test share its process
        group, so they die with it, even when the shell itself has
        already exited.
        """
        if self._proc is None:
            return
        try:
            os.killpg(self.pid, signal.SIGKILL)
            logger.info("Killed session %s (pgid=%d)", self.id, self.pid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self.pid)
        except PermissionError as e:
            logger.warning("Error killing session %s: %s", self.id, e)
            if self._proc.poll() is None:
                self._proc.kill()

        try:
            self._proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            logger.warning("Session %s: pid %d not reaped after SIGKILL", self.id, self.pid)

    @property
    def closed(self) -> bool:
        return self._closed

    def stop(self) -> None:
        """Close the caller-owned handles. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for fd in (self.pty_read_fd, self.pipe_write_fd):
            try:
                os.close(fd)
            except OSError as e:
                logger.debug("Session %s: closing fd %d: %s", self.id, fd, e)
        logger.info("Session %s stopped", self.id)

    close = stop

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class ProcessHarness:
    """Spawns sessions according to a ``HarnessConfig``."""

    def __init__(
        self,
        config: HarnessConfig | None = None,
        report: ReportConfig | None = None,
        cwd: str | None = None,
    ) -> None:
        self.config = config or HarnessConfig()
        self.report = report or ReportConfig()
        self.cwd = cwd

    def start(
        self,
        command: str | Sequence[str] | None = None,
        timeout: float | None = None,
    ) -> Session:
        """Spawn ``command`` with stdin on a pipe and stdout/stderr on a pty.

        Args:
            command: Command line (shell-split) or argument vector.
                Defaults to the configured shell.
            timeout: Default ``expect`` timeout for the new session.

        Returns:
            The running session. The caller must ``stop()`` it.

        Raises:
            SpawnError: The executable is missing or the OS refused.
        """
        if command is None:
            argv = list(self.config.shell)
        elif isinstance(command, str):
            argv = shlex.split(command)
        else:
            argv = list(command)
        if not argv:
            raise SpawnError(argv, "empty command")

        env = {**os.environ, **self.config.env}
        env["TERM"] = self.config.term

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError(argv, e.strerror or str(e)) from e
        try:
            pipe_read_fd, pipe_write_fd = os.pipe()
        except OSError as e:
            os.close(master_fd)
            os.close(slave_fd)
            raise SpawnError(argv, e.strerror or str(e)) from e

        try:
            proc = subprocess.Popen(
                argv,
                stdin=pipe_read_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,  # own process group, for kill()
                env=env,
                cwd=self.cwd,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            os.close(pipe_write_fd)
            reason = getattr(e, "strerror", None) or str(e)
            raise SpawnError(argv, reason) from e
        finally:
            # The child holds its own duplicates of these
            os.close(slave_fd)
            os.close(pipe_read_fd)

        session = Session(
            pid=proc.pid,
            pty_read_fd=master_fd,
            pipe_write_fd=pipe_write_fd,
            command=argv,
            default_timeout=(
                timeout if timeout is not None else self.config.default_timeout
            ),
            reader=ExpectReader(
                chunk_size=self.config.read_chunk_size,
                excerpt_lines=self.report.excerpt_lines,
                excerpt_bytes=self.report.excerpt_bytes,
            ),
            _proc=proc,
        )
        logger.info(
            "Session %s started: pid=%d cmd=%s", session.id, proc.pid, " ".join(argv)
        )
        return session

    def stop(self, session: Session) -> None:
        session.stop()

    @contextmanager
    def open(
        self,
        command: str | Sequence[str] | None = None,
        timeout: float | None = None,
    ) -> Iterator[Session]:
        """Start a session and stop it on every exit path."""
        session = self.start(command, timeout=timeout)
        try:
            yield session
        finally:
            session.stop()
