"""Shared fixtures: a Session wired to plain pipes instead of a real pty."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator

import pytest

from shellprobe.pty.harness import Session


class PipeRig:
    """A Session whose terminal side and stdin side are ordinary pipes.

    ``feed()`` plays the child writing to its terminal; ``read_input()``
    plays the child reading its stdin.
    """

    def __init__(self, default_timeout: float = 1.0) -> None:
        self.out_r, self.out_w = os.pipe()
        self.in_r, self.in_w = os.pipe()
        self.session = Session(
            pid=0,
            pty_read_fd=self.out_r,
            pipe_write_fd=self.in_w,
            default_timeout=default_timeout,
        )
        self._timers: list[threading.Timer] = []

    def feed(self, data: bytes) -> None:
        os.write(self.out_w, data)

    def feed_later(self, delay: float, data: bytes) -> None:
        timer = threading.Timer(delay, self.feed, args=(data,))
        self._timers.append(timer)
        timer.start()

    def close_output(self) -> None:
        """The child side hangs up."""
        os.close(self.out_w)
        self.out_w = -1

    def close_input(self) -> None:
        """The child stops reading its stdin."""
        os.close(self.in_r)
        self.in_r = -1

    def read_input(self) -> bytes:
        return os.read(self.in_r, 4096)

    def close(self) -> None:
        for timer in self._timers:
            timer.cancel()
            timer.join()
        self.session.stop()
        for fd in (self.out_w, self.in_r):
            if fd != -1:
                os.close(fd)


@pytest.fixture
def rig() -> Iterator[PipeRig]:
    r = PipeRig()
    yield r
    r.close()
