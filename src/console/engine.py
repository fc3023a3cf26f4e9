"""Console automation engine.

Spawns a process on a pseudo-terminal and holds a scripted conversation
with it: wait for a prompt, send a line, repeat. The engine knows nothing
about installers; it executes whatever flat step list it is given and
reports how the session ended.
"""

import codecs
import logging
import threading
import time
from typing import Optional, Sequence

import pexpect

from console.matcher import GlobPattern
from console.results import (
    Cancelled,
    Completed,
    ProcessExited,
    SessionResult,
    TimedOut,
)
from console.session_log import SessionLog
from console.steps import Expect, Send, SendBlock, describe
from errors import SpawnError

logger = logging.getLogger(__name__)


class Session:
    """One live conversation with one spawned process.

    Owns the child process, the decoded output buffer and the step cursor.
    Bytes are written to the session log before they reach the buffer.
    """

    def __init__(self, child, log: SessionLog, poll_interval: float = 0.1, read_size: int = 4096):
        self.child = child
        self.log = log
        self.poll_interval = poll_interval
        self.read_size = read_size
        self.buffer = ''
        self.cursor = 0
        self.started = time.monotonic()
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._eof = False

    @classmethod
    def spawn(cls, argv: Sequence[str], log: SessionLog, **kwargs) -> 'Session':
        """Start argv on a new pty."""
        if not argv:
            raise SpawnError("Empty spawn command")
        logger.info(f"Spawning: {' '.join(argv)}")
        try:
            child = pexpect.spawn(
                argv[0],
                list(argv[1:]),
                timeout=None,
                echo=False,
                dimensions=(24, 200),
            )
        except (pexpect.ExceptionPexpect, OSError) as e:
            raise SpawnError(f"Cannot start {argv[0]}: {e}") from e
        return cls(child, log, **kwargs)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    @property
    def pid(self) -> int:
        return self.child.pid

    def _read(self, timeout: float) -> bool:
        """Read one chunk into the buffer. Returns False at end of stream."""
        if self._eof:
            return False
        try:
            data = self.child.read_nonblocking(self.read_size, timeout=timeout)
        except pexpect.TIMEOUT:
            return True
        except pexpect.EOF:
            self._eof = True
            self.buffer += self._decoder.decode(b'', final=True)
            return False
        self.log.write(data)
        self.buffer += self._decoder.decode(data)
        return True

    def expect(self, step: Expect, timeout: Optional[float],
               cancel: Optional[threading.Event] = None) -> Optional[SessionResult]:
        """Wait for step.pattern. Returns None on match, else a terminal result."""
        match = GlobPattern(step.pattern).matcher()
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            end = match.search(self.buffer)
            if end is not None:
                self.buffer = self.buffer[end:]
                return None

            if cancel is not None and cancel.is_set():
                return Cancelled(step_index=self.cursor, elapsed=self.elapsed)

            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return TimedOut(step_index=self.cursor, pattern=step.pattern, elapsed=self.elapsed)
                wait = min(wait, remaining)

            if not self._read(wait):
                # Output flushed at EOF may still complete the match
                end = match.search(self.buffer)
                if end is not None:
                    self.buffer = self.buffer[end:]
                    return None
                return ProcessExited(code=self.exit_code(), step_index=self.cursor, elapsed=self.elapsed)

    def send(self, step) -> Optional[SessionResult]:
        """Write the step's wire bytes. Returns a terminal result if the process is gone."""
        data = step.wire()
        try:
            self.child.send(data)
        except OSError as e:
            logger.debug(f"Write failed at step {self.cursor}: {e}")
            return ProcessExited(code=self.exit_code(), step_index=self.cursor, elapsed=self.elapsed)
        if step.secret:
            self.log.redact(len(data))
        else:
            self.log.write(data)
        return None

    def wait_exit(self, timeout: Optional[float],
                  cancel: Optional[threading.Event] = None) -> Optional[SessionResult]:
        """Drain output until the process exits or timeout passes."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._read(self.poll_interval):
            if cancel is not None and cancel.is_set():
                return Cancelled(step_index=self.cursor, elapsed=self.elapsed)
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"Process still running {timeout}s after the last step, terminating")
                self.terminate()
                return None
        return None

    def exit_code(self) -> Optional[int]:
        """Reap the child and return its exit status (negative signal number if killed)."""
        # EOF can arrive just before the child exits; give it a moment
        deadline = time.monotonic() + 1.0
        while not self.child.closed and self.child.isalive() and time.monotonic() < deadline:
            time.sleep(0.05)
        self.close()
        if self.child.exitstatus is not None:
            return self.child.exitstatus
        if self.child.signalstatus is not None:
            return -self.child.signalstatus
        return None

    def terminate(self) -> None:
        """Kill the child if it is still running."""
        try:
            if self.child.isalive():
                self.child.terminate(force=True)
        except pexpect.ExceptionPexpect as e:
            logger.warning(f"Could not terminate pid {self.pid}: {e}")

    def close(self) -> None:
        """Terminate the child, reap it and close the pty."""
        if self.child.closed:
            return
        try:
            self.child.close(force=True)
        except pexpect.ExceptionPexpect as e:
            logger.warning(f"Could not close pid {self.pid}: {e}")


class ConsoleEngine:
    """Runs a flat step script against a spawned process.

    Args:
        default_timeout: Seconds an Expect step without its own timeout may
            wait. None waits forever.
        poll_interval: Read granularity; also bounds cancellation latency.
        exit_timeout: Seconds to wait for the process to exit after the
            last step before it is terminated. None waits forever.
    """

    def __init__(
        self,
        default_timeout: Optional[float] = None,
        poll_interval: float = 0.1,
        exit_timeout: Optional[float] = 300.0,
        read_size: int = 4096,
    ):
        self.default_timeout = default_timeout
        self.poll_interval = poll_interval
        self.exit_timeout = exit_timeout
        self.read_size = read_size

    def run(
        self,
        spawn_command: Sequence[str],
        steps: Sequence,
        log: SessionLog,
        cancel: Optional[threading.Event] = None,
    ) -> SessionResult:
        """Spawn spawn_command and execute steps in order.

        Raises:
            SpawnError: the process could not be started (no step ran).
            TypeError: steps contains something other than Expect/Send/SendBlock.
        """
        steps = list(steps)
        for step in steps:
            if not isinstance(step, (Expect, Send, SendBlock)):
                raise TypeError(f"Unsupported script step: {step!r}")

        session = Session.spawn(
            spawn_command, log,
            poll_interval=self.poll_interval,
            read_size=self.read_size,
        )
        logger.info(f"Session started (pid {session.pid}, {len(steps)} steps)")

        try:
            result = self._execute(session, steps, cancel)
        except KeyboardInterrupt:
            logger.warning(f"Interrupted at step {session.cursor}, terminating pid {session.pid}")
            result = Cancelled(step_index=session.cursor, elapsed=session.elapsed)
        finally:
            session.close()

        if result.ok:
            logger.info(result.summary())
        else:
            logger.error(result.summary())
        return result

    def _execute(self, session: Session, steps: list, cancel: Optional[threading.Event]) -> SessionResult:
        for index, step in enumerate(steps):
            session.cursor = index
            if cancel is not None and cancel.is_set():
                return Cancelled(step_index=index, elapsed=session.elapsed)

            if step.description:
                logger.info(f"[step {index}] {step.description}")
            logger.debug(f"[step {index}] {describe(step)}")

            if isinstance(step, Expect):
                timeout = step.timeout if step.timeout is not None else self.default_timeout
                outcome = session.expect(step, timeout, cancel)
            else:
                outcome = session.send(step)
            if outcome is not None:
                return outcome

        session.cursor = len(steps)
        outcome = session.wait_exit(self.exit_timeout, cancel)
        if outcome is not None:
            return outcome
        return Completed(elapsed=session.elapsed)


def run(spawn_command: Sequence[str], steps: Sequence, log: SessionLog,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None) -> SessionResult:
    """Run steps against spawn_command with a default per-Expect timeout."""
    return ConsoleEngine(default_timeout=timeout).run(spawn_command, steps, log, cancel=cancel)
