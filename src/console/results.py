"""Terminal outcomes of a console session."""

from dataclasses import dataclass
from typing import Optional

from errors import PatternTimeout, UnexpectedProcessExit


@dataclass(frozen=True)
class SessionResult:
    """Base class for session outcomes."""
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return False

    def raise_for_status(self) -> None:
        """Raise the matching error for failed sessions."""

    def summary(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Completed(SessionResult):
    """Every step ran and the process was reaped."""

    @property
    def ok(self) -> bool:
        return True

    def summary(self) -> str:
        return f"Completed in {self.elapsed:.1f}s"


@dataclass(frozen=True)
class TimedOut(SessionResult):
    """An Expect step saw no match before its timeout."""
    step_index: int = 0
    pattern: str = ''

    def raise_for_status(self) -> None:
        raise PatternTimeout(self.step_index, self.pattern)

    def summary(self) -> str:
        return f"Timed out at step {self.step_index} waiting for {self.pattern!r}"


@dataclass(frozen=True)
class ProcessExited(SessionResult):
    """The process exited before the script completed."""
    code: Optional[int] = None
    step_index: int = 0

    def raise_for_status(self) -> None:
        raise UnexpectedProcessExit(self.code, self.step_index)

    def summary(self) -> str:
        return f"Process exited with status {self.code} at step {self.step_index}"


@dataclass(frozen=True)
class Cancelled(SessionResult):
    """The caller cancelled the session; the process was terminated."""
    step_index: int = 0

    def summary(self) -> str:
        return f"Cancelled at step {self.step_index}"
