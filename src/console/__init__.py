"""Scripted pty conversations: steps, matching, engine and session log."""

from console.engine import ConsoleEngine, Session, run
from console.matcher import GlobPattern, glob_match
from console.results import (
    Cancelled,
    Completed,
    ProcessExited,
    SessionResult,
    TimedOut,
)
from console.session_log import SessionLog
from console.steps import (
    NO_TERMINATOR,
    Branch,
    Expect,
    Send,
    SendBlock,
    describe,
    flatten,
)

__all__ = [
    'ConsoleEngine',
    'Session',
    'run',
    'GlobPattern',
    'glob_match',
    'SessionResult',
    'Completed',
    'TimedOut',
    'ProcessExited',
    'Cancelled',
    'SessionLog',
    'NO_TERMINATOR',
    'Branch',
    'Expect',
    'Send',
    'SendBlock',
    'describe',
    'flatten',
]
