"""Append-only log of every byte exchanged with a console session."""

from datetime import datetime
from pathlib import Path

from errors import SessionLogError


def _timestamp() -> str:
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')


class SessionLog:
    """Byte log bracketed by start/close markers.

    Output read from the process and input sent to it are appended in the
    order the engine observes them. Each write is flushed so a partial log
    survives a crash or a timeout.
    """

    def __init__(self, path: Path, handle):
        self.path = path
        self._handle = handle
        self._at_line_start = True

    @classmethod
    def open(cls, path) -> 'SessionLog':
        """Open path for appending and write the start marker."""
        path = Path(path)
        try:
            handle = open(path, 'ab')  # pylint: disable=consider-using-with
        except OSError as e:
            raise SessionLogError(f"Cannot open session log {path}: {e}") from e
        log = cls(path, handle)
        log._marker(f"--- Log started at {_timestamp()}")
        return log

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def write(self, data: bytes) -> None:
        """Append raw session bytes."""
        if not data:
            return
        self._handle.write(data)
        self._handle.flush()
        self._at_line_start = data.endswith(b'\n')

    def redact(self, length: int) -> None:
        """Record that `length` secret bytes were sent without logging them."""
        self.write(f"[redacted {length} bytes]\n".encode('utf-8'))

    def close(self) -> None:
        """Write the close marker and close the file. Safe to call twice."""
        if self._handle.closed:
            return
        self._marker(f"--- Log closed at {_timestamp()}")
        self._handle.close()

    def _marker(self, text: str) -> None:
        if not self._at_line_start:
            self._handle.write(b'\n')
        self._handle.write(text.encode('utf-8') + b'\n')
        self._handle.flush()
        self._at_line_start = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
