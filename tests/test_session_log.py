"""Tests for the session log."""

import pytest

from console import SessionLog
from errors import SessionLogError


class TestSessionLog:
    """Markers, appends and failure modes."""

    def test_markers_bracket_content(self, tmp_path):
        path = tmp_path / 'vm.img.log'
        with SessionLog.open(path) as log:
            log.write(b'archiso login: ')
            log.write(b'root\n')

        lines = path.read_text().splitlines()
        assert lines[0].startswith('--- Log started at ')
        assert lines[1] == 'archiso login: root'
        assert lines[2].startswith('--- Log closed at ')

    def test_close_marker_on_own_line(self, tmp_path):
        """A close after a partial line still puts the marker on a new line."""
        path = tmp_path / 's.log'
        log = SessionLog.open(path)
        log.write(b'[root@archiso /]# ')
        log.close()

        assert path.read_text().splitlines()[-1].startswith('--- Log closed at ')

    def test_appends_across_sessions(self, tmp_path):
        path = tmp_path / 's.log'
        for _ in range(2):
            with SessionLog.open(path):
                pass
        assert path.read_text().count('--- Log started at ') == 2

    def test_redact_records_length_only(self, tmp_path):
        path = tmp_path / 's.log'
        with SessionLog.open(path) as log:
            log.redact(9)
        content = path.read_text()
        assert '[redacted 9 bytes]' in content

    def test_close_is_idempotent(self, tmp_path):
        path = tmp_path / 's.log'
        log = SessionLog.open(path)
        log.close()
        log.close()
        assert log.closed
        assert path.read_text().count('--- Log closed at ') == 1

    def test_written_bytes_visible_before_close(self, tmp_path):
        """Writes are flushed immediately."""
        path = tmp_path / 's.log'
        log = SessionLog.open(path)
        log.write(b'partial output')
        assert b'partial output' in path.read_bytes()
        log.close()

    def test_unwritable_path_raises(self, tmp_path):
        with pytest.raises(SessionLogError):
            SessionLog.open(tmp_path / 'missing' / 's.log')
