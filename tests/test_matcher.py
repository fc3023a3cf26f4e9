"""Tests for console glob matching."""

import pytest

from console import GlobPattern, glob_match


class TestGlobMatch:
    """Whole-buffer matching."""

    @pytest.mark.parametrize('text', [
        "root@archiso ~ # ",
        "\x1b[1m\x1b[31mroot\x1b[m@archiso \x1b[1m~ \x1b[m# ",
        "last login: today\nroot@archiso ~ # ",
    ])
    def test_live_prompt_matches(self, text):
        """The live shell prompt matches with or without colour codes."""
        assert glob_match('*@archiso*~*#* ', text)

    def test_other_host_does_not_match(self):
        """A prompt from a different host is not the live prompt."""
        assert not glob_match('*@archiso*~*#* ', 'root@otherhost ~ # ')

    def test_trailing_space_is_significant(self):
        """The final literal space must be present."""
        assert not glob_match('*@archiso*~*#* ', 'root@archiso ~ #')

    def test_unanchored(self):
        """Patterns without leading `*` still match mid-buffer."""
        assert glob_match('archiso login: ', 'Arch Linux 6.9\n\narchiso login: ')

    def test_star_spans_newlines(self):
        assert glob_match('*Command*help): ', 'Command\n(m for help): ')

    def test_case_sensitive(self):
        assert not glob_match('*Password: ', 'password: ')

    def test_only_stars_matches_anything(self):
        assert glob_match('*', '')
        assert glob_match('**', 'anything')


class TestGlobPatternSearch:
    """Match positions."""

    def test_segments_ignore_empty_parts(self):
        assert GlobPattern('**a**b*').segments == ('a', 'b')

    def test_earliest_ending_match(self):
        """The match ends at the first place the pattern completes."""
        start, end = GlobPattern('*]# ').search('[root@box /]# ls\n[root@box /]# ')
        assert start == 11
        assert end == 14

    def test_no_match_returns_none(self):
        assert GlobPattern('*New password: ').search('Retype new password: ') is None


class TestIncrementalMatch:
    """Matching over a buffer that grows between reads."""

    def test_segment_split_across_reads(self):
        """A segment arriving in two chunks is found once complete."""
        match = GlobPattern('*archiso login: ').matcher()
        buffer = 'Arch Linux\narchiso log'
        assert match.search(buffer) is None
        buffer += 'in: '
        assert match.search(buffer) == len(buffer)

    def test_progress_is_kept_between_reads(self):
        """Segments already found are not searched for again."""
        match = GlobPattern('*@archiso*~*#* ').matcher()
        buffer = 'root@archiso'
        assert match.search(buffer) is None
        buffer += ' ~ '
        assert match.search(buffer) is None
        buffer += '# '
        assert match.search(buffer) == len(buffer)
        assert match.start == 4

    def test_completed_match_is_stable(self):
        match = GlobPattern('*ok*').matcher()
        assert match.search('ok') == 2
        assert match.search('ok and more') == 2
