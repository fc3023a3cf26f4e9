"""Tests for script step types."""

import pytest

from console import NO_TERMINATOR, Branch, Expect, Send, SendBlock, describe, flatten


class TestWire:
    """Bytes written to the console for each step."""

    def test_send_appends_newline(self):
        assert Send('root').wire() == b'root\n'

    def test_send_without_terminator(self):
        assert Send('\t', terminator=NO_TERMINATOR).wire() == b'\t'

    def test_send_encodes_utf8(self):
        assert Send('Zürich').wire() == 'Zürich\n'.encode('utf-8')

    def test_send_block_adds_one_trailing_newline(self):
        assert SendBlock('a\nb').wire() == b'a\nb\n'

    def test_send_block_keeps_existing_newline(self):
        assert SendBlock('a\nb\n').wire() == b'a\nb\n'


class TestFlatten:
    """Branch resolution."""

    def test_true_branch_selected(self):
        steps = [Expect('*# '), Branch(True, (Send('yes'),), (Send('no'),))]
        assert flatten(steps) == [Expect('*# '), Send('yes')]

    def test_false_branch_selected(self):
        steps = [Branch(False, (Send('yes'),), (Send('no'),))]
        assert flatten(steps) == [Send('no')]

    def test_empty_else(self):
        assert flatten([Branch(False, (Send('x'),))]) == []

    def test_nested_branches(self):
        inner = Branch(True, (Send('inner'),))
        steps = [Branch(True, (Send('outer'), inner))]
        assert flatten(steps) == [Send('outer'), Send('inner')]


class TestDescribe:
    """One-line step descriptions."""

    def test_expect(self):
        assert describe(Expect('*]# ')) == "expect '*]# '"

    def test_secret_send_masked(self):
        text = describe(Send('hunter2', secret=True))
        assert 'hunter2' not in text
        assert '********' in text

    def test_send_without_newline_noted(self):
        assert 'no newline' in describe(Send('\t', terminator=NO_TERMINATOR))

    def test_send_block_shows_line_count(self):
        assert describe(SendBlock('a\nb\nc')) == 'send block (3 lines)'

    def test_unknown_step_rejected(self):
        with pytest.raises(TypeError):
            describe(Branch(True))
