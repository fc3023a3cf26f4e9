"""Script step types executed by the console engine.

A step script is a flat, ordered list of Expect / Send / SendBlock values.
Branch only exists while a script is being built; flatten() resolves it
against a condition known at render time.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

NO_TERMINATOR = ''


@dataclass(frozen=True)
class Expect:
    """Wait until `pattern` (glob, `*` only) appears in the console output."""
    pattern: str
    timeout: Optional[float] = None  # None: engine default
    description: str = ''


@dataclass(frozen=True)
class Send:
    """Write a single line (or line fragment) to the console."""
    text: str
    terminator: str = '\n'
    secret: bool = False
    description: str = ''

    def wire(self) -> bytes:
        return (self.text + self.terminator).encode('utf-8')


@dataclass(frozen=True)
class SendBlock:
    """Write a multi-line payload verbatim as one logical remote command.

    Embedded newlines are part of the payload. Exactly one trailing newline
    is guaranteed so the remote shell executes the block.
    """
    text: str
    secret: bool = False
    description: str = ''

    def wire(self) -> bytes:
        text = self.text if self.text.endswith('\n') else self.text + '\n'
        return text.encode('utf-8')


@dataclass(frozen=True)
class Branch:
    """Choose between two step lists at render time."""
    condition: bool
    then_steps: tuple = field(default_factory=tuple)
    else_steps: tuple = field(default_factory=tuple)


ScriptStep = Union[Expect, Send, SendBlock]


def flatten(steps) -> list:
    """Resolve Branch values (recursively) into a flat step list."""
    flat: list = []
    for step in steps:
        if isinstance(step, Branch):
            flat.extend(flatten(step.then_steps if step.condition else step.else_steps))
        else:
            flat.append(step)
    return flat


def describe(step) -> str:
    """One-line human description of a step; secret payloads are masked."""
    if isinstance(step, Expect):
        text = f"expect {step.pattern!r}"
    elif isinstance(step, Send):
        payload = '********' if step.secret else step.text
        suffix = '' if step.terminator else ' (no newline)'
        text = f"send {payload!r}{suffix}"
    elif isinstance(step, SendBlock):
        lines = step.text.count('\n') + (0 if step.text.endswith('\n') else 1)
        text = f"send block ({lines} lines)"
    else:
        raise TypeError(f"Not a script step: {step!r}")
    if step.description:
        return f"{text}  # {step.description}"
    return text
