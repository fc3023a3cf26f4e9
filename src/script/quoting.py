"""Shell quoting for values typed into the remote shell.

Every templated value that the remote shell parses goes through one of
these helpers, so quotes, backslashes, `$` and newlines in a value can
never end the enclosing command early.
"""

import base64
import shlex


def quote(value: str) -> str:
    """POSIX single-quote a value (round-trips through sh unchanged)."""
    return shlex.quote(value)


def heredoc_delimiter(body: str, base: str = 'ARCHVM_EOF') -> str:
    """Pick a heredoc delimiter that does not occur as a line of body."""
    lines = set(body.splitlines())
    delimiter = base
    n = 0
    while delimiter in lines:
        n += 1
        delimiter = f"{base}_{n}"
    return delimiter


def heredoc(command: str, body: str, base: str = 'ARCHVM_EOF') -> str:
    """Render `command <<'DELIM'` followed by body, verbatim, and DELIM.

    The quoted delimiter disables expansion inside the body, so it reaches
    the command byte for byte.
    """
    delimiter = heredoc_delimiter(body, base)
    if not body.endswith('\n'):
        body += '\n'
    return f"{command} <<'{delimiter}'\n{body}{delimiter}\n"


def heredoc_pipe(body: str, command: str, base: str = 'ARCHVM_EOF') -> str:
    """Render a block that pipes body, verbatim, into command's stdin."""
    delimiter = heredoc_delimiter(body, base)
    if not body.endswith('\n'):
        body += '\n'
    return f"cat <<'{delimiter}' | {command}\n{body}{delimiter}\n"


def base64_heredoc(path: str, body: str, base: str = 'ARCHVM_EOF') -> str:
    """Render a block that writes body to path through `base64 -d`.

    An interactive shell's line editor sees every heredoc line, so a TAB in
    a raw body would trigger completion. The encoded lines hold only
    [A-Za-z0-9+/=], so body lands in path byte for byte.
    """
    encoded = base64.encodebytes(body.encode('utf-8')).decode('ascii')
    return heredoc(f"base64 -d > {quote(path)}", encoded, base)


def sed_replace_line(prefix_regex: str, replacement: str, path: str) -> str:
    """Render an in-place sed that replaces lines starting with prefix_regex.

    `|` is used as the sed delimiter; it must not occur in either argument.
    """
    for part in (prefix_regex, replacement):
        if '|' in part:
            raise ValueError(f"'|' not allowed in sed expression: {part!r}")
    replacement = replacement.replace('\\', '\\\\').replace('&', '\\&')
    return f"sed -i {quote(f's|^{prefix_regex}.*|{replacement}|')} {quote(path)}"
