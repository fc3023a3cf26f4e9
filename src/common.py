"""Common utilities and types for install automation."""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    continue_on_failure: bool = False


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def format_size(num_bytes: float) -> str:
    """Human-readable byte count (e.g. 812.4 MiB)."""
    size = float(num_bytes)
    for unit in ('B', 'KiB', 'MiB'):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"
