"""Optional install inputs kept next to the disk image."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from common import ActionResult
from config import InstallConfig

logger = logging.getLogger(__name__)


def parse_package_list(text: str) -> list[str]:
    """Package names from a packages.txt body.

    Whitespace separates names; `#` starts a comment.
    """
    packages: list[str] = []
    for line in text.splitlines():
        line = line.split('#', 1)[0]
        for name in line.split():
            if name not in packages:
                packages.append(name)
    return packages


@dataclass
class LoadInstallExtrasAction:
    """Read packages.txt and post-install.sh if present."""
    name: str

    def run(self, config: InstallConfig, _context: dict) -> ActionResult:
        """Load the optional package list and post-install script."""
        start = time.time()
        updates: dict = {'extra_packages': [], '_post_install_script': ''}
        found = []

        sources: list[tuple[str, Path]] = [
            ('packages', config.packages_file),
            ('post-install script', config.post_install_file),
        ]
        for label, path in sources:
            if not path.is_file():
                logger.debug(f"[{self.name}] No {label} at {path}")
                continue
            try:
                text = path.read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                return ActionResult(
                    success=False,
                    message=f"Cannot read {path}: {e}",
                    duration=time.time() - start
                )
            if label == 'packages':
                updates['extra_packages'] = parse_package_list(text)
                found.append(f"{len(updates['extra_packages'])} extra packages")
            else:
                updates['_post_install_script'] = text
                found.append(path.name)
            logger.info(f"[{self.name}] Loaded {label} from {path}")

        return ActionResult(
            success=True,
            message=f"Loaded {', '.join(found)}" if found else "No install extras",
            duration=time.time() - start,
            context_updates=updates
        )
