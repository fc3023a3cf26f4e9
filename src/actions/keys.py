"""SSH key material discovery."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common import ActionResult
from config import InstallConfig
from errors import MissingCredentialMaterial

logger = logging.getLogger(__name__)

# Searched in order when no key is configured
KEY_NAMES = ('id_ed25519', 'id_ecdsa', 'id_rsa')

_PUBLIC_KEY_PREFIXES = ('ssh-', 'ecdsa-', 'sk-')


@dataclass(frozen=True)
class KeyPair:
    """An SSH key pair read from disk."""
    name: str
    private_key: str
    public_key: str
    path: Path


def read_key_pair(private_path: Path) -> KeyPair:
    """Read private_path and private_path.pub.

    Raises:
        MissingCredentialMaterial: either file is missing or unusable.
    """
    public_path = private_path.with_name(private_path.name + '.pub')
    for path in (private_path, public_path):
        if not path.is_file():
            raise MissingCredentialMaterial(f"SSH key file not found: {path}")
    try:
        private_key = private_path.read_text(encoding='utf-8')
        public_key = public_path.read_text(encoding='utf-8').strip()
    except (OSError, UnicodeDecodeError) as e:
        raise MissingCredentialMaterial(f"Cannot read SSH key {private_path}: {e}") from e

    if 'PRIVATE KEY' not in private_key:
        raise MissingCredentialMaterial(f"{private_path} is not a private key")
    if not public_key.startswith(_PUBLIC_KEY_PREFIXES) or '\n' in public_key:
        raise MissingCredentialMaterial(f"{public_path} is not a single OpenSSH public key")

    return KeyPair(name=private_path.name, private_key=private_key,
                   public_key=public_key, path=private_path)


def locate_key_pair(explicit: Optional[Path] = None, search_dir: Optional[Path] = None) -> KeyPair:
    """Return the configured key pair, or the first default pair in ~/.ssh."""
    if explicit is not None:
        return read_key_pair(explicit)

    search_dir = search_dir or Path.home() / '.ssh'
    for name in KEY_NAMES:
        candidate = search_dir / name
        if candidate.is_file() and candidate.with_name(name + '.pub').is_file():
            return read_key_pair(candidate)

    raise MissingCredentialMaterial(
        f"No SSH key pair found in {search_dir} (looked for {', '.join(KEY_NAMES)})\n"
        f"  Create one: ssh-keygen -t ed25519\n"
        f"  Or set ssh_key in install.yaml"
    )


@dataclass
class LocateSSHKeyAction:
    """Find the operator's key pair before anything is booted."""
    name: str
    search_dir: Optional[Path] = None

    def run(self, config: InstallConfig, _context: dict) -> ActionResult:
        """Load key material into the run context."""
        start = time.time()
        try:
            pair = locate_key_pair(config.ssh_key, self.search_dir)
        except MissingCredentialMaterial as e:
            return ActionResult(
                success=False,
                message=str(e),
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Using SSH key {pair.path}")
        return ActionResult(
            success=True,
            message=f"Found SSH key {pair.name}",
            duration=time.time() - start,
            # Underscore keys are kept out of reports
            context_updates={
                'ssh_key_name': pair.name,
                'ssh_public_key': pair.public_key,
                '_ssh_private_key': pair.private_key,
            }
        )
