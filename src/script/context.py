"""Installation context: every value the step script is rendered from."""

from dataclasses import dataclass, fields
from typing import Any, Optional

from errors import ContextError

# Packages installed after the keyring step; the script itself needs
# grub (bootloader), openssh and dhcpcd (enabled services) and sudo (wheel).
BASE_PACKAGES = ('grub', 'openssh', 'dhcpcd', 'sudo')

# Values typed at a prompt as a single line
_SINGLE_LINE_FIELDS = (
    'arch', 'hostname', 'root_password', 'username', 'user_password',
    'timezone', 'locale', 'keymap', 'ssh_key_name', 'disk_device',
)


@dataclass(frozen=True)
class InstallationContext:
    """Immutable inputs for one rendering of the install script."""
    arch: str = 'x86_64'
    hostname: str = ''
    root_password: str = ''
    username: str = ''
    user_password: str = ''
    timezone: str = 'UTC'
    locale: str = 'en_US.UTF-8'
    keymap: str = 'us'
    disable_keyring_checks: bool = False
    ssh_public_key: str = ''
    ssh_private_key: str = ''
    ssh_key_name: str = 'id_ed25519'
    packages: tuple = BASE_PACKAGES
    post_install_script: str = ''
    iso_path: str = ''
    disk_path: str = ''
    memory: int = 2048
    cpus: int = 2
    disk_device: str = '/dev/sda'

    def __post_init__(self):
        if not isinstance(self.packages, tuple):
            object.__setattr__(self, 'packages', tuple(self.packages))
        for name in _SINGLE_LINE_FIELDS:
            value = getattr(self, name)
            if '\n' in value or '\r' in value:
                raise ContextError(f"{name} must be a single line")
        if '|' in self.locale:
            raise ContextError("locale must not contain '|'")
        if any(c.isspace() for c in self.hostname):
            raise ContextError(f"Invalid hostname: {self.hostname!r}")
        for package in self.packages:
            if not package or any(c.isspace() for c in package):
                raise ContextError(f"Invalid package name: {package!r}")

    @property
    def partition(self) -> str:
        """First partition on the guest disk (e.g. /dev/sda1)."""
        return f"{self.disk_device}1"

    @property
    def home(self) -> str:
        return f"/home/{self.username}"

    def require(self, *names: str) -> None:
        """Raise ContextError if any named field is empty."""
        missing = [n for n in names if not getattr(self, n)]
        if missing:
            raise ContextError(f"Installation context missing: {', '.join(missing)}")

    def redacted(self) -> dict:
        """Field values with secrets masked, for logs and reports."""
        secret = {'root_password', 'user_password', 'ssh_private_key'}
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = '********' if f.name in secret and value else value
        return result

    @classmethod
    def from_config(cls, config, run_context: Optional[dict] = None) -> 'InstallationContext':
        """Build a context from an InstallConfig plus values gathered by earlier phases.

        run_context keys used: iso_path, disk_path, ssh_public_key,
        _ssh_private_key, ssh_key_name, extra_packages, _post_install_script.
        """
        run_context = run_context or {}
        packages: list[str] = []
        for package in list(BASE_PACKAGES) + list(config.packages) + list(run_context.get('extra_packages', [])):
            if package not in packages:
                packages.append(package)

        return cls(
            arch=config.arch,
            hostname=config.hostname,
            root_password=config.root_password,
            username=config.username,
            user_password=config.user_password,
            timezone=config.timezone,
            locale=config.locale,
            keymap=config.keymap,
            disable_keyring_checks=config.disable_keyring_checks,
            ssh_public_key=run_context.get('ssh_public_key', ''),
            ssh_private_key=run_context.get('_ssh_private_key', ''),
            ssh_key_name=run_context.get('ssh_key_name', 'id_ed25519'),
            packages=tuple(packages),
            post_install_script=run_context.get('_post_install_script', ''),
            iso_path=str(run_context.get('iso_path', config.iso_path)),
            disk_path=str(run_context.get('disk_path', config.output)),
            memory=config.memory,
            cpus=config.cpus,
        )

