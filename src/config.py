"""Install configuration management.

Configuration is loaded from a YAML file (install.yaml) and overridden by
CLI flags. Resolution order for the file:
1. --config PATH
2. $ARCHVM_CONFIG environment variable
3. ./install.yaml in the current directory

A missing file is not an error: every key has a default except the
passwords, which are prompted for interactively when absent.
"""

import getpass
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Callable, Optional

try:
    import yaml
except ImportError:
    yaml = None  # type: ignore[assignment]

from errors import ConfigError

DEFAULT_MIRROR = 'https://geo.mirror.pkgbuild.com'
SUPPORTED_ARCHES = ('x86_64',)

_HOSTNAME_RE = re.compile(r'^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?$')
_USERNAME_RE = re.compile(r'^[a-z_][a-z0-9_-]{0,31}$')
_DISK_SIZE_RE = re.compile(r'^\d+[KMGT]?$')


@dataclass
class InstallConfig:
    """Operator-facing settings for one install.

    Paths derived from `output` (the disk image) put every artifact of the
    install next to it: the ISO, the session log, and the optional
    packages.txt / post-install.sh inputs.
    """
    output: Path = field(default_factory=lambda: Path('archvm.img'))
    arch: str = 'x86_64'
    disk_size: str = '20G'
    memory: int = 2048
    cpus: int = 2
    hostname: str = 'archvm'
    root_password: str = field(default='', repr=False)
    username: str = 'arch'
    user_password: str = field(default='', repr=False)
    timezone: str = 'UTC'
    locale: str = 'en_US.UTF-8'
    keymap: str = 'us'
    mirror: str = DEFAULT_MIRROR
    disable_keyring_checks: bool = False
    ssh_key: Optional[Path] = None
    expect_timeout: Optional[float] = None  # None: wait forever at each prompt
    packages: list = field(default_factory=list)
    config_file: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.output, str):
            self.output = Path(self.output)
        if isinstance(self.ssh_key, str):
            self.ssh_key = Path(self.ssh_key).expanduser()
        if isinstance(self.config_file, str):
            self.config_file = Path(self.config_file)

    @property
    def work_dir(self) -> Path:
        return self.output.parent

    @property
    def iso_path(self) -> Path:
        return self.work_dir / f'archlinux-{self.arch}.iso'

    @property
    def iso_url(self) -> str:
        return f"{self.mirror.rstrip('/')}/iso/latest/archlinux-{self.arch}.iso"

    @property
    def log_path(self) -> Path:
        return self.output.with_name(self.output.name + '.log')

    @property
    def packages_file(self) -> Path:
        return self.work_dir / 'packages.txt'

    @property
    def post_install_file(self) -> Path:
        return self.work_dir / 'post-install.sh'

    def validate(self) -> list[str]:
        """Return a list of problems (empty if valid)."""
        errors = []
        if self.arch not in SUPPORTED_ARCHES:
            errors.append(f"Unsupported arch '{self.arch}' (supported: {', '.join(SUPPORTED_ARCHES)})")
        if not _DISK_SIZE_RE.match(self.disk_size):
            errors.append(f"Invalid disk_size '{self.disk_size}' (e.g. 20G)")
        if self.memory < 512:
            errors.append(f"memory must be at least 512 MiB, got {self.memory}")
        if self.cpus < 1:
            errors.append(f"cpus must be at least 1, got {self.cpus}")
        if not _HOSTNAME_RE.match(self.hostname):
            errors.append(f"Invalid hostname '{self.hostname}'")
        if not _USERNAME_RE.match(self.username):
            errors.append(f"Invalid username '{self.username}'")
        for name in ('root_password', 'user_password'):
            value = getattr(self, name)
            if not value:
                errors.append(f"{name} is not set")
            elif '\n' in value or '\r' in value:
                errors.append(f"{name} must be a single line")
        if self.expect_timeout is not None and self.expect_timeout <= 0:
            errors.append(f"expect_timeout must be positive, got {self.expect_timeout}")
        return errors

    def redacted(self) -> dict:
        """Settings with passwords masked."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ('root_password', 'user_password'):
                value = '********' if value else ''
            elif isinstance(value, Path):
                value = str(value)
            result[f.name] = value
        return result


_INT_KEYS = ('memory', 'cpus')
_BOOL_KEYS = ('disable_keyring_checks',)


def _coerce(data: dict, source: str) -> dict:
    """Validate keys and coerce YAML scalars to field types."""
    known = {f.name for f in fields(InstallConfig)} - {'config_file'}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in {source}: {', '.join(unknown)}")

    values = {}
    for key, value in data.items():
        if value is None:
            continue
        if key in _INT_KEYS:
            try:
                value = int(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{key} must be an integer in {source}, got {value!r}") from e
        elif key in _BOOL_KEYS:
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false in {source}, got {value!r}")
        elif key == 'expect_timeout':
            try:
                value = float(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"expect_timeout must be a number in {source}, got {value!r}") from e
        elif key == 'packages':
            if isinstance(value, str):
                value = value.split()
            if not isinstance(value, list):
                raise ConfigError(f"packages must be a list in {source}")
            value = [str(p) for p in value]
        else:
            value = str(value)
        values[key] = value
    return values


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    if yaml is None:
        raise ConfigError("PyYAML not installed. Run: pip install pyyaml")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def get_config_path(explicit: Optional[Path] = None) -> Optional[Path]:
    """Discover the install config file.

    Returns None when no file is configured and ./install.yaml is absent.
    """
    if explicit is not None:
        if not explicit.exists():
            raise ConfigError(f"Config file {explicit} does not exist")
        return explicit

    if env_path := os.environ.get('ARCHVM_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"ARCHVM_CONFIG={env_path} does not exist")

    local = Path.cwd() / 'install.yaml'
    if local.exists():
        return local
    return None


def load_install_config(path: Optional[Path] = None, overrides: Optional[dict] = None) -> InstallConfig:
    """Load config from file (if any), then apply CLI overrides.

    Overrides with value None are ignored so unset flags keep file values.
    """
    config_path = get_config_path(path)
    values: dict = {}
    if config_path is not None:
        values.update(_coerce(_parse_yaml(config_path), str(config_path)))
    if overrides:
        values.update(_coerce({k: v for k, v in overrides.items() if v is not None}, 'command line'))
    return InstallConfig(config_file=config_path, **values)


def prompt_for_missing(
    config: InstallConfig,
    secret_input: Callable[[str], str] = getpass.getpass,
) -> InstallConfig:
    """Ask for passwords that are not configured, with confirmation."""
    for name, label in (('root_password', 'root'), ('user_password', config.username)):
        if getattr(config, name):
            continue
        while True:
            first = secret_input(f"Password for {label}: ")
            if not first:
                print("Password cannot be empty.")
                continue
            if secret_input(f"Retype password for {label}: ") != first:
                print("Passwords do not match.")
                continue
            setattr(config, name, first)
            break
    return config


def get_base_dir() -> Path:
    """Get the archvm-driver directory."""
    return Path(__file__).parent.parent  # src/ -> archvm-driver/
