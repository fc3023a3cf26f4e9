"""Arch Linux VM install scenarios.

arch-install provisions everything and runs the console session;
arch-prepare stops after the cheap, idempotent steps so a session can be
started later (or inspected with `script show`).
"""

from actions import (
    ConsoleInstallAction,
    EnsureDiskImageAction,
    EnsureInstallMediaAction,
    LoadInstallExtrasAction,
    LocateSSHKeyAction,
)
from config import InstallConfig
from scenarios import register_scenario


def _prepare_phases() -> list[tuple[str, object, str]]:
    # Key lookup comes first: a missing key must fail before any download
    return [
        ('locate_keys', LocateSSHKeyAction(
            name='locate-keys',
        ), 'Locate SSH key pair'),

        ('ensure_media', EnsureInstallMediaAction(
            name='ensure-media',
        ), 'Ensure installation ISO exists'),

        ('ensure_disk', EnsureDiskImageAction(
            name='ensure-disk',
        ), 'Ensure raw disk image exists'),

        ('load_extras', LoadInstallExtrasAction(
            name='load-extras',
        ), 'Load packages.txt and post-install.sh'),
    ]


@register_scenario
class ArchInstall:
    """Provision media and disk, then install Arch over the serial console."""

    name = 'arch-install'
    description = 'Download ISO, create disk, install Arch Linux unattended'
    expected_runtime = 900

    def __init__(self, attempts: int = 1):
        self.attempts = attempts

    def get_phases(self, config: InstallConfig) -> list[tuple[str, object, str]]:
        """Return phases for a full install."""
        return _prepare_phases() + [
            ('install', ConsoleInstallAction(
                name='console-install',
                attempts=self.attempts,
            ), 'Run console install session'),
        ]


@register_scenario
class ArchPrepare:
    """Provision media and disk without booting anything."""

    name = 'arch-prepare'
    description = 'Download ISO, create disk, check keys and extras'
    expected_runtime = 120

    def get_phases(self, config: InstallConfig) -> list[tuple[str, object, str]]:
        """Return the preparation phases only."""
        return _prepare_phases()
