"""Reusable install actions."""

from actions.media import EnsureInstallMediaAction, EnsureDiskImageAction
from actions.keys import LocateSSHKeyAction
from actions.extras import LoadInstallExtrasAction
from actions.install import ConsoleInstallAction

__all__ = [
    'EnsureInstallMediaAction',
    'EnsureDiskImageAction',
    'LocateSSHKeyAction',
    'LoadInstallExtrasAction',
    'ConsoleInstallAction',
]
