"""Installer step script: context, quoting and rendering."""

from script.builder import render
from script.context import InstallationContext

__all__ = ['render', 'InstallationContext']
