"""Pre-flight validation checks for installs.

This module provides readiness checks that run before an install starts,
catching host and configuration issues early with actionable error messages.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

import requests
import urllib3

from config import InstallConfig
from qemu import qemu_binary

logger = logging.getLogger(__name__)

# Retry transient mirror failures (502/503 from the geo mirror redirect)
MIRROR_RETRY = urllib3.util.Retry(total=2, backoff_factor=0.5, status_forcelist=(502, 503, 504))


# -----------------------------------------------------------------------------
# Host Tooling Validation
# -----------------------------------------------------------------------------

def validate_qemu_installed(arch: str) -> list[str]:
    """Validate the QEMU system emulator and qemu-img are on PATH.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    for binary in (qemu_binary(arch), 'qemu-img'):
        if shutil.which(binary) is None:
            errors.append(
                f"{binary} not found on PATH\n"
                f"  Install: pacman -S qemu-base (Arch) or apt install qemu-system-x86 qemu-utils (Debian)"
            )
    return errors


def validate_kvm(device: Path = Path('/dev/kvm')) -> list[str]:
    """Validate KVM acceleration is available to the current user.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not device.exists():
        errors.append(
            f"{device} does not exist\n"
            "  Check: virtualization is enabled in firmware and kvm_intel or kvm_amd is loaded"
        )
        return errors

    if not os.access(device, os.R_OK | os.W_OK):
        errors.append(
            f"No read/write access to {device}\n"
            "  Add your user to the kvm group: usermod -aG kvm $USER (then log in again)"
        )

    return errors


# -----------------------------------------------------------------------------
# Mirror Validation
# -----------------------------------------------------------------------------

def validate_mirror(iso_url: str, timeout: float = 10.0) -> list[str]:
    """Validate the installation ISO is reachable on the mirror.

    Sends an HTTP HEAD for the ISO itself, following redirects.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    session = requests.Session()
    session.mount('https://', requests.adapters.HTTPAdapter(max_retries=MIRROR_RETRY))
    session.mount('http://', requests.adapters.HTTPAdapter(max_retries=MIRROR_RETRY))

    try:
        resp = session.head(iso_url, allow_redirects=True, timeout=timeout)
        if resp.status_code == 404:
            errors.append(
                f"ISO not found: {iso_url}\n"
                f"  Check: mirror URL and arch are correct"
            )
        elif resp.status_code != 200:
            errors.append(f"Unexpected mirror response for {iso_url}: {resp.status_code}")
        else:
            logger.info(f"Mirror reachable: {iso_url}")
    except requests.exceptions.ConnectionError:
        errors.append(
            f"Cannot connect to mirror for {iso_url}\n"
            f"  Check: network access, or set 'mirror' in install.yaml"
        )
    except requests.exceptions.Timeout:
        errors.append(f"Timeout connecting to mirror for {iso_url}")
    except requests.exceptions.RequestException as e:
        errors.append(f"Error checking mirror: {e}")
    finally:
        session.close()

    return errors


# -----------------------------------------------------------------------------
# Combined Validation
# -----------------------------------------------------------------------------

def validate_readiness(config: InstallConfig, timeout: float = 10.0) -> list[str]:
    """Run the checks an install cannot succeed without.

    The mirror is only checked when the ISO still has to be downloaded.

    Returns:
        Combined list of all validation errors
    """
    errors = []
    errors.extend(config.validate())
    errors.extend(validate_qemu_installed(config.arch))
    errors.extend(validate_kvm())
    if not config.iso_path.exists():
        errors.extend(validate_mirror(config.iso_url, timeout=timeout))
    return errors


def run_preflight_checks(config: InstallConfig,
                         check_mirror: bool = True,
                         timeout: float = 10.0) -> tuple[bool, dict]:
    """Run standalone preflight checks.

    Args:
        config: Install configuration to check
        check_mirror: Include the mirror reachability check
        timeout: Connection timeout for network checks

    Returns:
        (success, results) tuple where results contains check details
    """
    results: dict[str, dict[str, list[str]]] = {
        'config': {'passed': [], 'failed': []},
        'qemu': {'passed': [], 'failed': []},
        'mirror': {'passed': [], 'failed': []},
        'hardware': {'passed': [], 'failed': []},
    }

    # Configuration checks
    config_errors = config.validate()
    if config_errors:
        results['config']['failed'].extend(config_errors)
    else:
        source = config.config_file or 'defaults and flags'
        results['config']['passed'].append(f"Configuration valid ({source})")

    # QEMU tooling
    qemu_errors = validate_qemu_installed(config.arch)
    if qemu_errors:
        results['qemu']['failed'].extend(qemu_errors)
    else:
        results['qemu']['passed'].append(f"{qemu_binary(config.arch)} and qemu-img found")

    # Mirror / media
    if config.iso_path.exists():
        results['mirror']['passed'].append(f"ISO present: {config.iso_path}")
    elif check_mirror:
        mirror_errors = validate_mirror(config.iso_url, timeout=timeout)
        if mirror_errors:
            results['mirror']['failed'].extend(mirror_errors)
        else:
            results['mirror']['passed'].append(f"Mirror reachable: {config.mirror}")

    # Hardware checks
    kvm_errors = validate_kvm()
    if kvm_errors:
        results['hardware']['failed'].extend(kvm_errors)
    else:
        results['hardware']['passed'].append("KVM available")

    # Get system resources
    try:
        cpu_count = os.cpu_count() or 0
        results['hardware']['passed'].append(f"CPU cores: {cpu_count}")

        with open('/proc/meminfo', 'r', encoding='utf-8') as f:
            for line in f:
                if line.startswith('MemTotal:'):
                    mem_kb = int(line.split()[1])
                    mem_gb = mem_kb // (1024 * 1024)
                    results['hardware']['passed'].append(f"Memory: {mem_gb}GB")
                    break
    except (OSError, ValueError, IndexError):
        pass  # Non-critical - just skip resource info

    all_failed = []
    for category in results.values():
        all_failed.extend(category['failed'])

    return len(all_failed) == 0, results


def format_preflight_results(target: str, results: dict, title: Optional[str] = None) -> str:
    """Format preflight check results for display.

    Args:
        target: Disk image the checks were run for
        results: Results dict from run_preflight_checks
        title: Optional heading override

    Returns:
        Formatted string for display
    """
    lines = [title or f"\nPreflight checks for '{target}':\n"]

    category_names = {
        'config': 'Configuration',
        'qemu': 'QEMU',
        'mirror': 'Installation media',
        'hardware': 'Hardware',
    }

    for key, name in category_names.items():
        category = results.get(key, {'passed': [], 'failed': []})
        if category['passed'] or category['failed']:
            lines.append(f"{name}:")
            for item in category['passed']:
                lines.append(f"✓ {item}")
            for item in category['failed']:
                # Handle multi-line errors
                first_line = item.split('\n')[0]
                lines.append(f"✗ {first_line}")
                for line in item.split('\n')[1:]:
                    lines.append(f"  {line}")
            lines.append("")

    all_passed = all(
        len(cat['failed']) == 0
        for cat in results.values()
    )

    if all_passed:
        lines.append("All checks passed. Ready to install.")
    else:
        lines.append("Some checks failed. Fix issues before installing.")

    return '\n'.join(lines)
