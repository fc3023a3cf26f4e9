"""Installation media and disk image actions.

Both actions are idempotent: an artifact that already exists is left
alone and reported with a warning.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from common import ActionResult, format_size, run_command
from config import InstallConfig
from errors import MediaError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
PROGRESS_EVERY = 100 * 1024 * 1024


def fetch_checksum(iso_url: str, timeout: int = 30) -> Optional[str]:
    """Look up the ISO's sha256 in the mirror's sha256sums.txt.

    Returns None when the mirror publishes no entry for the file.
    """
    base, filename = iso_url.rsplit('/', 1)
    resp = requests.get(f"{base}/sha256sums.txt", timeout=timeout)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    for line in resp.text.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1].lstrip('*') == filename:
            return parts[0].lower()
    return None


def download(url: str, dest: Path, timeout: int = 60) -> str:
    """Stream url to dest via a .part file; return the sha256 of the data.

    Raises:
        MediaError: on HTTP or I/O failure (the partial file is removed).
    """
    partial = dest.with_name(dest.name + '.part')
    digest = hashlib.sha256()
    received = 0
    next_report = PROGRESS_EVERY
    try:
        with requests.get(url, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            total = int(resp.headers.get('Content-Length', 0))
            with open(partial, 'wb') as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
                    digest.update(chunk)
                    received += len(chunk)
                    if received >= next_report:
                        of_total = f" of {format_size(total)}" if total else ''
                        logger.info(f"Downloaded {format_size(received)}{of_total}")
                        next_report += PROGRESS_EVERY
        partial.replace(dest)
    except (requests.exceptions.RequestException, OSError) as e:
        partial.unlink(missing_ok=True)
        raise MediaError(f"Failed to download {url}: {e}") from e
    return digest.hexdigest()


@dataclass
class EnsureInstallMediaAction:
    """Ensure the live ISO exists next to the disk image, download if missing."""
    name: str
    verify_checksum: bool = True
    timeout: int = 60

    def run(self, config: InstallConfig, _context: dict) -> ActionResult:
        """Check for the ISO, download it from the mirror if missing."""
        start = time.time()
        iso_path = config.iso_path

        if iso_path.exists():
            logger.warning(f"[{self.name}] {iso_path} already exists, skipping download")
            return ActionResult(
                success=True,
                message=f"Media {iso_path.name} already exists",
                duration=time.time() - start,
                context_updates={'iso_path': str(iso_path)}
            )

        url = config.iso_url
        logger.info(f"[{self.name}] Downloading {url}...")
        try:
            iso_path.parent.mkdir(parents=True, exist_ok=True)
            expected = fetch_checksum(url, timeout=self.timeout) if self.verify_checksum else None
            actual = download(url, iso_path, timeout=self.timeout)
        except (MediaError, requests.exceptions.RequestException, OSError) as e:
            return ActionResult(
                success=False,
                message=f"Failed to fetch install media: {e}",
                duration=time.time() - start
            )

        if expected and actual != expected:
            iso_path.unlink(missing_ok=True)
            return ActionResult(
                success=False,
                message=f"Checksum mismatch for {iso_path.name}: expected {expected}, got {actual}",
                duration=time.time() - start
            )
        if self.verify_checksum and not expected:
            logger.warning(f"[{self.name}] No published checksum for {iso_path.name}")

        return ActionResult(
            success=True,
            message=f"Downloaded {iso_path.name}",
            duration=time.time() - start,
            context_updates={'iso_path': str(iso_path)}
        )


@dataclass
class EnsureDiskImageAction:
    """Ensure the raw target disk image exists, create it if missing."""
    name: str
    timeout: int = 120

    def run(self, config: InstallConfig, _context: dict) -> ActionResult:
        """Create the disk image with qemu-img unless it already exists."""
        start = time.time()
        disk = config.output

        if disk.exists():
            logger.warning(f"[{self.name}] {disk} already exists, not recreating it")
            return ActionResult(
                success=True,
                message=f"Disk image {disk.name} already exists",
                duration=time.time() - start,
                context_updates={'disk_path': str(disk)}
            )

        try:
            disk.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return ActionResult(
                success=False,
                message=f"Failed to create directory {disk.parent}: {e}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Creating {config.disk_size} raw disk {disk}...")
        rc, _, err = run_command(
            ['qemu-img', 'create', '-f', 'raw', str(disk), config.disk_size],
            timeout=self.timeout
        )
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"qemu-img create failed: {err.strip()}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Created {config.disk_size} disk image {disk.name}",
            duration=time.time() - start,
            context_updates={'disk_path': str(disk)}
        )
