"""QEMU command line for the install session."""


def qemu_binary(arch: str) -> str:
    """Emulator binary for a guest architecture."""
    return f'qemu-system-{arch}'


def build_qemu_command(ctx, accel: str = 'kvm', cpu: str = 'host') -> list[str]:
    """Launch the live ISO headless with the raw disk attached.

    The guest console is the serial port on stdio (-nographic), which is
    what the console engine talks to.
    """
    return [
        qemu_binary(ctx.arch),
        '-cdrom', str(ctx.iso_path),
        '-boot', 'order=d',
        '-cpu', cpu,
        '-accel', accel,
        '-m', str(ctx.memory),
        '-smp', str(ctx.cpus),
        '-nographic',
        '-drive', f'file={ctx.disk_path},format=raw',
    ]
