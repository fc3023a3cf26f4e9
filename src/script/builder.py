"""Render the Arch Linux install conversation as a flat step list.

The script boots the live ISO on a serial console, partitions and formats
the disk, installs a base system, configures it inside arch-chroot, and
powers the machine off. Rendering is pure: the same context always yields
the same steps, and nothing is spawned or read from disk here.
"""

from console.steps import NO_TERMINATOR, Branch, Expect, Send, SendBlock, flatten
from script.context import InstallationContext
from script.quoting import base64_heredoc, heredoc_pipe, quote, sed_replace_line

BOOT_MENU = '*install medium*'
LOGIN_PROMPT = 'archiso login: '
LIVE_PROMPT = '*@archiso*~*#* '
CHROOT_PROMPT = '*]# '
FDISK_PROMPT = '*Command (m for help): '
PASSWORD_PROMPT = '*New password: '
PASSWORD_CONFIRM_PROMPT = '*Retype new password: '

SERIAL_CONSOLE = 'console=ttyS0,115200'
PACMAN_CONF = '/etc/pacman.conf'
PACMAN_CONF_ORIG = '/etc/pacman.conf.orig'
POST_INSTALL_PATH = '/root/post-install.sh'

KEYRING_COMMANDS = (
    'pacman-key --init',
    'pacman-key --populate archlinux',
    'pacman-key --refresh-keys',
)
SIGNATURE_DISABLE = sed_replace_line('SigLevel', 'SigLevel = Never', PACMAN_CONF)


def _shell(prompt: str, *commands: str, description: str = '') -> list:
    """Expect/Send pairs running each command at prompt."""
    steps: list = []
    for i, command in enumerate(commands):
        steps.append(Expect(prompt, description=description if i == 0 else ''))
        steps.append(Send(command))
    return steps


def _boot() -> list:
    # Tab opens the boot entry's command line for editing
    return [
        Expect(BOOT_MENU, description='Inject serial console boot option'),
        Send('\t', terminator=NO_TERMINATOR),
        Send(f" {SERIAL_CONSOLE}"),
    ]


def _login() -> list:
    return [
        Expect(LOGIN_PROMPT, description='Log in to live environment'),
        Send('root'),
        Expect(LIVE_PROMPT),
        Send('set +o histexpand'),
        Expect(LIVE_PROMPT),
        Send('unset HISTFILE'),
    ]


def _partition(ctx: InstallationContext) -> list:
    ctx.require('disk_device')
    return [
        Expect(LIVE_PROMPT, description=f'Partition {ctx.disk_device}'),
        Send(f"fdisk {quote(ctx.disk_device)}"),
        Expect(FDISK_PROMPT),
        Send('n'),
        Expect('*Select (default p): '),
        Send('p'),
        Expect('*Partition number*: '),
        Send('1'),
        Expect('*First sector*: '),
        Send(''),
        Expect('*Last sector*: '),
        Send(''),
        Expect(FDISK_PROMPT),
        Send('a'),
        Expect(FDISK_PROMPT),
        Send('w'),
    ]


def _filesystem(ctx: InstallationContext) -> list:
    return _shell(
        LIVE_PROMPT,
        f"mkfs.ext4 -F {quote(ctx.partition)}",
        f"mount {quote(ctx.partition)} /mnt",
        description='Create and mount ext4 filesystem',
    )


def _base_system() -> list:
    return (
        _shell(LIVE_PROMPT, 'pacstrap /mnt base linux linux-firmware',
               description='Install base system')
        + _shell(LIVE_PROMPT, 'genfstab -U /mnt >> /mnt/etc/fstab',
                 description='Generate fstab')
        + _shell(LIVE_PROMPT, 'arch-chroot /mnt', description='Enter chroot')
        + _shell(CHROOT_PROMPT, 'set +o histexpand', 'unset HISTFILE')
    )


def _clock(ctx: InstallationContext) -> list:
    ctx.require('timezone')
    return _shell(
        CHROOT_PROMPT,
        f"ln -sf {quote('/usr/share/zoneinfo/' + ctx.timezone)} /etc/localtime",
        'hwclock --systohc',
        description=f'Set timezone {ctx.timezone}',
    )


def _locale(ctx: InstallationContext) -> list:
    ctx.require('locale', 'keymap')
    return _shell(
        CHROOT_PROMPT,
        sed_replace_line(f"#{ctx.locale} ", f"{ctx.locale} UTF-8", '/etc/locale.gen'),
        'locale-gen',
        f"echo {quote('LANG=' + ctx.locale)} > /etc/locale.conf",
        f"echo {quote('KEYMAP=' + ctx.keymap)} > /etc/vconsole.conf",
        description=f'Configure locale {ctx.locale}',
    )


def _network_identity(ctx: InstallationContext) -> list:
    ctx.require('hostname')
    hosts = (
        '127.0.0.1 localhost',
        '::1 localhost',
        f"127.0.1.1 {ctx.hostname}.localdomain {ctx.hostname}",
    )
    return _shell(
        CHROOT_PROMPT,
        f"echo {quote(ctx.hostname)} > /etc/hostname",
        "printf '%s\\n' " + ' '.join(quote(line) for line in hosts) + ' >> /etc/hosts',
        description=f'Set hostname {ctx.hostname}',
    )


def _keyring(ctx: InstallationContext) -> list:
    return [
        *_shell(CHROOT_PROMPT, f"cp {PACMAN_CONF} {PACMAN_CONF_ORIG}",
                description='Preserve pacman.conf'),
        Branch(
            condition=ctx.disable_keyring_checks,
            then_steps=tuple(_shell(CHROOT_PROMPT, SIGNATURE_DISABLE,
                                    description='Disable package signature checks')),
            else_steps=tuple(
                step
                for i, command in enumerate(KEYRING_COMMANDS)
                for step in _shell(CHROOT_PROMPT, command,
                                   description='Bootstrap pacman keyring' if i == 0 else '')
            ),
        ),
    ]


def _packages(ctx: InstallationContext) -> list:
    ctx.require('packages')
    return [
        Expect(CHROOT_PROMPT, description=f'Install {len(ctx.packages)} packages'),
        SendBlock(heredoc_pipe('\n'.join(ctx.packages), 'pacman -S --needed --noconfirm -')),
    ]


def _bootloader(ctx: InstallationContext) -> list:
    ctx.require('disk_device')
    return _shell(
        CHROOT_PROMPT,
        f"grub-install --target=i386-pc {quote(ctx.disk_device)}",
        sed_replace_line('GRUB_CMDLINE_LINUX_DEFAULT=',
                         f'GRUB_CMDLINE_LINUX_DEFAULT="{SERIAL_CONSOLE}"', '/etc/default/grub'),
        sed_replace_line('GRUB_CMDLINE_LINUX=',
                         f'GRUB_CMDLINE_LINUX="root={ctx.partition}"', '/etc/default/grub'),
        'grub-mkconfig -o /boot/grub/grub.cfg',
        description='Install bootloader',
    )


def _root_password(ctx: InstallationContext) -> list:
    ctx.require('root_password')
    # passwd reads from the tty, so the password is typed, not shell-parsed
    return [
        Expect(CHROOT_PROMPT, description='Set root password'),
        Send('passwd'),
        Expect(PASSWORD_PROMPT),
        Send(ctx.root_password, secret=True),
        Expect(PASSWORD_CONFIRM_PROMPT),
        Send(ctx.root_password, secret=True),
    ]


def _user(ctx: InstallationContext) -> list:
    ctx.require('username', 'user_password')
    credentials = quote(f"{ctx.username}:{ctx.user_password}")
    return [
        *_shell(CHROOT_PROMPT, f"useradd -m -G wheel {quote(ctx.username)}",
                description=f'Create user {ctx.username}'),
        Expect(CHROOT_PROMPT),
        Send(f"printf '%s\\n' {credentials} | chpasswd", secret=True),
    ]


def _services() -> list:
    return _shell(
        CHROOT_PROMPT,
        'systemctl enable dhcpcd',
        'systemctl enable sshd',
        "printf '%s\\n' 'PasswordAuthentication no' 'PermitRootLogin no' >> /etc/ssh/sshd_config",
        description='Enable network and SSH',
    )


def _ssh_keys(ctx: InstallationContext) -> list:
    ctx.require('username', 'ssh_public_key', 'ssh_private_key', 'ssh_key_name')
    ssh_dir = f"{ctx.home}/.ssh"
    public_key = ctx.ssh_public_key.strip()
    private_key = ctx.ssh_private_key.rstrip('\n')
    private_path = quote(f"{ssh_dir}/{ctx.ssh_key_name}")
    public_path = quote(f"{ssh_dir}/{ctx.ssh_key_name}.pub")
    owner = quote(f"{ctx.username}:{ctx.username}")
    return [
        *_shell(CHROOT_PROMPT,
                f"mkdir -p {quote(ssh_dir)}",
                f"echo {quote(public_key)} >> {quote(ssh_dir + '/authorized_keys')}",
                description='Install SSH key material'),
        Expect(CHROOT_PROMPT),
        SendBlock(f"printf '%s\\n' {quote(private_key)} > {private_path}", secret=True),
        *_shell(CHROOT_PROMPT,
                f"chmod 600 {private_path}",
                f"echo {quote(public_key)} > {public_path}",
                f"chown -R {owner} {quote(ssh_dir)}"),
    ]


def _post_install(ctx: InstallationContext) -> list:
    return [
        Branch(
            condition=bool(ctx.post_install_script.strip()),
            then_steps=(
                Expect(CHROOT_PROMPT, description='Run post-install script'),
                SendBlock(base64_heredoc(POST_INSTALL_PATH, ctx.post_install_script)),
                *_shell(CHROOT_PROMPT, f"bash {POST_INSTALL_PATH}", f"rm -f {POST_INSTALL_PATH}"),
            ),
        ),
    ]


def _finish() -> list:
    return (
        _shell(CHROOT_PROMPT, f"mv {PACMAN_CONF_ORIG} {PACMAN_CONF}",
               description='Restore pacman.conf')
        + _shell(CHROOT_PROMPT, 'pacman -Scc --noconfirm', description='Clean package cache')
        + _shell(CHROOT_PROMPT, 'exit', description='Leave chroot')
        + _shell(LIVE_PROMPT, 'umount -R /mnt', description='Unmount target')
        + _shell(LIVE_PROMPT, 'poweroff', description='Power off')
    )


def render(ctx: InstallationContext) -> list:
    """Render the complete install script for ctx.

    Raises:
        ContextError: a value a step needs is empty.
    """
    return flatten([
        *_boot(),
        *_login(),
        *_partition(ctx),
        *_filesystem(ctx),
        *_base_system(),
        *_clock(ctx),
        *_locale(ctx),
        *_network_identity(ctx),
        *_shell(CHROOT_PROMPT, 'mkinitcpio -P', description='Regenerate initramfs'),
        *_keyring(ctx),
        *_packages(ctx),
        *_bootloader(ctx),
        *_root_password(ctx),
        *_user(ctx),
        *_services(),
        *_ssh_keys(ctx),
        *_post_install(ctx),
        *_finish(),
    ])
