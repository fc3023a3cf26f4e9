#!/usr/bin/env python3
"""CLI entry point for archvm-driver.

Noun-action subcommands:
- install:   archvm-driver install --output vm.img
- script:    archvm-driver script show --hostname box1
- preflight: archvm-driver preflight
- scenario:  archvm-driver scenario run arch-prepare

Nouns:
- install: Download media, create the disk and install Arch unattended
- script: Inspect the rendered console script (show)
- preflight: Check host readiness (QEMU, KVM, mirror, config)
- scenario: Standalone scenario workflows (run/list)
"""

import argparse
import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional

from actions import LoadInstallExtrasAction, LocateSSHKeyAction
from config import get_base_dir, load_install_config, prompt_for_missing
from console import describe
from errors import ArchVMError, ConfigError
from scenarios import Orchestrator, get_scenario, list_scenarios
from script import InstallationContext, render
from validation import format_preflight_results, run_preflight_checks, validate_readiness

# Noun commands (noun-action subcommands)
NOUN_COMMANDS = {
    "install": "Download media, create the disk and install Arch unattended",
    "script": "Inspect the rendered console script (show)",
    "preflight": "Check host readiness (QEMU, KVM, mirror, config)",
    "scenario": "Standalone scenario workflows (run/list)",
}

# Stands in for unset passwords when only displaying the script
_PLACEHOLDER_PASSWORD = 'unset'


def get_version():
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def print_usage():
    """Print top-level usage showing noun commands."""
    print(f"archvm-driver {get_version()}")
    print()
    print("Usage: archvm-driver <noun> [action] [options]")
    print()
    print("Commands:")
    for noun, desc in NOUN_COMMANDS.items():
        print(f"  {noun:<12} {desc}")
    print()
    print("Run 'archvm-driver <noun> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  archvm-driver install --output ~/vms/arch.img --hostname box1")
    print("  archvm-driver install --disable-keyring-checks --no-input --config install.yaml")
    print("  archvm-driver script show --username alice")
    print("  archvm-driver preflight")
    print("  archvm-driver scenario run arch-prepare --output ~/vms/arch.img")


def _add_config_args(parser: argparse.ArgumentParser):
    """Flags that override install.yaml values."""
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Install config file (default: $ARCHVM_CONFIG or ./install.yaml)'
    )
    parser.add_argument('--output', '-o', type=Path, help='Disk image path (default: archvm.img)')
    parser.add_argument('--arch', help='Guest architecture (default: x86_64)')
    parser.add_argument('--disk-size', help='Disk image size for qemu-img (default: 20G)')
    parser.add_argument('--memory', type=int, help='Guest memory in MiB (default: 2048)')
    parser.add_argument('--cpus', type=int, help='Guest CPU count (default: 2)')
    parser.add_argument('--hostname', help='Guest hostname')
    parser.add_argument('--username', help='Regular user to create')
    parser.add_argument('--timezone', help='Zoneinfo name (default: UTC)')
    parser.add_argument('--locale', help='Locale to generate (default: en_US.UTF-8)')
    parser.add_argument('--keymap', help='Console keymap (default: us)')
    parser.add_argument('--mirror', help='Mirror base URL for the ISO download')
    parser.add_argument(
        '--disable-keyring-checks',
        action='store_true',
        default=None,
        help='Set SigLevel = Never during install instead of bootstrapping the keyring'
    )
    parser.add_argument('--ssh-key', type=Path, help='Private key to install (default: first of ~/.ssh/id_*)')
    parser.add_argument(
        '--expect-timeout',
        type=float,
        help='Seconds to wait for each prompt (default: wait forever)'
    )
    parser.add_argument(
        '--package', '-p',
        dest='packages',
        action='append',
        help='Extra package to install (can be repeated)'
    )
    parser.add_argument(
        '--no-input',
        action='store_true',
        help='Never prompt; missing passwords are an error'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )


def _add_run_args(parser: argparse.ArgumentParser):
    """Flags for commands that run a scenario."""
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        default=get_base_dir() / 'reports',
        help='Directory for run reports'
    )
    parser.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        help='Phases to skip (can be repeated)'
    )
    parser.add_argument(
        '--list-phases',
        action='store_true',
        help='List phases for the selected scenario and exit'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running actions'
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip preflight checks before scenario execution'
    )
    parser.add_argument(
        '--attempts',
        type=int,
        default=1,
        help='Rerun a failed console session up to this many times in total (default: 1)'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )


def _configure_logging(args):
    """Apply --json-output and --verbose to the root logger."""
    if getattr(args, 'json_output', False):
        # Remove existing handlers and redirect to stderr
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(stderr_handler)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_config(args, prompt: bool = True):
    """Build an InstallConfig from install.yaml and flags.

    Returns:
        (config, exit_code): config on success (exit_code=None),
        or (None, exit_code) on error.
    """
    overrides = {
        'output': args.output,
        'arch': args.arch,
        'disk_size': args.disk_size,
        'memory': args.memory,
        'cpus': args.cpus,
        'hostname': args.hostname,
        'username': args.username,
        'timezone': args.timezone,
        'locale': args.locale,
        'keymap': args.keymap,
        'mirror': args.mirror,
        'disable_keyring_checks': args.disable_keyring_checks,
        'ssh_key': args.ssh_key,
        'expect_timeout': args.expect_timeout,
        'packages': args.packages,
    }
    try:
        config = load_install_config(args.config, overrides)
    except ConfigError as e:
        print(f"Error: {e}")
        return (None, 1)

    if prompt and not args.no_input:
        try:
            prompt_for_missing(config)
        except (EOFError, KeyboardInterrupt):
            print("\nAborted.")
            return (None, 1)

    if config.config_file:
        logger.debug(f"Loaded config from {config.config_file}")
    return (config, None)


def _print_validation_errors(errors: list[str], hint: str):
    print("\nPre-flight validation failed:")
    for error in errors:
        # Indent multi-line errors
        for i, line in enumerate(error.split('\n')):
            prefix = "  ✗ " if i == 0 else "    "
            print(f"{prefix}{line}")
    print(f"\n{hint}")
    print()


def run_scenario(scenario_name: str, args) -> int:
    """Run a named scenario with the already-parsed arguments."""
    _configure_logging(args)

    scenario = get_scenario(scenario_name)
    if hasattr(scenario, 'attempts'):
        scenario.attempts = max(1, args.attempts)

    needs_passwords = not (args.list_phases or args.dry_run)
    config, exit_code = _load_config(args, prompt=needs_passwords)
    if exit_code is not None:
        return exit_code

    if args.list_phases:
        print(f"Phases for scenario '{scenario_name}':")
        for name, _action, desc in scenario.get_phases(config):
            print(f"  {name}: {desc}")
        return 0

    # Pre-flight validation (skip for --skip-preflight, --dry-run)
    if not args.skip_preflight and not args.dry_run:
        errors = validate_readiness(config)
        if errors:
            _print_validation_errors(errors, "Use --skip-preflight to bypass these checks")
            return 1
        logger.info("Pre-flight validation passed")

    orchestrator = Orchestrator(
        scenario=scenario,
        config=config,
        report_dir=args.report_dir,
        skip_phases=args.skip,
        dry_run=args.dry_run
    )

    try:
        success = orchestrator.run()
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130

    if args.json_output and not args.dry_run:
        report_data = orchestrator.report.to_dict(orchestrator.context)
        print(json.dumps(report_data, indent=2))

    if success and not args.dry_run:
        log_path = orchestrator.context.get('session_log')
        if log_path:
            logger.info(f"Session log: {log_path}")
    return 0 if success else 1


def install_main(argv: list) -> int:
    """'install' noun: the arch-install scenario with install-centric help."""
    parser = argparse.ArgumentParser(
        prog="archvm-driver install",
        description="Install Arch Linux into a raw disk image over the QEMU serial console",
    )
    _add_config_args(parser)
    _add_run_args(parser)
    args = parser.parse_args(argv)
    return run_scenario('arch-install', args)


def show_script(args) -> int:
    """Print the rendered step script, one line per step, secrets masked."""
    config, exit_code = _load_config(args, prompt=False)
    if exit_code is not None:
        return exit_code

    # Only the shape of the script is shown; secret sends are masked
    if not config.root_password:
        config.root_password = _PLACEHOLDER_PASSWORD
    if not config.user_password:
        config.user_password = _PLACEHOLDER_PASSWORD

    context: dict = {}
    for action in (LocateSSHKeyAction(name='locate-keys'), LoadInstallExtrasAction(name='load-extras')):
        result = action.run(config, context)
        if not result.success:
            print(f"Error: {result.message}")
            return 1
        context.update(result.context_updates or {})

    try:
        steps = render(InstallationContext.from_config(config, context))
    except ArchVMError as e:
        print(f"Error: {e}")
        return 1

    width = len(str(len(steps)))
    for index, step in enumerate(steps):
        print(f"{index:>{width}}  {describe(step)}")
    return 0


def script_main(argv: list) -> int:
    """'script' noun: inspect the console script."""
    parser = argparse.ArgumentParser(
        prog="archvm-driver script",
        description="Inspect the rendered console script",
    )
    sub = parser.add_subparsers(dest="action")
    show_parser = sub.add_parser("show", help="Print the flattened step list")
    _add_config_args(show_parser)

    args = parser.parse_args(argv)
    if not args.action:
        parser.print_help()
        return 1

    _configure_logging(args)
    if args.action == "show":
        return show_script(args)
    return 1


def preflight_main(argv: list) -> int:
    """'preflight' noun: standalone readiness checks."""
    parser = argparse.ArgumentParser(
        prog="archvm-driver preflight",
        description="Check host readiness for an install",
    )
    _add_config_args(parser)
    parser.add_argument(
        '--no-mirror',
        action='store_true',
        help='Skip the mirror reachability check'
    )
    args = parser.parse_args(argv)
    _configure_logging(args)

    config, exit_code = _load_config(args, prompt=False)
    if exit_code is not None:
        return exit_code

    logger.info(f"Running preflight checks for {config.output}")
    success, results = run_preflight_checks(config, check_mirror=not args.no_mirror)
    print(format_preflight_results(str(config.output), results))
    return 0 if success else 1


def _print_scenarios():
    print("Available scenarios:")
    for name in list_scenarios():
        scenario = get_scenario(name)
        runtime = getattr(scenario, 'expected_runtime', None)
        if runtime:
            # Format runtime nicely (e.g., 30 -> "~30s", 540 -> "~9m")
            if runtime >= 60:
                runtime_str = f"~{runtime // 60}m"
            else:
                runtime_str = f"~{runtime}s"
            print(f"  {name:20} {runtime_str:>6}  {scenario.description}")
        else:
            print(f"  {name:20}         {scenario.description}")


def scenario_main(argv: list) -> int:
    """'scenario' noun: run or list scenarios."""
    if not argv or argv[0] in ('-h', '--help', 'list'):
        _print_scenarios()
        if not argv:
            print("\nUsage: archvm-driver scenario run <name> [options]")
            return 1
        return 0

    if argv[0] != 'run':
        print(f"Error: Unknown scenario action '{argv[0]}'")
        print("Available actions: run, list")
        return 1

    parser = argparse.ArgumentParser(
        prog="archvm-driver scenario run",
        description="Run a scenario",
    )
    parser.add_argument('scenario', choices=list_scenarios(), help='Scenario name')
    _add_config_args(parser)
    _add_run_args(parser)
    args = parser.parse_args(argv[1:])
    return run_scenario(args.scenario, args)


def dispatch_noun(noun: str, argv: list) -> int:
    """Dispatch to noun-specific CLI handler.

    Args:
        noun: The noun command (e.g., "install", "script")
        argv: Remaining command line arguments

    Returns:
        Exit code
    """
    if noun == "install":
        return install_main(argv)
    if noun == "script":
        return script_main(argv)
    if noun == "preflight":
        return preflight_main(argv)
    if noun == "scenario":
        return scenario_main(argv)

    print(f"Error: Noun '{noun}' not yet implemented")
    return 1


def main(argv: Optional[list] = None) -> int:
    """CLI entry point, dispatch to noun-action handlers."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv:
        print_usage()
        return 0

    first_arg = argv[0]
    if first_arg in ('-h', '--help'):
        print_usage()
        return 0
    if first_arg == '--version':
        print(f"archvm-driver {get_version()}")
        return 0
    if first_arg in NOUN_COMMANDS:
        return dispatch_noun(first_arg, argv[1:])

    print(f"Error: Unknown command '{first_arg}'")
    print_usage()
    return 1


if __name__ == '__main__':
    sys.exit(main())
