"""Install scenarios and the orchestrator that runs them."""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from common import ActionResult
from config import InstallConfig
from reporting import RunReport

logger = logging.getLogger(__name__)

RULE = '═' * 63


@runtime_checkable
class Scenario(Protocol):
    """A named, ordered list of phases.

    Class attributes:
        name: Scenario identifier (e.g., 'arch-install')
        description: One-line summary for `scenario list`
        expected_runtime: Optional typical runtime in seconds
    """
    name: str
    description: str

    def get_phases(self, config: InstallConfig) -> list[tuple[str, Any, str]]:
        """Return (phase_name, action, description) tuples in run order."""
        ...


class Orchestrator:
    """Runs a scenario's phases against one disk image.

    Each phase's context_updates are merged into the shared context the
    later phases see. A failed phase ends the run unless its result sets
    continue_on_failure. The report is written whether or not the run
    passes.
    """

    def __init__(
        self,
        scenario: Scenario,
        config: InstallConfig,
        report_dir: Path,
        skip_phases: Optional[list[str]] = None,
        dry_run: bool = False
    ):
        self.scenario = scenario
        self.config = config
        self.skip_phases = set(skip_phases or [])
        self.dry_run = dry_run
        self.report = RunReport(scenario=scenario.name, disk_image=config.output, report_dir=report_dir)
        self.context: dict[str, Any] = {}

    def preview(self) -> bool:
        """Print the phase plan and the files the run would touch."""
        phases = self.scenario.get_phases(self.config)
        skipped = [name for name, _, _ in phases if name in self.skip_phases]

        print(RULE)
        print(f"  DRY-RUN: {self.scenario.name}")
        print(f"  Disk image:  {self.config.output} ({self.config.disk_size})")
        print(f"  ISO:         {self.config.iso_path}")
        print(f"  Session log: {self.config.log_path}")
        print(RULE)
        for number, (name, action, description) in enumerate(phases, 1):
            mark = 'SKIP' if name in self.skip_phases else ' OK '
            print(f"  {number}. [{mark}] {name}: {description} ({type(action).__name__})")
        print(RULE)
        print(f"  {len(phases) - len(skipped)} phases to run, {len(skipped)} skipped. Nothing was changed.")
        return True

    def _run_phase(self, name: str, action: Any) -> ActionResult:
        start = time.monotonic()
        try:
            result = action.run(self.config, self.context)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(f"Phase {name} raised")
            result = ActionResult(success=False, message=str(e))
        if not result.duration:
            result.duration = time.monotonic() - start
        return result

    def run(self) -> bool:
        """Run every phase not skipped. Returns True if all passed."""
        if self.dry_run:
            return self.preview()

        logger.info(f"Starting {self.scenario.name} for {self.config.output}")
        self.report.start()
        all_passed = True

        for name, action, description in self.scenario.get_phases(self.config):
            if name in self.skip_phases:
                logger.info(f"Skipping phase {name}")
                self.report.skip(name, description)
                continue

            logger.info(f"Phase {name}: {description}")
            result = self._run_phase(name, action)
            self.context.update(result.context_updates or {})
            self.report.record(name, description, result)
            if result.success:
                continue

            logger.error(f"Phase {name} failed: {result.message}")
            all_passed = False
            if not result.continue_on_failure:
                break

        json_path, _ = self.report.finish(all_passed, self.context)
        logger.info(f"{self.scenario.name} {'passed' if all_passed else 'failed'} "
                    f"in {self.report.duration:.1f}s, report: {json_path}")
        return all_passed


_registry: dict[str, type] = {}


def register_scenario(cls: type) -> type:
    """Class decorator adding a scenario to the registry under cls.name."""
    _registry[cls.name] = cls
    return cls


def get_scenario(name: str) -> Scenario:
    """Instantiate the registered scenario called name."""
    try:
        return _registry[name]()
    except KeyError:
        raise ValueError(f"Unknown scenario '{name}' (available: {', '.join(list_scenarios())})") from None


def list_scenarios() -> list[str]:
    return sorted(_registry)


# Registration happens on import
from scenarios import arch_install  # noqa: E402, F401
