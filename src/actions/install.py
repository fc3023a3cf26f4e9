"""Console-driven install action: boot the ISO and run the step script."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from common import ActionResult
from config import InstallConfig
from console import Cancelled, ConsoleEngine, SessionLog
from errors import ContextError, SessionLogError, SpawnError
from qemu import build_qemu_command
from script import InstallationContext, render

logger = logging.getLogger(__name__)


@dataclass
class ConsoleInstallAction:
    """Drive the live ISO installer over the serial console.

    attempts > 1 reruns the whole session after a failure. The disk is
    not reset between attempts, so this is only useful when the caller
    knows the failure happened before the disk was touched.
    """
    name: str
    attempts: int = 1
    poll_interval: float = 0.1
    exit_timeout: Optional[float] = 300.0
    cancel: Optional[threading.Event] = None

    def run(self, config: InstallConfig, context: dict) -> ActionResult:
        """Render the script, then run it against QEMU with a session log."""
        start = time.time()

        # Everything that can fail without a VM fails here, before spawning
        try:
            ctx = InstallationContext.from_config(config, context)
            steps = render(ctx)
        except ContextError as e:
            return ActionResult(
                success=False,
                message=f"Cannot render install script: {e}",
                duration=time.time() - start
            )
        command = build_qemu_command(ctx)
        engine = ConsoleEngine(
            default_timeout=config.expect_timeout,
            poll_interval=self.poll_interval,
            exit_timeout=self.exit_timeout,
        )

        logger.info(f"[{self.name}] Rendered {len(steps)} steps, session log: {config.log_path}")
        result = None
        for attempt in range(1, max(1, self.attempts) + 1):
            if attempt > 1:
                logger.warning(f"[{self.name}] Retrying install session (attempt {attempt}/{self.attempts})")
            try:
                with SessionLog.open(config.log_path) as log:
                    result = engine.run(command, steps, log, cancel=self.cancel)
            except (SessionLogError, SpawnError) as e:
                return ActionResult(
                    success=False,
                    message=str(e),
                    duration=time.time() - start
                )
            if result.ok or isinstance(result, Cancelled):
                break

        updates = {
            'session_log': str(config.log_path),
            'session_result': type(result).__name__,
        }
        step_index = getattr(result, 'step_index', None)
        if step_index is not None:
            updates['session_step'] = step_index

        return ActionResult(
            success=result.ok,
            message=result.summary(),
            duration=time.time() - start,
            context_updates=updates
        )
