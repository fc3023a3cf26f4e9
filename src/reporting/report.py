"""Run reports for install scenarios.

A report records each phase's outcome and, once the console install has
run, how its session ended: the SessionResult variant, the step it stopped
at and where the session log lives. Reports are written as JSON and
markdown into the report directory, named
<timestamp>.<scenario>.<passed|failed>.<ext>.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from common import ActionResult

# Context keys produced by the console install action
SESSION_KEYS = ('session_result', 'session_step', 'session_log')

MARKS = {'passed': '✅', 'failed': '❌', 'skipped': '⏭️'}


@dataclass
class PhaseResult:
    """Outcome of one scenario phase."""
    name: str
    description: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0


@dataclass
class SessionOutcome:
    """How the console install session ended."""
    result: str
    log_path: str = ''
    step_index: Optional[int] = None

    @classmethod
    def from_context(cls, context: dict) -> Optional['SessionOutcome']:
        if 'session_result' not in context:
            return None
        return cls(
            result=context['session_result'],
            log_path=context.get('session_log', ''),
            step_index=context.get('session_step'),
        )

    def describe(self) -> str:
        if self.step_index is None:
            return self.result
        return f"{self.result} at step {self.step_index}"


@dataclass
class RunReport:
    """Phase outcomes and session result of one scenario run."""
    scenario: str
    disk_image: Path
    report_dir: Path
    phases: list[PhaseResult] = field(default_factory=list)
    session: Optional[SessionOutcome] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False

    def start(self):
        self.started_at = datetime.now()
        self.report_dir.mkdir(parents=True, exist_ok=True)

    def record(self, name: str, description: str, result: ActionResult):
        """Record a phase that ran, from its ActionResult."""
        self.phases.append(PhaseResult(
            name=name,
            description=description,
            status='passed' if result.success else 'failed',
            message=result.message,
            duration=result.duration,
        ))

    def skip(self, name: str, description: str):
        self.phases.append(PhaseResult(name=name, description=description, status='skipped'))

    @property
    def failure(self) -> Optional[PhaseResult]:
        """First failed phase, if any."""
        return next((p for p in self.phases if p.status == 'failed'), None)

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self, success: bool, context: Optional[dict] = None) -> tuple[Path, Path]:
        """Close the run and write both report files. Returns their paths."""
        self.finished_at = datetime.now()
        self.success = success
        self.session = SessionOutcome.from_context(context or {})

        json_path = self._path('json')
        json_path.write_text(json.dumps(self.to_dict(context), indent=2), encoding='utf-8')
        md_path = self._path('md')
        md_path.write_text(self.to_markdown(), encoding='utf-8')
        return json_path, md_path

    def to_dict(self, context: Optional[dict] = None) -> dict:
        """Report as a dict, for the JSON file and --json-output.

        Context keys starting with '_' (secrets, script bodies) and values
        that are not JSON-serializable are left out. Session keys appear
        under 'session' instead of 'context'.
        """
        data = {
            'scenario': self.scenario,
            'disk_image': str(self.disk_image),
            'success': self.success,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'duration_seconds': round(self.duration, 1),
            'phases': [
                {
                    'name': p.name,
                    'status': p.status,
                    'message': p.message,
                    'duration': round(p.duration, 1),
                }
                for p in self.phases
            ],
            'session': None,
            'context': _public_context(context),
        }
        if self.session is not None:
            data['session'] = {
                'result': self.session.result,
                'step_index': self.session.step_index,
                'log': self.session.log_path,
            }
        if self.failure is not None:
            data['error'] = self.failure.message
        return data

    def to_markdown(self) -> str:
        outcome = 'PASSED' if self.success else 'FAILED'
        started = self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'
        lines = [
            f"# {self.scenario} {outcome}",
            "",
            f"- Disk image: `{self.disk_image}`",
            f"- Started: {started} ({self.duration:.1f}s)",
        ]
        if self.session is not None:
            lines.append(f"- Console session: {self.session.describe()}, log `{self.session.log_path}`")
        lines += [
            "",
            "| Phase | Result | Time | Message |",
            "|-------|--------|------|---------|",
        ]
        for p in self.phases:
            message = p.message.replace('|', '\\|').replace('\n', ' ')
            lines.append(f"| {p.name} | {MARKS.get(p.status, '')} {p.status} | {p.duration:.1f}s | {message} |")
        return '\n'.join(lines) + '\n'

    def _path(self, ext: str) -> Path:
        stamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unstarted'
        outcome = 'passed' if self.success else 'failed'
        return self.report_dir / f"{stamp}.{self.scenario}.{outcome}.{ext}"


def _public_context(context: Optional[dict]) -> dict:
    public = {}
    for key, value in (context or {}).items():
        if key.startswith('_') or key in SESSION_KEYS:
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            continue
        public[key] = value
    return public
