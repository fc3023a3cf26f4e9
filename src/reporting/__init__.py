"""Scenario run reporting."""

from reporting.report import PhaseResult, RunReport, SessionOutcome

__all__ = ['PhaseResult', 'RunReport', 'SessionOutcome']
