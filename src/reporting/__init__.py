"""Build reporting."""

from reporting.report import BuildReport, StepRecord

__all__ = ['BuildReport', 'StepRecord']
