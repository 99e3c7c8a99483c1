"""Build reports."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from common import FileSystemError


@dataclass
class StepRecord:
    """Result of one build step."""
    name: str
    kind: str
    description: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0


@dataclass
class BuildReport:
    """Collects step results and writes JSON and markdown reports.

    Reports are only written when report_dir is set.
    """
    container: str
    report_dir: Optional[Path] = None
    steps: list[StepRecord] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False

    def start(self):
        """Mark build start."""
        self.started_at = datetime.now()
        if self.report_dir is not None:
            try:
                self.report_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FileSystemError(f"Cannot create report directory {self.report_dir}: {e}") from e

    def pass_step(self, name: str, kind: str, description: str, message: str = '', duration: float = 0.0):
        self.steps.append(StepRecord(name, kind, description, 'passed', message, duration))

    def fail_step(self, name: str, kind: str, description: str, message: str = '', duration: float = 0.0):
        self.steps.append(StepRecord(name, kind, description, 'failed', message, duration))

    def skip_step(self, name: str, kind: str, description: str):
        self.steps.append(StepRecord(name, kind, description, 'skipped'))

    @property
    def failed_step(self) -> Optional[StepRecord]:
        for s in self.steps:
            if s.status == 'failed':
                return s
        return None

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self, success: bool):
        """Finalize report and write files."""
        self.finished_at = datetime.now()
        self.success = success
        if self.report_dir is not None:
            try:
                self._write_json()
                self._write_markdown()
            except OSError as e:
                raise FileSystemError(f"Cannot write build report in {self.report_dir}: {e}") from e

    def _write_json(self):
        filename = self._report_filename('json')
        with open(filename, 'w', encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def _write_markdown(self):
        status = 'PASSED' if self.success else 'FAILED'

        lines = [
            f"# {self.container}",
            "",
            f"**Status**: {status}",
            f"**Date**: {self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'}",
            f"**Duration**: {self.duration:.1f}s",
            "",
            "## Steps",
            "",
            "| Step | Kind | Status | Duration | Message |",
            "|------|------|--------|----------|---------|",
        ]

        for s in self.steps:
            lines.append(f"| {s.name} | {s.kind} | {s.status} | {s.duration:.1f}s | {s.message} |")

        lines.extend(["", "---", f"Generated: {datetime.now().isoformat()}"])

        filename = self._report_filename('md')
        with open(filename, 'w', encoding="utf-8") as f:
            f.write('\n'.join(lines))

    def _report_filename(self, ext: str) -> Path:
        """Generate report filename from start time, container and status."""
        assert self.report_dir is not None
        timestamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        status = 'passed' if self.success else 'failed'
        slug = self.container.replace('/', '-')
        return self.report_dir / f"{timestamp}.{slug}.{status}.{ext}"

    def to_dict(self) -> dict:
        """Return report as dictionary for JSON output."""
        result = {
            'container': self.container,
            'success': self.success,
            'duration_seconds': round(self.duration, 1),
            'steps': [
                {
                    'name': s.name,
                    'kind': s.kind,
                    'status': s.status,
                    'duration': round(s.duration, 1),
                }
                for s in self.steps
            ]
        }

        failed = self.failed_step
        if failed is not None and failed.message:
            result['error'] = failed.message

        return result
