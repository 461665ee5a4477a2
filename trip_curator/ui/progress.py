"""Terminal progress for pipeline runs with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)


@dataclass
class StageProgressState:
    total: int
    executed: int = 0
    skipped: int = 0
    degraded: int = 0
    failed: int = 0
    current_stage: str | None = None


class StageProgressReporter:
    """Render stage-by-stage progress and keep counters for the run summary."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: StageProgressState | None = None

    def start(self, total: int, label: str = "pipeline") -> None:
        self.state = StageProgressState(total=total)
        if not self.enabled:
            return
        console = self._console or Console()
        if not console.is_terminal:
            # non-interactive output: keep counters, skip rendering
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<18}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            TextColumn("[green]✓{task.fields[executed]:>2}", justify="right"),
            TextColumn("[yellow]↺{task.fields[skipped]:>2}", justify="right"),
            TextColumn("[magenta]~{task.fields[degraded]:>2}", justify="right"),
            TextColumn("[dim]{task.fields[stage]}", justify="left"),
            console=console,
            transient=True,
            expand=True,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "run", total=total, label=label, executed=0, skipped=0, degraded=0, stage="waiting…"
        )

    def stage_started(self, stage_id: str) -> None:
        if self.state is None:
            raise RuntimeError("StageProgressReporter.start must be called first")
        self.state.current_stage = stage_id
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, stage=stage_id)

    def stage_finished(self, stage_id: str, outcome: str) -> None:
        if self.state is None:
            raise RuntimeError("StageProgressReporter.start must be called first")
        if outcome == "executed":
            self.state.executed += 1
        elif outcome == "skipped":
            self.state.skipped += 1
        elif outcome == "degraded":
            self.state.executed += 1
            self.state.degraded += 1
        elif outcome == "failed":
            self.state.failed += 1
        if self._progress is not None and self._task_id is not None:
            self._progress.update(
                self._task_id,
                advance=0 if outcome == "failed" else 1,
                executed=self.state.executed,
                skipped=self.state.skipped,
                degraded=self.state.degraded,
                stage=stage_id,
            )

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress.__exit__(None, None, None)
            self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if self.state is None:
            return {"executed": 0, "skipped": 0, "degraded": 0, "failed": 0}
        return {
            "executed": self.state.executed,
            "skipped": self.state.skipped,
            "degraded": self.state.degraded,
            "failed": self.state.failed,
        }


__all__ = ["StageProgressReporter", "StageProgressState"]
