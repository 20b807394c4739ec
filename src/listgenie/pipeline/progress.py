"""Rich progress display for an upload and the job that follows it.

Two tiers:

* **Upload** -- bytes handed to the transport so far
* **Steps** -- one row per client step, showing its current state
"""

from __future__ import annotations

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from listgenie.models import ClientStepId, ClientStepState, UploadProgress
from listgenie.pipeline.steps import CLIENT_STEP_NAMES, CLIENT_STEP_ORDER, ClientStep

_STATE_STYLES: dict[ClientStepState, str] = {
    ClientStepState.WAITING: "dim",
    ClientStepState.PENDING: "yellow",
    ClientStepState.IN_PROGRESS: "cyan",
    ClientStepState.COMPLETED: "green",
    ClientStepState.ERROR: "bold red",
}


class UploadProgressTracker:
    """Rich progress tracker for one processing run.

    Usage::

        with UploadProgressTracker() as tracker:
            outcome = await runner.process(
                files,
                on_progress=tracker.upload_progress,
                on_update=lambda _: tracker.show_steps(runner.board.steps),
            )

    Or without context manager::

        tracker.start()
        # ... use tracker ...
        tracker.stop()
    """

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TimeRemainingColumn(),
            TextColumn("{task.fields[status]}"),
            console=console,
        )
        self._upload_task: TaskID | None = None
        self._step_tasks: dict[ClientStepId, TaskID] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the Rich progress display."""
        self._progress.start()
        self._upload_task = self._progress.add_task(
            "[green]Upload", total=None, status="starting..."
        )
        for step_id in CLIENT_STEP_ORDER:
            self._step_tasks[step_id] = self._progress.add_task(
                f"[blue]{CLIENT_STEP_NAMES[step_id]}",
                total=1,
                status=self._styled(ClientStepState.WAITING),
            )

    def stop(self) -> None:
        """Stop the Rich progress display."""
        self._progress.stop()

    def __enter__(self) -> UploadProgressTracker:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def upload_progress(self, progress: UploadProgress) -> None:
        """Record bytes sent; usable directly as an upload progress callback."""
        if self._upload_task is None:
            return
        status = "sent" if progress.percent >= 100 else "uploading"
        self._progress.update(
            self._upload_task,
            total=progress.total,
            completed=progress.loaded,
            status=status,
        )

    def show_steps(self, steps: list[ClientStep]) -> None:
        """Redraw the step rows from a board snapshot."""
        for step in steps:
            task = self._step_tasks.get(step.id)
            if task is None:
                continue
            self._progress.update(
                task,
                completed=1 if step.state is ClientStepState.COMPLETED else 0,
                status=self._styled(step.state),
            )

    @staticmethod
    def _styled(state: ClientStepState) -> str:
        style = _STATE_STYLES[state]
        return f"[{style}]{state.value}[/{style}]"
