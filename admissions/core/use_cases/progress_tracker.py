"""
Progress Tracker: per-file upload progress and pipeline stage.

Pure state holder. Two producers feed it during a submission: simulated
ticks (``update_file``) and real upload results (``complete_file`` /
``fail_file``). A real result always wins and locks the file.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class SubmissionStage(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    COMPRESSING = "compressing"
    UPLOADING = "uploading"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ERROR = "error"


STAGE_MESSAGES = {
    SubmissionStage.IDLE: "",
    SubmissionStage.PREPARING: "Preparing your application...",
    SubmissionStage.COMPRESSING: "Optimizing file sizes...",
    SubmissionStage.UPLOADING: "Uploading documents...",
    SubmissionStage.FINALIZING: "Finalizing submission...",
    SubmissionStage.COMPLETED: "Application submitted successfully!",
    SubmissionStage.ERROR: "An error occurred during submission",
}


class FileStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class FileProgress:
    name: str
    progress: int = 0
    status: FileStatus = FileStatus.PENDING
    error: str | None = None

    @property
    def settled(self) -> bool:
        return self.status in (FileStatus.COMPLETED, FileStatus.ERROR)


@dataclass(frozen=True)
class ProgressSnapshot:
    stage: SubmissionStage = SubmissionStage.IDLE
    message: str = ""
    overall: int = 0
    files: dict[str, FileProgress] = field(default_factory=dict)
    estimated_time_remaining: int | None = None
    cancelled: bool = False


class ProgressTracker:
    """Observable progress signal for one submission."""

    SIMULATED_CEILING = 99
    HISTORY_WINDOW = 5

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._listeners: list[Callable[[ProgressSnapshot], None]] = []
        self._history: list[tuple[float, int]] = []
        self._frozen = False
        self._state = ProgressSnapshot()

    # ── Observation ───────────────────────────────────
    def snapshot(self) -> ProgressSnapshot:
        return self._state

    @property
    def stage(self) -> SubmissionStage:
        return self._state.stage

    @property
    def frozen(self) -> bool:
        return self._frozen

    def subscribe(self, listener: Callable[[ProgressSnapshot], None]) -> Callable[[], None]:
        """Registers a listener; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Mutations ─────────────────────────────────────
    def start(self, file_names: list[str]) -> None:
        self._frozen = False
        self._history = []
        self._publish(ProgressSnapshot(
            stage=SubmissionStage.PREPARING,
            message="Preparing files for upload...",
            files={name: FileProgress(name=name) for name in file_names},
        ))

    def set_stage(self, stage: SubmissionStage, message: str | None = None) -> None:
        if self._frozen:
            return
        self._publish(replace(
            self._state,
            stage=stage,
            message=message if message is not None else STAGE_MESSAGES[stage],
        ))

    def update_file(self, name: str, progress: int) -> None:
        """Simulated/in-flight progress. Never decreases, never reaches 100."""
        if self._frozen:
            return
        current = self._state.files.get(name)
        if current is None or current.settled:
            return
        value = max(current.progress, min(int(progress), self.SIMULATED_CEILING))
        self._set_file(replace(current, progress=value, status=FileStatus.UPLOADING))

    def complete_file(self, name: str) -> None:
        self._settle(name, FileProgress(name=name, progress=100, status=FileStatus.COMPLETED))

    def fail_file(self, name: str, error: str) -> None:
        self._settle(name, FileProgress(name=name, progress=0, status=FileStatus.ERROR, error=error))

    def finish(self, stage: SubmissionStage, message: str | None = None) -> None:
        """
        Publishes the terminal stage.

        Applies after freeze() as well, so a cancelled submission still
        shows how it ended; file progress stays as it was frozen.
        """
        if stage not in (SubmissionStage.COMPLETED, SubmissionStage.ERROR):
            raise ValueError(f"{stage.value} is not a terminal stage")
        self._publish(replace(
            self._state,
            stage=stage,
            message=message if message is not None else STAGE_MESSAGES[stage],
            estimated_time_remaining=None,
        ))

    def freeze(self) -> None:
        """Stops per-file and interim stage reporting (user cancelled)."""
        self._publish(replace(self._state, cancelled=True, message="Submission cancelled"))
        self._frozen = True

    def reset(self) -> None:
        self._frozen = False
        self._history = []
        self._publish(ProgressSnapshot())

    # ── Internals ─────────────────────────────────────
    def _settle(self, name: str, result: FileProgress) -> None:
        if self._frozen:
            return
        current = self._state.files.get(name)
        if current is not None and current.settled:
            return
        self._set_file(result)

    def _set_file(self, file_progress: FileProgress) -> None:
        files = dict(self._state.files)
        files[file_progress.name] = file_progress
        overall = round(sum(f.progress for f in files.values()) / len(files)) if files else 0
        now = self._clock()
        self._history.append((now, overall))
        self._publish(replace(
            self._state,
            files=files,
            overall=overall,
            estimated_time_remaining=self._estimate_remaining(overall),
        ))

    def _estimate_remaining(self, overall: int) -> int | None:
        if not 0 < overall < 100:
            return None
        recent = self._history[-self.HISTORY_WINDOW:]
        if len(recent) < 2:
            return None
        time_span = recent[-1][0] - recent[0][0]
        progress_span = recent[-1][1] - recent[0][1]
        if progress_span <= 0 or time_span <= 0:
            return None
        rate = progress_span / time_span
        return round((100 - overall) / rate)

    def _publish(self, state: ProgressSnapshot) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")


def format_time_remaining(seconds: int | None) -> str:
    if not seconds or seconds <= 0:
        return ""
    if seconds < 60:
        return f"{seconds}s remaining"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s remaining"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m remaining"
