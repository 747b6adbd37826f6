"""Job-scoped temp directory bound to /tmp inside the container."""

from __future__ import annotations

import enum
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from .errors import LaunchInterrupted, LauncherEnvironmentError
from .layout import TEMP_DIR_PREFIX
from .process import deferred_signals


class JobState(str, enum.Enum):
    PENDING = "pending"
    CREATED = "created"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INTERRUPTED = "interrupted"
    CLEANED_UP = "cleaned_up"
    RETAINED = "retained"


_FINISHED = (JobState.SUCCEEDED, JobState.FAILED, JobState.INTERRUPTED)


class JobTempDir:
    """Create ``<prefix>.<job_id>.XXXXXXXX.tmpdir`` under ``scratch_root``.

    The directory is removed when the context exits, whatever the exit path,
    unless ``cleanup`` is False. ``history`` records every state visited.
    """

    def __init__(self, scratch_root: Path, job_id: str, *, cleanup: bool = True, prefix: str = TEMP_DIR_PREFIX) -> None:
        self.scratch_root = Path(scratch_root)
        self.job_id = job_id
        self.cleanup = cleanup
        self.prefix = prefix
        self.path: Optional[Path] = None
        self.history: List[JobState] = [JobState.PENDING]

    @property
    def state(self) -> JobState:
        return self.history[-1]

    def _advance(self, state: JobState) -> None:
        self.history.append(state)

    def create(self) -> Path:
        try:
            created = tempfile.mkdtemp(
                prefix=f"{self.prefix}.{self.job_id}.",
                suffix=".tmpdir",
                dir=str(self.scratch_root),
            )
        except OSError as exc:
            raise LauncherEnvironmentError(
                f"Could not create job temp dir under {self.scratch_root}: {exc}"
            ) from exc
        self.path = Path(created)
        self._advance(JobState.CREATED)
        return self.path

    def start(self) -> None:
        if self.path is None or not self.path.is_dir():
            raise LauncherEnvironmentError(f"Job temp dir {self.path} does not exist")
        self._advance(JobState.RUNNING)

    def finish(self, succeeded: bool) -> None:
        self._advance(JobState.SUCCEEDED if succeeded else JobState.FAILED)

    def release(self) -> List[int]:
        """Remove (or keep) the directory; returns signals received meanwhile."""
        if self.path is None:
            return []
        with deferred_signals() as received:
            if self.cleanup:
                print(f"Removing temp dir {self.path}")
                shutil.rmtree(self.path, ignore_errors=True)
                if self.path.exists():
                    print(f"[WARN] Temp dir {self.path} could not be fully removed")
                self._advance(JobState.CLEANED_UP)
            else:
                print(f"Leaving temp dir {self.path}")
                self._advance(JobState.RETAINED)
        return received

    def __enter__(self) -> "JobTempDir":
        self.create()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.state not in _FINISHED:
            if exc_type is not None and issubclass(exc_type, KeyboardInterrupt):
                self._advance(JobState.INTERRUPTED)
            elif exc_type is not None:
                self._advance(JobState.FAILED)
        received = self.release()
        # An exception already in flight decides the exit status.
        if received and exc_type is None:
            raise LaunchInterrupted(received[0])
        return False


__all__ = ["JobState", "JobTempDir"]
