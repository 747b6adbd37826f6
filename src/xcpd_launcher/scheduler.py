from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ResourceNotFound
from .layout import JOB_ID_ENV, NUM_PROCS_ENV, SCRATCH_ENV


@dataclass(frozen=True)
class JobContext:
    """LSF job details the launcher depends on."""

    job_id: str
    num_procs: int
    scratch_root: Path
    scratch_from_env: bool = True

    @classmethod
    def from_environment(
        cls,
        default_scratch: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "JobContext":
        environ = os.environ if environ is None else environ

        job_id = (environ.get(JOB_ID_ENV) or "").strip()
        if not job_id:
            raise ResourceNotFound("This script must be run within a (batch or interactive) LSF job")

        raw_procs = (environ.get(NUM_PROCS_ENV) or "").strip()
        try:
            num_procs = int(raw_procs)
        except ValueError:
            num_procs = 0
        if num_procs < 1:
            raise ResourceNotFound(
                f"Cannot determine reserved cores from ${NUM_PROCS_ENV} (got '{raw_procs}')"
            )

        scratch_env = environ.get(SCRATCH_ENV)
        if scratch_env and Path(scratch_env).is_dir():
            return cls(job_id, num_procs, Path(scratch_env), scratch_from_env=True)
        return cls(job_id, num_procs, Path(default_scratch), scratch_from_env=False)


__all__ = ["JobContext"]
