from __future__ import annotations

from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parent
SRC_ROOT = PACKAGE_ROOT.parent
REPO_ROOT = SRC_ROOT.parent
CONFIG_DIR = PACKAGE_ROOT / "configs"

DEFAULT_PATHS_FILE = CONFIG_DIR / "paths.yaml"
DEFAULT_CONTAINER_FILE = CONFIG_DIR / "container.yaml"

# Environment variables read by the launcher.
JOB_ID_ENV = "LSB_JOBID"
NUM_PROCS_ENV = "LSB_DJOB_NUMPROC"
SCRATCH_ENV = "SINGULARITY_TMPDIR"
PATHS_OVERRIDE_ENV = "XCPD_LAUNCHER_PATHS"
CONTAINER_OVERRIDE_ENV = "XCPD_LAUNCHER_CONTAINER"
# Checkout holding containers/; needed when the package is not installed editable.
REPO_ROOT_ENV = "XCPD_LAUNCHER_REPO"

# Prefix singularity strips when forwarding variables into the container.
CONTAINER_ENV_PREFIX = "SINGULARITYENV_"

RUNTIME_EXECUTABLE = "singularity"
TEMP_DIR_PREFIX = "xcp_d"

__all__ = [
    "CONFIG_DIR",
    "CONTAINER_ENV_PREFIX",
    "CONTAINER_OVERRIDE_ENV",
    "DEFAULT_CONTAINER_FILE",
    "DEFAULT_PATHS_FILE",
    "JOB_ID_ENV",
    "NUM_PROCS_ENV",
    "PACKAGE_ROOT",
    "PATHS_OVERRIDE_ENV",
    "REPO_ROOT",
    "REPO_ROOT_ENV",
    "RUNTIME_EXECUTABLE",
    "SCRATCH_ENV",
    "SRC_ROOT",
    "TEMP_DIR_PREFIX",
]
