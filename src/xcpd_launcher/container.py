"""Singularity command assembly for xcp_d."""

from __future__ import annotations

import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import ConfigError, ResourceNotFound
from .layout import CONTAINER_ENV_PREFIX, RUNTIME_EXECUTABLE


@dataclass
class ContainerLayout:
    image_pattern: str = "xcp_d-{version}.sif"
    tmp_dir: str = "/tmp"
    templateflow_home: str = "/opt/templateflow"
    fs_license: str = "/freesurfer/license.txt"
    input_dir: str = "/data/input"
    output_dir: str = "/data/output"
    analysis_level: str = "participant"
    runtime_flags: List[str] = field(default_factory=lambda: ["--cleanenv", "--no-home"])
    app_flags: List[str] = field(default_factory=lambda: ["--notrack"])
    nthreads_flag: str = "--nthreads"
    omp_nthreads_flag: str = "--omp-nthreads"
    work_dir_flag: str = "-w"
    work_dir: str = "/tmp"
    trailing_flags: List[str] = field(default_factory=lambda: ["--verbose"])

    def image_path(self, containers_dir: Path, version: str) -> Path:
        if not version:
            raise ConfigError("Container version must not be empty")
        return Path(containers_dir) / self.image_pattern.format(version=version)

    def container_env(self) -> Dict[str, str]:
        """Variables singularity forwards into the container (prefix stripped inside)."""
        return {
            f"{CONTAINER_ENV_PREFIX}TMPDIR": self.tmp_dir,
            f"{CONTAINER_ENV_PREFIX}TEMPLATEFLOW_HOME": self.templateflow_home,
            f"{CONTAINER_ENV_PREFIX}FS_LICENSE": self.fs_license,
        }


@dataclass(frozen=True)
class BindMount:
    source: str
    destination: Optional[str] = None
    options: Optional[str] = None

    @classmethod
    def parse(cls, spec: str) -> "BindMount":
        parts = spec.split(":")
        if not parts[0] or len(parts) > 3 or any(not part for part in parts[1:]):
            raise ConfigError(f"Invalid bind point '{spec}' (expected src:dest[:opts])")
        return cls(*parts)

    def __str__(self) -> str:
        return ":".join(part for part in (self.source, self.destination, self.options) if part)


@dataclass(frozen=True)
class EnvPair:
    name: str
    value: str

    @classmethod
    def parse(cls, spec: str) -> "EnvPair":
        name, sep, value = spec.partition("=")
        if not sep or not name.strip():
            raise ConfigError(f"Invalid environment variable '{spec}' (expected VAR=value)")
        return cls(name.strip(), value)

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_bind_points(raw: Optional[str]) -> Tuple[BindMount, ...]:
    """Parse ``src:dest[,src:dest...]`` keeping the caller's order."""
    return tuple(BindMount.parse(item) for item in _split_list(raw))


def parse_env_pairs(raw: Optional[str]) -> Tuple[EnvPair, ...]:
    return tuple(EnvPair.parse(item) for item in _split_list(raw))


def available_versions(containers_dir: Path) -> List[str]:
    """Return the installed image file names under ``containers_dir``."""
    containers_dir = Path(containers_dir)
    if not containers_dir.is_dir():
        return []
    return sorted(path.name for path in containers_dir.glob("*.sif") if path.is_file())


def fixed_bind_mounts(
    layout: ContainerLayout,
    *,
    job_tmp_dir: Path,
    templateflow_home: Path,
    fs_license: Path,
    input_dir: Path,
    output_dir: Path,
) -> List[BindMount]:
    return [
        BindMount(str(job_tmp_dir), layout.tmp_dir),
        BindMount(str(templateflow_home), layout.templateflow_home),
        BindMount(str(fs_license), layout.fs_license),
        BindMount(str(input_dir), layout.input_dir),
        BindMount(str(output_dir), layout.output_dir),
    ]


def build_app_args(layout: ContainerLayout, num_threads: int, omp_threads: Optional[int] = None) -> List[str]:
    """Script-defined xcp_d flags placed before the user's pass-through args."""
    omp = num_threads if omp_threads is None else omp_threads
    args: List[str] = list(layout.app_flags)
    args.extend([layout.nthreads_flag, str(num_threads)])
    args.extend([layout.omp_nthreads_flag, str(omp)])
    args.extend([layout.work_dir_flag, layout.work_dir])
    args.extend(layout.trailing_flags)
    return args


def format_command(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in cmd)


class SingularityRuntime:
    """Thin wrapper over the singularity executable."""

    def __init__(self, executable: str) -> None:
        self.executable = executable

    @classmethod
    def locate(cls, name: str = RUNTIME_EXECUTABLE) -> "SingularityRuntime":
        found = shutil.which(name)
        if found is None:
            raise ResourceNotFound(f"Cannot find {name} executable. Try module load {name}")
        return cls(found)

    def inspect(self, image: Path) -> Optional[str]:
        """Return ``singularity inspect`` output, or None when it fails."""
        try:
            completed = subprocess.run(
                [self.executable, "inspect", str(image)],
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            print(f"[WARN] Could not inspect {image}: {exc}")
            return None
        return completed.stdout

    def build_run_command(
        self,
        layout: ContainerLayout,
        image: Path,
        *,
        bind_mounts: Iterable[BindMount],
        env_pairs: Iterable[EnvPair] = (),
        app_args: Iterable[str] = (),
        user_args: Iterable[str] = (),
    ) -> List[str]:
        cmd: List[str] = [self.executable, "run"]
        cmd.extend(layout.runtime_flags)
        for mount in bind_mounts:
            cmd.extend(["-B", str(mount)])
        for pair in env_pairs:
            cmd.extend(["--env", str(pair)])
        cmd.append(str(image))
        cmd.extend([layout.input_dir, layout.output_dir, layout.analysis_level])
        cmd.extend(app_args)
        cmd.extend(user_args)
        return cmd


__all__ = [
    "BindMount",
    "ContainerLayout",
    "EnvPair",
    "SingularityRuntime",
    "available_versions",
    "build_app_args",
    "fixed_bind_mounts",
    "format_command",
    "parse_bind_points",
    "parse_env_pairs",
]
