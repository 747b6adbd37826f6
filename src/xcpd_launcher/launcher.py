"""Validate an invocation, then run xcp_d in singularity inside a scoped temp dir."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .config import SitePaths, load_container_layout, load_site_paths
from .container import (
    BindMount,
    ContainerLayout,
    EnvPair,
    SingularityRuntime,
    build_app_args,
    fixed_bind_mounts,
    format_command,
)
from .errors import DownstreamFailure, LauncherEnvironmentError, ResourceNotFound
from .layout import SCRATCH_ENV
from .process import run_foreground, termination_signals
from .scheduler import JobContext
from .workdir import JobTempDir


@dataclass(frozen=True)
class InvocationConfig:
    """Everything the user asked for on the command line."""

    input_dir: Path
    output_dir: Path
    version: str
    templateflow_home: Path
    bind_points: Tuple[BindMount, ...] = ()
    env_pairs: Tuple[EnvPair, ...] = ()
    cleanup: bool = True
    prep_args: Tuple[str, ...] = ()


@dataclass
class LaunchPlan:
    """A validated invocation with every derived value resolved."""

    config: InvocationConfig
    job: JobContext
    site: SitePaths
    layout: ContainerLayout
    runtime: SingularityRuntime
    image: Path
    created_output: bool = False
    workdir: Optional[JobTempDir] = field(default=None, repr=False)

    @property
    def num_threads(self) -> int:
        return self.job.num_procs

    @property
    def omp_threads(self) -> int:
        return self.job.num_procs

    def bind_mounts(self, job_tmp_dir: Path) -> List[BindMount]:
        """Fixed mounts first, then the user's, without de-duplication."""
        mounts = fixed_bind_mounts(
            self.layout,
            job_tmp_dir=job_tmp_dir,
            templateflow_home=self.config.templateflow_home,
            fs_license=self.site.fs_license,
            input_dir=self.config.input_dir,
            output_dir=self.config.output_dir,
        )
        mounts.extend(self.config.bind_points)
        return mounts

    def command(self, job_tmp_dir: Path) -> List[str]:
        return self.runtime.build_run_command(
            self.layout,
            self.image,
            bind_mounts=self.bind_mounts(job_tmp_dir),
            env_pairs=self.config.env_pairs,
            app_args=build_app_args(self.layout, self.num_threads, self.omp_threads),
            user_args=self.config.prep_args,
        )

    def child_env(self, base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ if base_env is None else base_env)
        env[SCRATCH_ENV] = str(self.job.scratch_root)
        env.update(self.layout.container_env())
        return env


def _ensure_output_dir(path: Path) -> bool:
    if path.is_dir():
        return False
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise LauncherEnvironmentError(f"Could not find or create output directory {path}: {exc}") from exc
    if not path.is_dir():
        raise LauncherEnvironmentError(f"Could not find or create output directory {path}")
    return True


def prepare(
    config: InvocationConfig,
    *,
    site: Optional[SitePaths] = None,
    layout: Optional[ContainerLayout] = None,
    runtime: Optional[SingularityRuntime] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LaunchPlan:
    """Run every check that must pass before the job temp dir is created."""
    environ = os.environ if environ is None else environ
    site = site or load_site_paths(environ=environ)
    layout = layout or load_container_layout(environ=environ)

    image = layout.image_path(site.containers_dir, config.version)
    if not image.is_file():
        raise ResourceNotFound(f"Cannot find requested container {image}")

    job = JobContext.from_environment(site.scratch_root, environ)
    runtime = runtime or SingularityRuntime.locate()

    if not config.input_dir.is_dir():
        raise ResourceNotFound(f"Cannot find input BIDS directory {config.input_dir}")
    created_output = _ensure_output_dir(config.output_dir)

    if not config.templateflow_home.is_dir():
        raise ResourceNotFound(f"Could not find templateflow at {config.templateflow_home}")

    return LaunchPlan(
        config=config,
        job=job,
        site=site,
        layout=layout,
        runtime=runtime,
        image=image,
        created_output=created_output,
    )


def _emit(text: str = "") -> None:
    print(text, flush=True)


def print_summary(plan: LaunchPlan) -> None:
    config = plan.config
    _emit("\n--- args passed through to xcp ---")
    _emit(" ".join(config.prep_args))
    _emit("---\n")
    _emit("--- Script options ---")
    rows = [
        ("XCP_D image", plan.image),
        ("Input directory", config.input_dir),
        ("Output directory", config.output_dir),
        ("Templateflow home", config.templateflow_home),
        ("Cleanup temp", int(config.cleanup)),
        ("User bind points", ",".join(str(mount) for mount in config.bind_points)),
        ("User environment vars", ",".join(str(pair) for pair in config.env_pairs)),
        ("Number of cores", plan.num_threads),
        ("OMP threads", plan.omp_threads),
    ]
    for label, value in rows:
        _emit(f"{label:<23}: {value}")
    _emit("---\n")


def launch(plan: LaunchPlan) -> int:
    """Create the job temp dir, run the container and release the temp dir.

    Returns 0 when the container succeeds; raises :class:`DownstreamFailure`
    with the container's code otherwise. Interrupts propagate as
    :class:`~xcpd_launcher.errors.LaunchInterrupted` after cleanup.
    """
    if not plan.job.scratch_from_env:
        _emit(f"[INFO] Setting {SCRATCH_ENV}={plan.job.scratch_root}")
    if plan.created_output:
        _emit(f"[INFO] Created output directory {plan.config.output_dir}")

    with termination_signals():
        workdir = JobTempDir(plan.job.scratch_root, plan.job.job_id, cleanup=plan.config.cleanup)
        plan.workdir = workdir
        with workdir:
            print_summary(plan)

            _emit("--- Container details ---")
            details = plan.runtime.inspect(plan.image)
            if details:
                _emit(details.rstrip("\n"))
            _emit("---\n")

            cmd = plan.command(workdir.path)
            display = format_command(cmd)
            _emit("--- prep command ---")
            _emit(display)
            _emit("---\n")

            workdir.start()
            returncode = run_foreground(cmd, env=plan.child_env())
            workdir.finish(returncode == 0)
            if returncode != 0:
                _emit(f"[WARN] Container exited with non-zero code {returncode}")
                raise DownstreamFailure(returncode, display)
    return 0


def run(config: InvocationConfig, **kwargs) -> int:
    return launch(prepare(config, **kwargs))


__all__ = ["InvocationConfig", "LaunchPlan", "launch", "prepare", "print_summary", "run"]
