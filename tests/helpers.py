from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from xcpd_launcher.config import SitePaths
from xcpd_launcher.container import BindMount, SingularityRuntime
from xcpd_launcher.launcher import InvocationConfig

FAKE_SINGULARITY = "/opt/singularity/bin/singularity"


class StubRuntime(SingularityRuntime):
    """Runtime that never shells out to `singularity inspect`."""

    def __init__(self, executable: str = FAKE_SINGULARITY, details: Optional[str] = "org.label-schema.name: xcp_d") -> None:
        super().__init__(executable)
        self.details = details
        self.inspected: List[Path] = []

    def inspect(self, image: Path) -> Optional[str]:
        self.inspected.append(image)
        return self.details


def make_site(tmp_path: Path, versions: Sequence[str] = ("0.5.0",)) -> SitePaths:
    """Lay out a fake site: containers, templateflow, FreeSurfer and scratch."""
    containers = tmp_path / "containers"
    containers.mkdir()
    for version in versions:
        (containers / f"xcp_d-{version}.sif").write_text("image")
    templateflow = tmp_path / "templateflow"
    templateflow.mkdir()
    freesurfer = tmp_path / "freesurfer"
    freesurfer.mkdir()
    (freesurfer / "license.txt").write_text("license")
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    (tmp_path / "bids").mkdir()
    return SitePaths(
        freesurfer_dir=freesurfer,
        templateflow_home=templateflow,
        containers_dir=containers,
        scratch_root=scratch,
    )


def job_environ(site: SitePaths, *, job_id: str = "4242", num_procs: str = "4") -> Dict[str, str]:
    return {
        "LSB_JOBID": job_id,
        "LSB_DJOB_NUMPROC": num_procs,
        "SINGULARITY_TMPDIR": str(site.scratch_root),
    }


def make_config(
    site: SitePaths,
    *,
    version: str = "0.5.0",
    output_name: str = "out",
    bind_points: Sequence[BindMount] = (),
    cleanup: bool = True,
    prep_args: Sequence[str] = (),
) -> InvocationConfig:
    base = site.scratch_root.parent
    return InvocationConfig(
        input_dir=base / "bids",
        output_dir=base / output_name,
        version=version,
        templateflow_home=site.templateflow_home,
        bind_points=tuple(bind_points),
        cleanup=cleanup,
        prep_args=tuple(prep_args),
    )


def scratch_entries(site: SitePaths) -> List[Path]:
    return sorted(site.scratch_root.iterdir())
