from __future__ import annotations

from pathlib import Path

import pytest

from xcpd_launcher import layout
from xcpd_launcher.config import load_container_layout, load_site_paths
from xcpd_launcher.container import ContainerLayout
from xcpd_launcher.errors import ConfigError, ResourceNotFound, LauncherEnvironmentError
from xcpd_launcher.launcher import prepare
from xcpd_launcher.scheduler import JobContext

from tests.helpers import job_environ, make_config


def test_default_site_paths_expand_repo_root():
    site = load_site_paths(environ={})
    assert site.containers_dir == layout.REPO_ROOT / "containers"
    assert site.fs_license == Path("/appl/freesurfer-7.1.1/license.txt")
    assert site.scratch_root == Path("/scratch")


def test_site_paths_override_merges_with_defaults(tmp_path):
    override = tmp_path / "paths.yaml"
    override.write_text(f"scratch_root: {tmp_path}\ncontainers_dir: '{{repo_root}}/images'\n")
    site = load_site_paths(environ={"XCPD_LAUNCHER_PATHS": str(override)})
    assert site.scratch_root == tmp_path
    assert site.containers_dir == layout.REPO_ROOT / "images"
    assert site.templateflow_home == Path("/project/ftdc_pipeline/templateflow")


def test_site_paths_override_must_exist(tmp_path):
    with pytest.raises(ResourceNotFound, match="XCPD_LAUNCHER_PATHS"):
        load_site_paths(environ={"XCPD_LAUNCHER_PATHS": str(tmp_path / "missing.yaml")})


def test_site_paths_override_must_be_mapping(tmp_path):
    override = tmp_path / "paths.yaml"
    override.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="must be a mapping"):
        load_site_paths(override)


def test_container_layout_defaults_match_packaged_config():
    loaded = load_container_layout(environ={})
    assert isinstance(loaded, ContainerLayout)
    assert loaded == ContainerLayout()
    assert loaded.work_dir == loaded.tmp_dir


def test_container_layout_override(tmp_path):
    override = tmp_path / "container.yaml"
    override.write_text("tmp_dir: /scratch-tmp\nanalysis_level: group\n")
    loaded = load_container_layout(environ={"XCPD_LAUNCHER_CONTAINER": str(override)})
    assert loaded.analysis_level == "group"
    assert loaded.work_dir == "/scratch-tmp"
    assert loaded.container_env()["SINGULARITYENV_TMPDIR"] == "/scratch-tmp"


def test_job_context_requires_job_id(tmp_path):
    with pytest.raises(ResourceNotFound, match="LSF job"):
        JobContext.from_environment(tmp_path, {"LSB_DJOB_NUMPROC": "4"})


@pytest.mark.parametrize("value", [None, "", "zero", "0"])
def test_job_context_requires_processor_count(tmp_path, value):
    environ = {"LSB_JOBID": "1"}
    if value is not None:
        environ["LSB_DJOB_NUMPROC"] = value
    with pytest.raises(ResourceNotFound, match="LSB_DJOB_NUMPROC"):
        JobContext.from_environment(tmp_path, environ)


def test_job_context_falls_back_to_default_scratch(tmp_path):
    environ = {"LSB_JOBID": "1", "LSB_DJOB_NUMPROC": "2", "SINGULARITY_TMPDIR": str(tmp_path / "gone")}
    job = JobContext.from_environment(tmp_path / "default", environ)
    assert job.scratch_root == tmp_path / "default"
    assert job.scratch_from_env is False


def test_prepare_missing_image_is_resource_not_found(site, environ, runtime):
    config = make_config(site, version="0.6.0")
    with pytest.raises(ResourceNotFound, match="xcp_d-0.6.0.sif"):
        prepare(config, site=site, layout=ContainerLayout(), runtime=runtime, environ=environ)
    assert list(site.scratch_root.iterdir()) == []
    assert not config.output_dir.exists()


def test_prepare_outside_lsf_job_fails(site, runtime):
    environ = job_environ(site)
    del environ["LSB_JOBID"]
    with pytest.raises(ResourceNotFound, match="LSF job"):
        prepare(make_config(site), site=site, layout=ContainerLayout(), runtime=runtime, environ=environ)


def test_prepare_missing_runtime(monkeypatch, site, environ):
    from xcpd_launcher import container

    monkeypatch.setattr(container.shutil, "which", lambda name: None)
    with pytest.raises(ResourceNotFound, match="module load singularity"):
        prepare(make_config(site), site=site, layout=ContainerLayout(), environ=environ)


def test_prepare_missing_input_dir(site, environ, runtime):
    config = make_config(site)
    config.input_dir.rmdir()
    with pytest.raises(ResourceNotFound, match="input BIDS directory"):
        prepare(config, site=site, layout=ContainerLayout(), runtime=runtime, environ=environ)


def test_prepare_creates_output_dir(site, environ, runtime):
    config = make_config(site, output_name="derivatives/xcp_d")
    plan = prepare(config, site=site, layout=ContainerLayout(), runtime=runtime, environ=environ)
    assert config.output_dir.is_dir()
    assert plan.created_output is True


def test_prepare_output_dir_blocked_by_file(site, environ, runtime):
    config = make_config(site)
    config.output_dir.write_text("not a directory")
    with pytest.raises(LauncherEnvironmentError, match="output directory"):
        prepare(config, site=site, layout=ContainerLayout(), runtime=runtime, environ=environ)


def test_prepare_missing_templateflow(site, environ, runtime):
    site.templateflow_home.rmdir()
    with pytest.raises(ResourceNotFound, match="templateflow"):
        prepare(make_config(site), site=site, layout=ContainerLayout(), runtime=runtime, environ=environ)
    assert list(site.scratch_root.iterdir()) == []


def test_repo_root_override_moves_containers_dir(tmp_path):
    site = load_site_paths(environ={"XCPD_LAUNCHER_REPO": str(tmp_path)})
    assert site.containers_dir == tmp_path / "containers"
