from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from hydra.utils import instantiate
from omegaconf import OmegaConf

from .errors import ConfigError, ResourceNotFound
from .layout import (
    CONTAINER_OVERRIDE_ENV,
    DEFAULT_CONTAINER_FILE,
    DEFAULT_PATHS_FILE,
    PATHS_OVERRIDE_ENV,
    REPO_ROOT,
    REPO_ROOT_ENV,
)

PathLike = Union[str, Path]

_REQUIRED_PATH_KEYS = ("freesurfer_dir", "templateflow_home", "containers_dir", "scratch_root")


def _context(environ: Mapping[str, str]) -> Dict[str, str]:
    repo_root = environ.get(REPO_ROOT_ENV)
    return {"repo_root": str(Path(repo_root).expanduser()) if repo_root else str(REPO_ROOT)}


@dataclass(frozen=True)
class SitePaths:
    """Host-side locations the launcher binds into the container."""

    freesurfer_dir: Path
    templateflow_home: Path
    containers_dir: Path
    scratch_root: Path

    @property
    def fs_license(self) -> Path:
        return self.freesurfer_dir / "license.txt"


def _resolve(value: Any, context: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return Path(value.format(**context)).expanduser()
    return value


def _override_path(explicit: Optional[PathLike], env_var: str, environ: Mapping[str, str]) -> Optional[Path]:
    raw = explicit if explicit is not None else environ.get(env_var)
    if not raw:
        return None
    path = Path(raw).expanduser()
    if not path.is_file():
        raise ResourceNotFound(f"Cannot find configuration file {path} (from {env_var})")
    return path


def load_site_paths(path: Optional[PathLike] = None, environ: Optional[Mapping[str, str]] = None) -> SitePaths:
    """Read the site paths file, preferring an explicit path or $XCPD_LAUNCHER_PATHS."""
    environ = os.environ if environ is None else environ
    paths_file = _override_path(path, PATHS_OVERRIDE_ENV, environ) or DEFAULT_PATHS_FILE
    if not paths_file.exists():
        raise ResourceNotFound(f"Missing path configuration: {paths_file}")

    data = yaml.safe_load(paths_file.read_text()) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Path configuration {paths_file} must be a mapping")
    # An override file only needs the keys it changes.
    if paths_file != DEFAULT_PATHS_FILE and DEFAULT_PATHS_FILE.exists():
        defaults = yaml.safe_load(DEFAULT_PATHS_FILE.read_text()) or {}
        data = {**defaults, **data}

    missing = [key for key in _REQUIRED_PATH_KEYS if not data.get(key)]
    if missing:
        raise ConfigError(f"Path configuration {paths_file} is missing: {', '.join(missing)}")
    context = _context(environ)
    resolved: Dict[str, Any] = {key: _resolve(data[key], context) for key in _REQUIRED_PATH_KEYS}
    return SitePaths(**resolved)


def load_container_layout(path: Optional[PathLike] = None, environ: Optional[Mapping[str, str]] = None):
    """Instantiate the in-container layout, merging an optional override file."""
    environ = os.environ if environ is None else environ
    cfg = OmegaConf.load(DEFAULT_CONTAINER_FILE)
    override = _override_path(path, CONTAINER_OVERRIDE_ENV, environ)
    if override is not None:
        cfg = OmegaConf.merge(cfg, OmegaConf.load(override))
    return instantiate(cfg, _convert_="all")


__all__ = ["SitePaths", "load_container_layout", "load_site_paths"]
