from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the launcher package is importable without an editable install.
TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parents[0]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from xcpd_launcher.config import SitePaths  # noqa: E402

from .helpers import StubRuntime, job_environ, make_site


@pytest.fixture
def site(tmp_path) -> SitePaths:
    return make_site(tmp_path)


@pytest.fixture
def environ(site: SitePaths) -> dict:
    return job_environ(site)


@pytest.fixture
def runtime() -> StubRuntime:
    return StubRuntime()


@pytest.fixture(autouse=True)
def _no_config_overrides(monkeypatch):
    monkeypatch.delenv("XCPD_LAUNCHER_PATHS", raising=False)
    monkeypatch.delenv("XCPD_LAUNCHER_CONTAINER", raising=False)
    monkeypatch.delenv("XCPD_LAUNCHER_REPO", raising=False)
