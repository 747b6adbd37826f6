from __future__ import annotations

from .layout import CONFIG_DIR, PACKAGE_ROOT, REPO_ROOT

__version__ = "0.1.0"

__all__ = ["CONFIG_DIR", "PACKAGE_ROOT", "REPO_ROOT", "__version__"]
