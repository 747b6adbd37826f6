"""Error taxonomy for the launcher; every error maps onto a process exit code."""

from __future__ import annotations

import signal
from typing import Optional


class LauncherError(Exception):
    """Base class for failures the launcher reports and exits on."""

    exit_code = 1

    def __init__(self, message: str, *, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(LauncherError):
    """Bad or missing command-line input."""

    exit_code = 2


class ResourceNotFound(LauncherError):
    """A required file, directory, executable or scheduler context is missing."""

    exit_code = 3


class LauncherEnvironmentError(LauncherError):
    """The output or job temp directory could not be created."""

    exit_code = 4


class DownstreamFailure(LauncherError):
    """The container exited non-zero; its code becomes the launcher's code."""

    def __init__(self, returncode: int, command: str) -> None:
        # Popen reports death-by-signal as -N; shells report it as 128 + N.
        exit_code = 128 - returncode if returncode < 0 else returncode
        super().__init__(f"The command \"{command}\" exited with code {returncode}", exit_code=exit_code)
        self.returncode = returncode
        self.command = command


class LaunchInterrupted(KeyboardInterrupt):
    """Raised from a signal handler so that cleanup runs before termination."""

    def __init__(self, signum: int) -> None:
        super().__init__(signum)
        self.signum = signum

    @property
    def signal_name(self) -> str:
        try:
            return signal.Signals(self.signum).name
        except ValueError:
            return str(self.signum)

    @property
    def exit_code(self) -> int:
        return 128 + self.signum


__all__ = [
    "ConfigError",
    "DownstreamFailure",
    "LaunchInterrupted",
    "LauncherEnvironmentError",
    "LauncherError",
    "ResourceNotFound",
]
