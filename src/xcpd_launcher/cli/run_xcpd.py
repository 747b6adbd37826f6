#!/usr/bin/env python3
"""Run xcp_d through singularity inside an LSF job."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from xcpd_launcher import launcher
from xcpd_launcher.config import SitePaths, load_site_paths
from xcpd_launcher.container import available_versions, parse_bind_points, parse_env_pairs
from xcpd_launcher.errors import (
    ConfigError,
    DownstreamFailure,
    LaunchInterrupted,
    LauncherError,
)
from xcpd_launcher.layout import NUM_PROCS_ENV

PROG = "run-xcpd"

USAGE = """Usage:
  {prog} [-h] [-B src:dest,...,src:dest] [-c 1/0] [-e VAR=value] -v xcpVersion \\
    -i /path/to/bids -o /path/to/outputDir -- [prep args]

  Use the -h option to see detailed help.
"""

HELP = """This script handles various configuration options and bind points needed to run xcp_d on the cluster.

Using the options below, specify paths on the local file system. These will be bound automatically
to locations inside the container. If needed, you can add extra mount points with '-B'.

prep args after the '--' should reference paths within the container. For example, if
you want to use '--custom-confounds DIR', DIR should be a path inside the container.

Currently installed versions:

{versions}

Required args:

  -i /path/to/fmriprep
    Input directory on the local file system. This will normally be output from fmriprep, but
    can be from other supported pipelines (see xcp_d usage for details).

  -o /path/to/outputDir
    Output directory on the local file system. Will be bound to /data/output inside the container.

  -v version
     XCP_D version. The script will look for containers/xcp_d-[version].sif.

Options:

  -B src:dest[,src:dest,...,src:dest]
     Use this to add mount points to bind inside the container, that aren't handled by other options.
     'src' is an absolute path on the local file system and 'dest' is an absolute path inside the container.
     The job temp dir, templateflow, the FreeSurfer license, input (-i) and output (-o) are bound
     automatically.

  -c 1/0
     Cleanup the working dir after running the prep (default = 1). This is different from the prep
     option '--clean-workdir', which deletes the contents of the working directory BEFORE running anything.

  -e VAR=value[,VAR=value,...,VAR=value]
     Comma-separated list of environment variables to pass to singularity.

  -h
     Prints this help message.

  -t /path/to/templateflow
     Path to a local installation of templateflow (default = {templateflow_home}).
     The required templates must be pre-downloaded, run-time template installation will not work.

*** Hard-coded configuration ***

A shared templateflow path is passed to the container via the environment variable TEMPLATEFLOW_HOME.

The FreeSurfer license file is sourced from {freesurfer_dir}, and then mounted into the container. The variable
FS_LICENSE is set to point to this file.

The script makes a temp dir specifically for this prep job under $SINGULARITY_TMPDIR (default {scratch_root}).
By default it is removed after the prep finishes, including on error or interrupt, but this can be disabled
with '-c 0'.

The singularity command includes '--no-home', which avoids mounting the user home directory. This prevents caching
or config files in the user home directory from conflicting with those inside the container.

The actual call to the prep is equivalent to

  <xcp_d> /data/input /data/output participant \\
    --notrack \\
    --nthreads numProcs \\
    --omp-nthreads numProcs \\
    -w /tmp \\
    --verbose \\
    [prep args]

where [prep args] are anything following `--` in the call to this script.

*** Multi-threading and memory use ***

The number of available cores (numProcs) is derived from the environment variable ${num_procs_env},
which is the number of slots reserved in the call to bsub. This default may be overridden by passing
the two options above as an argument to the prep container.

Memory use is not controlled by this script. The maximum memory (in Mb) used by the prep can be
controlled with '--mem-mb'.
"""


class LauncherArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises ConfigError instead of exiting."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


def _cleanup_flag(value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected 1 or 0, got '{value}'") from exc


def build_parser() -> LauncherArgumentParser:
    parser = LauncherArgumentParser(prog=PROG, add_help=False)
    parser.add_argument("-B", dest="bind_points", metavar="src:dest[,src:dest]")
    parser.add_argument("-c", dest="cleanup", type=_cleanup_flag, default=1, metavar="1/0")
    parser.add_argument("-e", dest="env_vars", metavar="VAR=value[,VAR=value]")
    parser.add_argument("-h", dest="show_help", action="store_true")
    parser.add_argument("-i", dest="input_dir", metavar="/path/to/bids")
    parser.add_argument("-o", dest="output_dir", metavar="/path/to/outputDir")
    parser.add_argument("-t", dest="templateflow_home", metavar="/path/to/templateflow")
    parser.add_argument("-v", dest="version", metavar="version")
    parser.add_argument("prep_args", nargs=argparse.REMAINDER)
    return parser


def usage_text(prog: str = PROG) -> str:
    return USAGE.format(prog=prog)


def help_text(site: SitePaths, prog: str = PROG) -> str:
    versions = "\n".join(available_versions(site.containers_dir)) or "(none found)"
    body = HELP.format(
        versions=versions,
        templateflow_home=site.templateflow_home,
        freesurfer_dir=site.freesurfer_dir,
        scratch_root=site.scratch_root,
        num_procs_env=NUM_PROCS_ENV,
    )
    return usage_text(prog) + "\n" + body


def parse_args(argv: Sequence[str], site: SitePaths) -> Optional[launcher.InvocationConfig]:
    """Translate argv into an InvocationConfig; returns None when help was requested."""
    argv = list(argv)
    if not argv:
        raise ConfigError("no arguments given", exit_code=1)

    args = build_parser().parse_args(argv)
    if args.show_help:
        return None

    required = (
        ("-i", args.input_dir),
        ("-o", args.output_dir),
        ("-v", args.version),
    )
    missing = [flag for flag, value in required if not value]
    if missing:
        raise ConfigError(f"the following arguments are required: {', '.join(missing)}")

    prep_args: List[str] = list(args.prep_args)
    if prep_args and prep_args[0] == "--":
        prep_args = prep_args[1:]

    templateflow_home = Path(args.templateflow_home).expanduser() if args.templateflow_home else site.templateflow_home
    return launcher.InvocationConfig(
        input_dir=Path(args.input_dir).expanduser(),
        output_dir=Path(args.output_dir).expanduser(),
        version=args.version,
        templateflow_home=templateflow_home,
        bind_points=parse_bind_points(args.bind_points),
        env_pairs=parse_env_pairs(args.env_vars),
        cleanup=args.cleanup > 0,
        prep_args=tuple(prep_args),
    )


def _report_exit_on_error(prog: str, message: str) -> None:
    print(f"\n  {prog} EXITED ON ERROR - PROCESSING MAY BE INCOMPLETE")
    print(f"\n  {message}\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    try:
        site = load_site_paths()
        try:
            config = parse_args(argv, site)
        except ConfigError:
            print(usage_text())
            raise
        if config is None:
            print(help_text(site))
            return 1
        return launcher.run(config, site=site)
    except LaunchInterrupted as exc:
        print(f"[ERROR] Interrupted by {exc.signal_name}")
        _report_exit_on_error(PROG, f"Terminated by signal {exc.signum}")
        return exc.exit_code
    except DownstreamFailure as exc:
        _report_exit_on_error(PROG, str(exc))
        return exc.exit_code
    except LauncherError as exc:
        print(f"[ERROR] {exc}")
        return exc.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
