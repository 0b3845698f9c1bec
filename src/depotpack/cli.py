"""
depotpack: check out a depot subtree with its history and hand it to a packager.

Overview
--------
For a package ``NAME`` stored at ``<depot-root>/NAME`` this tool:

1) queries the status of every file below the package (``p4 fstat``),
2) recreates the live files in ``<workdir>/NAME/`` with their file type
   permissions and head modification times,
3) collects every change that contributed to those files (``p4 filelog -i``)
   and their descriptions (``p4 describe -s``),
4) writes ``<workdir>/NAME.provenance.yaml``,
5) runs the packaging command with the release marker (the highest change
   among the files) and the source location.

Long file and change lists are split over several ``p4`` invocations so each
command line stays below the host ``ARG_MAX``.

Usage
-----
    depotpack --depot-root //depot/packages -r 48213 hello
    depotpack --checkout-only -v hello
    depotpack --platform linux-x86_64 --var PREFIX=/opt/hello hello
"""

from __future__ import annotations

import argparse
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from depotpack import __version__
from depotpack.checkout import reconstruct
from depotpack.depot import DepotClient, normalize_revision
from depotpack.exceptions import DepotPackError, ProvenanceExistsError
from depotpack.logging import logger, setup_logging
from depotpack.packager import build_package
from depotpack.provenance import ProvenanceLog, current_actor, write_provenance
from depotpack.runner import SubprocessRunner
from depotpack.settings import build_settings, p4_environment

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from depotpack.runner import CommandRunner
    from depotpack.settings import Settings


def build_parser() -> argparse.ArgumentParser:
    """Build the depotpack argument parser.

    Options default to ``None`` so that values from ``depotpack.toml`` are only
    overridden by options actually given.

    Returns:
        argparse.ArgumentParser: Configured parser.
    """
    p = argparse.ArgumentParser(
        prog="depotpack",
        description="Check out a depot package with its change history and build it.",
    )
    p.add_argument("package", help="Package name (directory below the depot root).")
    p.add_argument("--version", action="version", version=f"depotpack {__version__}")
    p.add_argument("--config", type=Path, default=None, help="TOML file with [depotpack] defaults.")
    p.add_argument("--depot-root", type=str, default=None, help="Depot path containing the packages.")
    p.add_argument(
        "-r",
        "--revision",
        type=str,
        default=None,
        help="Change number, @label or #rev to check out (default: head).",
    )
    p.add_argument(
        "--checkout-only",
        action="store_true",
        default=None,
        help="Only reconstruct the tree; skip history, provenance and packaging.",
    )
    p.add_argument("-v", "--verbose", action="store_true", default=None, help="Echo every external command.")
    p.add_argument("--platform", type=str, default=None, help="Target platform passed to the packager.")
    p.add_argument(
        "--var",
        action="append",
        default=None,
        metavar="NAME=VALUE",
        help="Variable override passed to the packager (repeatable).",
    )
    p.add_argument("--vars-file", type=Path, default=None, help="dotenv file with variable overrides.")
    p.add_argument("--workdir", type=Path, default=None, help="Directory receiving the tree and provenance.")
    p.add_argument("--p4", dest="p4_bin", type=str, default=None, help="p4 executable.")
    p.add_argument(
        "--p4-option",
        dest="p4_options",
        action="append",
        default=None,
        help="Global p4 option, e.g. --p4-option=-cmyclient (repeatable).",
    )
    p.add_argument("--packager", type=str, default=None, help="Downstream packaging command.")
    p.add_argument("--arg-max", type=int, default=None, help="Command-line size ceiling (default: ARG_MAX).")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line arguments, merged with config-file defaults, into ``Settings``."""
    args = vars(build_parser().parse_args(argv))
    config_path = args.pop("config")
    return build_settings(args, config_path)


def run(
    settings: Settings,
    runner: CommandRunner,
    *,
    clock: Callable[[], float] = time.time,
    actor: str | None = None,
) -> int:
    """Run the whole pipeline for one package.

    Args:
        settings (Settings): run settings
        runner (CommandRunner): executes ``p4`` and the packager
        clock (Callable[[], float]): source of the build entry timestamps
        actor (str | None): identity recorded on build entries, defaults to ``user@host``

    Raises:
        DepotPackError: on any failure; nothing is retried

    Returns:
        int: the release marker
    """
    actor = actor or current_actor()
    log = ProvenanceLog()
    log.start(actor, int(clock()), settings.package)

    if not settings.checkout_only and settings.provenance_file.exists():
        raise ProvenanceExistsError(path=settings.provenance_file)

    client = DepotClient(
        runner,
        p4_bin=settings.p4_bin,
        global_options=settings.p4_options,
        arg_max=settings.arg_max,
    )
    revision = normalize_revision(settings.revision)
    records = client.files(settings.locator, revision)
    release = reconstruct(records, settings.locator, settings.checkout_dir, client.fetch)
    checked_out_at = int(clock())
    if settings.checkout_only:
        return release

    changes = client.changes(revision, sorted(records))
    log.add_changes(client.describe(changes))
    log.finish_checkout(actor, checked_out_at, settings.locator, release)
    provenance = write_provenance(log, settings.provenance_file)
    build_package(settings, release, provenance, runner)
    return release


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``depotpack`` command.

    Args:
        argv (Sequence[str] | None): Optional CLI arguments.

    Returns:
        int: Process exit code, 1 on any fatal condition.
    """
    try:
        settings = parse_args(argv)
        setup_logging(settings.log_file or None, verbose=settings.verbose, force=True)
        runner = SubprocessRunner({**os.environ, **p4_environment()})
        release = run(settings, runner)
    except DepotPackError as exc:
        logger.error("depotpack failed: %s", exc)
        return 1

    action = "Checked out" if settings.checkout_only else "Built"
    print(f"{action} {settings.package} from {settings.locator} release={release}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
