from __future__ import annotations

from typing import TYPE_CHECKING

from depotpack.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

    from depotpack.runner import CommandRunner
    from depotpack.settings import Settings


def packager_command(settings: Settings, release: int, provenance: Path) -> list[str]:
    """Command line handing the checkout to the downstream packaging tool.

    Args:
        settings (Settings): run settings (package, platform, variables, packager)
        release (int): the release marker computed by the checkout
        provenance (Path): the written provenance file

    Returns:
        list[str]: the packager argv
    """
    cmd = [
        settings.packager,
        "--package",
        settings.package,
        "--release",
        str(release),
        "--source",
        f"{settings.locator}@{release}",
        "--provenance",
        str(provenance),
    ]
    if settings.platform:
        cmd.extend(["--platform", settings.platform])
    for name, value in sorted(settings.variables.items()):
        cmd.extend(["--define", f"{name}={value}"])
    return cmd


def build_package(settings: Settings, release: int, provenance: Path, runner: CommandRunner) -> list[str]:
    """Run the packager in the working directory and return its output lines."""
    cmd = packager_command(settings, release, provenance)
    logger.info("Packaging %s release %d with %s", settings.package, release, settings.packager)
    return runner.run(cmd, cwd=settings.workdir)
