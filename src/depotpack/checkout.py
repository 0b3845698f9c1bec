from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

from depotpack.config import EntryKind
from depotpack.exceptions import CheckoutError, EmptyCheckoutError, PathContainmentError, RecordError
from depotpack.filetypes import filetype_mode
from depotpack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from depotpack.config import FileRecord


class Fetcher(Protocol):
    def __call__(self, record: FileRecord, target: Path, kind: EntryKind) -> None: ...


def relative_depot_path(path: str, root: str) -> PurePosixPath:
    """Path of ``path`` below the queried ``root``.

    Args:
        path (str): depot path of a file, e.g. ``//depot/proj/src/main.c``
        root (str): the queried root, e.g. ``//depot/proj``

    Raises:
        PathContainmentError: if ``path`` is not strictly below ``root`` or would
            escape it through ``.`` or ``..`` components

    Returns:
        PurePosixPath: the relative path, e.g. ``src/main.c``
    """
    prefix = root.rstrip("/") + "/"
    if not path.startswith(prefix):
        raise PathContainmentError(path=path, root=root)
    parts = path[len(prefix) :].split("/")
    if any(part in {"", ".", ".."} for part in parts):
        raise PathContainmentError(path=path, root=root)
    return PurePosixPath(*parts)


def make_parent_dirs(target: Path) -> None:
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CheckoutError(path=target.parent, reason=str(exc)) from exc


def set_mode_and_mtime(target: Path, mode: int, mtime: int) -> None:
    """Force permissions and modification time so repeated checkouts are identical."""
    try:
        target.chmod(mode)
        os.utime(target, (mtime, mtime))
    except OSError as exc:
        raise CheckoutError(path=target, reason=str(exc)) from exc


def reconstruct(
    records: Mapping[str, FileRecord],
    root: str,
    destination: Path,
    fetch: Fetcher,
) -> int:
    """Recreate the live files of ``records`` below ``destination``.

    Every path is checked against ``root`` before anything is written. Deleted
    files are skipped but still count towards the release marker.

    Args:
        records (Mapping[str, FileRecord]): status records keyed by depot path
        root (str): the depot root the records were queried under
        destination (Path): directory mirroring ``root``
        fetch (Fetcher): writes one file or symlink, typically ``DepotClient.fetch``

    Raises:
        PathContainmentError: if a record lies outside ``root``
        EmptyCheckoutError: if every record is a deletion
        RecordError: if a live record lacks its file type or modification time
        CheckoutError: if a directory or file attribute cannot be written

    Returns:
        int: the release marker, the highest head change over all records
    """
    relative = {path: relative_depot_path(path, root) for path in records}
    live = [record for record in records.values() if not record.is_deleted]
    if not live:
        raise EmptyCheckoutError(root=root)

    plan: list[tuple[FileRecord, Path, EntryKind, int]] = []
    for record in sorted(live, key=lambda r: r.path):
        if record.filetype is None:
            raise RecordError(path=record.path, attribute="headType")
        kind, mode = filetype_mode(record.filetype)
        if kind is EntryKind.FILE and record.mtime is None:
            raise RecordError(path=record.path, attribute="headModTime")
        plan.append((record, destination.joinpath(*relative[record.path].parts), kind, mode))

    for record, target, kind, mode in plan:
        make_parent_dirs(target)
        logger.debug("fetch", path=record.path, target=str(target), kind=str(kind))
        fetch(record, target, kind)
        if kind is EntryKind.FILE and record.mtime is not None:
            set_mode_and_mtime(target, mode, record.mtime)

    release = max(record.change for record in records.values())
    logger.info(
        "Checked out %d files (%d deleted) into %s, release %d",
        len(live),
        len(records) - len(live),
        destination,
        release,
    )
    return release
