from __future__ import annotations

import os
from typing import TYPE_CHECKING

from pydantic import ValidationError

from depotpack.batching import ArgumentBudget
from depotpack.config import EntryKind, FileRecord, default_arg_max
from depotpack.exceptions import CheckoutError, ConfigurationError, ParseError
from depotpack.logging import logger
from depotpack.parsers import parse_describe, parse_filelog, parse_fstat

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from depotpack.config import ChangeRecord
    from depotpack.runner import CommandRunner


def normalize_revision(revision: str | int | None) -> str:
    """Turn a user supplied revision into a file-spec suffix.

    ``None`` or ``""`` mean the head revision (empty suffix); a bare change
    number ``N`` becomes ``@N``; anything already starting with ``@`` or ``#``
    (``@label``, ``#head``) is kept.

    Args:
        revision (str | int | None): the revision as given on the command line

    Raises:
        ConfigurationError: if a non-numeric revision lacks its ``@``/``#`` prefix

    Returns:
        str: the suffix to append to depot paths
    """
    text = "" if revision is None else str(revision).strip()
    if not text or text.startswith(("@", "#")):
        return text
    if text.isdigit():
        return f"@{text}"
    raise ConfigurationError(detail=f"revision {text!r} must be a change number or start with '@' or '#'")


class DepotClient:
    """Queries against the depot, issued through a ``CommandRunner``.

    Args:
        runner (CommandRunner): executes ``p4`` and returns its output lines
        p4_bin (str): the ``p4`` executable
        global_options (Sequence[str]): options placed before every sub-command
            (``-p port``, ``-u user``, ``-c client``)
        arg_max (int | None): ceiling for one command line plus environment,
            defaults to the host ``ARG_MAX``
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        p4_bin: str = "p4",
        global_options: Sequence[str] = (),
        arg_max: int | None = None,
    ) -> None:
        self.runner = runner
        self.p4_bin = p4_bin
        self.global_options = tuple(global_options)
        self.arg_max = arg_max or default_arg_max()

    def command(self, *args: str) -> list[str]:
        """Full ``p4`` argv for a sub-command, global options first."""
        return [self.p4_bin, *self.global_options, *args]

    def budget(self, prefix: Sequence[str]) -> ArgumentBudget:
        """Argument budget for batches appended to ``prefix``."""
        try:
            return ArgumentBudget.for_command(prefix, self.runner.environment, self.arg_max)
        except ValidationError as exc:
            raise ConfigurationError(detail=f"argument limit {self.arg_max} is too small: {exc}") from exc

    def fstat(self, pattern: str, revision: str = "") -> dict[str, dict[str, str]]:
        """Status attributes of every file matching ``pattern`` at ``revision``.

        Args:
            pattern (str): depot file pattern, e.g. ``//depot/proj/...``
            revision (str): file-spec suffix from :func:`normalize_revision`

        Returns:
            dict[str, dict[str, str]]: attribute mappings keyed by depot path
        """
        return parse_fstat(self.runner.run(self.command("fstat", f"{pattern}{revision}")))

    def files(self, root: str, revision: str = "") -> dict[str, FileRecord]:
        """Head metadata of every file below ``root``, keyed by depot path."""
        raw = self.fstat(f"{root}/...", revision)
        records = {path: FileRecord.from_attributes(path, attributes) for path, attributes in raw.items()}
        logger.info("Queried %d files under %s%s", len(records), root, revision)
        return records

    def changes(self, revision: str, paths: Iterable[str]) -> set[int]:
        """Every change that touched ``paths`` up to ``revision``.

        Uses ``filelog -i`` so history inherited through branches, deleted
        revisions and renames is included.

        Args:
            revision (str): file-spec suffix from :func:`normalize_revision`
            paths (Iterable[str]): depot paths

        Returns:
            set[int]: the distinct change ids
        """
        prefix = self.command("filelog", "-i")
        tokens = [f"{path}{revision}" for path in paths]
        found: set[int] = set()
        for batch in self.budget(prefix).map_batches(tokens, lambda batch: self.runner.run([*prefix, *batch])):
            found |= parse_filelog(batch)
        logger.info("Found %d changes for %d files", len(found), len(tokens))
        return found

    def describe(self, changes: Iterable[int]) -> dict[int, ChangeRecord]:
        """Description records of ``changes``, keyed by change id.

        Raises:
            ParseError: if the output holds no record for a requested change
        """
        prefix = self.command("describe", "-s")
        tokens = [str(change) for change in sorted(changes)]
        described: dict[int, ChangeRecord] = {}
        for batch in self.budget(prefix).map_batches(tokens, lambda batch: self.runner.run([*prefix, *batch])):
            described.update(parse_describe(batch))
        missing = [token for token in tokens if int(token) not in described]
        if missing:
            raise ParseError(
                source="describe",
                line_number=0,
                line=" ".join(missing),
                message="No description record for the requested changes.",
            )
        logger.info("Described %d changes", len(described))
        return described

    def fetch(self, record: FileRecord, target: Path, kind: EntryKind) -> None:
        """Materialize the head revision of ``record`` at ``target``.

        Regular files are written by ``p4 print -o``; for symlinks the printed
        content is the link target.

        Args:
            record (FileRecord): the file to fetch
            target (Path): where to create it; its parent must exist
            kind (EntryKind): entry kind derived from the record's file type

        Raises:
            CheckoutError: if the symlink cannot be created
        """
        spec = f"{record.path}@{record.change}"
        if kind is EntryKind.SYMLINK:
            link = "\n".join(self.runner.run(self.command("print", "-q", spec))).rstrip("\n")
            try:
                os.symlink(link, target)
            except OSError as exc:
                raise CheckoutError(path=target, reason=str(exc)) from exc
            return
        self.runner.run(self.command("print", "-q", "-o", str(target), spec))
