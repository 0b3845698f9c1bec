from __future__ import annotations

import getpass
import socket
from typing import TYPE_CHECKING

import yaml

from depotpack.config import ProvenanceCategory, ProvenanceEntry
from depotpack.exceptions import ProvenanceExistsError
from depotpack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from depotpack.config import ChangeRecord


def current_actor() -> str:
    """Identity of the person running the build, as ``user@host``."""
    return f"{getpass.getuser()}@{socket.gethostname()}"


class ProvenanceLog:
    """Append-only provenance log of one run.

    Entries are appended in a fixed order: the build start, one source entry
    per change in ascending change id, then the checkout entry. The checkout
    entry always comes last, whatever its timestamp.
    """

    def __init__(self) -> None:
        self._entries: list[ProvenanceEntry] = []

    @property
    def entries(self) -> tuple[ProvenanceEntry, ...]:
        return tuple(self._entries)

    def start(self, actor: str, time: int, package: str) -> None:
        self._entries.append(
            ProvenanceEntry(
                actor=actor,
                time=time,
                category=ProvenanceCategory.BUILD,
                summary=f"Started build of {package}",
            ),
        )

    def add_changes(self, changes: Mapping[int, ChangeRecord]) -> None:
        """Append one source entry per change, lowest change id first.

        Change ids grow over time, so ascending ids read as chronological order
        regardless of the order in which they were discovered or described.
        """
        for change in sorted(changes):
            record = changes[change]
            actor = f"{record.user}@{record.client}" if record.client else record.user
            summary = f"Change {change}: {record.summary}" if record.summary else f"Change {change}"
            self._entries.append(
                ProvenanceEntry(
                    actor=actor,
                    time=record.time,
                    category=ProvenanceCategory.SOURCE,
                    summary=summary,
                    text=record.description,
                ),
            )

    def finish_checkout(self, actor: str, time: int, locator: str, release: int) -> None:
        self._entries.append(
            ProvenanceEntry(
                actor=actor,
                time=time,
                category=ProvenanceCategory.BUILD,
                summary=f"Checked out {locator}@{release}",
                text=f"Release marker {release} is the highest change among the checked out files.\n",
            ),
        )

    def as_data(self) -> list[dict[str, object]]:
        return [entry.model_dump(mode="json") for entry in self._entries]


def write_provenance(log: ProvenanceLog, path: Path) -> Path:
    """Write the provenance log as YAML; never replace an existing file.

    Args:
        log (ProvenanceLog): the completed log
        path (Path): target file

    Raises:
        ProvenanceExistsError: if ``path`` already exists

    Returns:
        Path: ``path``
    """
    text = yaml.safe_dump(log.as_data(), sort_keys=False, allow_unicode=True, default_flow_style=False)
    try:
        with path.open("x", encoding="utf-8") as f:
            f.write(text)
    except FileExistsError as exc:
        raise ProvenanceExistsError(path=path) from exc
    logger.info("Wrote %d provenance entries to %s", len(log.entries), path)
    return path
