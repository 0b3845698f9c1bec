from __future__ import annotations

import os
from enum import StrEnum, auto
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field

from depotpack.exceptions import RecordError

if TYPE_CHECKING:
    from collections.abc import Mapping

FILE_IDENTITY_KEY = "depotFile"

DELETE_ACTIONS = frozenset({"delete", "move/delete"})

# Legacy single-word file types and their "base+modifiers" spelling.
FILETYPE_ALIASES: dict[str, str] = {
    "ctempobj": "binary+Sw",
    "ctext": "text+C",
    "cxtext": "text+Cx",
    "ktext": "text+k",
    "kxtext": "text+kx",
    "ltext": "text+F",
    "tempobj": "binary+FSw",
    "ubinary": "binary+F",
    "uresource": "resource+F",
    "uxbinary": "binary+Fx",
    "xbinary": "binary+x",
    "xltext": "text+Fx",
    "xtempobj": "binary+Swx",
    "xtext": "text+x",
    "xunicode": "unicode+x",
    "xutf16": "utf16+x",
}

FALLBACK_ARG_MAX = 131_072


def default_arg_max() -> int:
    """Return the host limit on the size of a command line plus environment.

    Returns:
        int: ``ARG_MAX`` as reported by ``sysconf``, or a conservative fallback
            when the platform does not expose it.
    """
    try:
        value = os.sysconf("SC_ARG_MAX")
    except (AttributeError, ValueError, OSError):
        return FALLBACK_ARG_MAX
    return value if value > 0 else FALLBACK_ARG_MAX


class EntryKind(StrEnum):
    """Kind of filesystem entry a depot file is materialized as."""

    FILE = auto()
    SYMLINK = auto()


class ProvenanceCategory(StrEnum):
    """Category of a provenance log entry."""

    BUILD = auto()
    SOURCE = auto()


class FileRecord(BaseModel):
    """Head-revision metadata of one depot file, as reported by a status query.

    Attributes:
        path: Depot path of the file (the record key).
        action: Action of the head revision (add, edit, delete, branch, integrate, ...).
        change: Change id of the head revision.
        filetype: Raw head file type string, absent on some deleted revisions.
        mtime: Head modification time (unix seconds), absent on some deleted revisions.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Depot path")
    action: str = Field(..., min_length=1, description="Head revision action")
    change: int = Field(..., gt=0, description="Head change id")
    filetype: str | None = Field(default=None, description="Head file type")
    mtime: int | None = Field(default=None, description="Head modification time (unix seconds)")

    @computed_field
    @property
    def is_deleted(self) -> bool:
        """Whether the head revision removes the file."""
        return self.action in DELETE_ACTIONS

    @classmethod
    def from_attributes(cls, path: str, attributes: Mapping[str, str]) -> FileRecord:
        """Build a record from one parsed status record.

        Args:
            path (str): the depot path captured from the file identity key
            attributes (Mapping[str, str]): the remaining ``key -> value`` pairs of the record

        Raises:
            RecordError: if ``headAction`` or ``headChange`` is missing, or if a
                numeric attribute does not hold a valid integer

        Returns:
            FileRecord: the validated record
        """
        for required in ("headAction", "headChange"):
            if required not in attributes:
                raise RecordError(path=path, attribute=required)
        try:
            return cls(
                path=path,
                action=attributes["headAction"],
                change=attributes["headChange"],
                filetype=attributes.get("headType"),
                mtime=attributes.get("headModTime"),
            )
        except ValidationError as exc:
            attribute = ".".join(str(part) for part in exc.errors()[0]["loc"])
            raise RecordError(path=path, attribute=attribute) from exc


class ChangeRecord(BaseModel):
    """Metadata of one submitted change."""

    model_config = ConfigDict(frozen=True)

    change: int = Field(..., gt=0, description="Change id")
    user: str = Field(..., description="Submitting user")
    client: str = Field(default="", description="Workspace the change was submitted from")
    time: int = Field(..., description="Submission time (unix seconds, server-local calendar)")
    description: str = Field(default="", description="Free-form description, one newline per line")

    @computed_field
    @property
    def summary(self) -> str:
        """First non-empty description line."""
        for line in self.description.splitlines():
            if line.strip():
                return line.strip()
        return ""


class ProvenanceEntry(BaseModel):
    """One entry of the provenance log."""

    model_config = ConfigDict(frozen=True)

    actor: str
    time: int
    category: ProvenanceCategory
    summary: str
    text: str = ""
