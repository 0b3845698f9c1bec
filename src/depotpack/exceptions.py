from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True)
class DepotPackError(Exception):
    """Base exception for fatal errors in the depotpack module."""

    def __str__(self) -> str:
        message = getattr(self, "message", "")
        details = ", ".join(f"{f.name}={getattr(self, f.name)!r}" for f in fields(self) if f.name != "message")
        return f"{message} ({details})" if details else message


@dataclass(frozen=True)
class CommandNotFoundError(DepotPackError):
    """Raised when an external command cannot be launched."""

    command: tuple[str, ...]
    message: str = "The external command could not be started."


@dataclass(frozen=True)
class CommandError(DepotPackError):
    """Raised when an external command exits with a non-zero status."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    message: str = "The external command failed."


@dataclass(frozen=True)
class ParseError(DepotPackError):
    """Raised when command output violates its line grammar."""

    source: str
    line_number: int
    line: str
    message: str = "Unexpected line in command output."


@dataclass(frozen=True)
class TimestampError(DepotPackError):
    """Raised when a change timestamp cannot be parsed."""

    value: str
    message: str = "Unparsable change timestamp."


@dataclass(frozen=True)
class FiletypeError(DepotPackError):
    """Raised when a depot file type does not match the file type grammar."""

    filetype: str
    message: str = "Unrecognized depot file type."


@dataclass(frozen=True)
class RecordError(DepotPackError):
    """Raised when a status record lacks or carries an invalid attribute."""

    path: str
    attribute: str
    message: str = "Invalid or missing attribute in status record."


@dataclass(frozen=True)
class PathContainmentError(DepotPackError):
    """Raised when a depot path lies outside the queried root."""

    path: str
    root: str
    message: str = "Depot path is outside the queried root."


@dataclass(frozen=True)
class EmptyCheckoutError(DepotPackError):
    """Raised when no file survives the delete filter."""

    root: str
    message: str = "Nothing to build: no live files under the queried root."


@dataclass(frozen=True)
class CheckoutError(DepotPackError):
    """Raised when the destination tree cannot be written."""

    path: Path
    reason: str
    message: str = "Could not write the checkout."


@dataclass(frozen=True)
class ProvenanceExistsError(DepotPackError):
    """Raised when the provenance file is already present."""

    path: Path
    message: str = "Refusing to overwrite an existing provenance file."


@dataclass(frozen=True)
class ArgumentBudgetError(DepotPackError):
    """Raised when a single argument cannot fit within the argument budget."""

    token: str
    ceiling: int
    message: str = "Argument does not fit within the command-line size limit."


@dataclass(frozen=True)
class ConfigurationError(DepotPackError):
    """Raised when settings, config files or variable overrides are invalid."""

    detail: str
    message: str = "Invalid configuration."
