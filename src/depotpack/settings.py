from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomlkit
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from tomlkit.exceptions import TOMLKitError

from depotpack.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

ENV_FILE = find_dotenv(usecwd=True)

CONFIG_FILE = "depotpack.toml"
CONFIG_TABLE = "depotpack"


class Settings(BaseModel):
    """Configuration settings for one depotpack run."""

    model_config = ConfigDict(extra="forbid")

    package: str = Field(..., min_length=1, description="Package name, also the directory below the depot root.")
    depot_root: str = Field(default="//depot", description="Depot path containing the packages.")
    revision: str = Field(default="", description="Change number, @label or #rev to check out.")
    checkout_only: bool = Field(default=False, description="Stop after reconstructing the tree.")
    verbose: bool = Field(default=False, description="Echo every external command.")
    platform: str = Field(default="", description="Target platform passed to the packager.")
    variables: dict[str, str] = Field(default_factory=dict, description="Variable overrides for the packager.")
    workdir: Path = Field(default_factory=Path.cwd, description="Directory receiving the tree and provenance.")
    p4_bin: str = Field(default="p4", description="p4 executable.")
    p4_options: list[str] = Field(default_factory=list, description="Global p4 options (-p/-u/-c ...).")
    packager: str = Field(default="pkgbuild", description="Downstream packaging command.")
    arg_max: int | None = Field(default=None, gt=0, description="Command-line size ceiling, defaults to ARG_MAX.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("depot_root")
    @classmethod
    def _strip_root(cls, value: str) -> str:
        stripped = value.rstrip("/")
        if not stripped.startswith("//"):
            msg = f"depot root must start with '//', got {value!r}"
            raise ValueError(msg)
        return stripped

    @field_validator("package")
    @classmethod
    def _single_component(cls, value: str) -> str:
        if "/" in value or value in {".", ".."}:
            msg = f"package name must be a single path component, got {value!r}"
            raise ValueError(msg)
        return value

    @property
    def locator(self) -> str:
        """Depot location of the package sources, e.g. ``//depot/hello``."""
        return f"{self.depot_root}/{self.package}"

    @property
    def checkout_dir(self) -> Path:
        return self.workdir / self.package

    @property
    def provenance_file(self) -> Path:
        return self.workdir / f"{self.package}.provenance.yaml"


def load_config_file(path: Path) -> dict[str, Any]:
    """Read default settings from the ``[depotpack]`` table of a TOML file.

    Args:
        path (Path): the TOML file

    Raises:
        ConfigurationError: if the file is not valid TOML or the table is not a table

    Returns:
        dict[str, Any]: setting names to values, as plain Python objects
    """
    try:
        doc = tomlkit.parse(path.read_text(encoding="utf-8"))
    except (OSError, TOMLKitError) as exc:
        raise ConfigurationError(detail=f"cannot read {path}: {exc}") from exc
    table = doc.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ConfigurationError(detail=f"[{CONFIG_TABLE}] in {path} must be a table")
    return {str(key).replace("-", "_"): value for key, value in table.unwrap().items()} if table else {}


def parse_variable_overrides(values: Iterable[str]) -> dict[str, str]:
    """Parse repeated ``--var NAME=VALUE`` values.

    Args:
        values (Iterable[str]): CLI ``--var`` values

    Raises:
        ConfigurationError: if a value is not in ``NAME=VALUE`` form

    Returns:
        dict[str, str]: variable name to value mapping, later values winning
    """
    out: dict[str, str] = {}
    for value in values:
        name, sep, setting = value.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ConfigurationError(detail=f"--var must be NAME=VALUE, got: {value}")
        out[name] = setting
    return out


def load_variables_file(path: Path) -> dict[str, str]:
    """Read variable overrides from a dotenv-style file; valueless keys are rejected."""
    if not path.is_file():
        raise ConfigurationError(detail=f"variables file not found: {path}")
    values = dotenv_values(path)
    missing = sorted(name for name, value in values.items() if value is None)
    if missing:
        raise ConfigurationError(detail=f"variables without a value in {path}: {missing}")
    return {name: value for name, value in values.items() if value is not None}


def p4_environment(env_file: str = ENV_FILE) -> dict[str, str]:
    """``P4*`` connection variables (``P4PORT``, ``P4USER``, ...) from the project ``.env`` file."""
    if not env_file:
        return {}
    return {
        name: value for name, value in dotenv_values(env_file).items() if name.startswith("P4") and value is not None
    }


def build_settings(cli_values: dict[str, Any], config_path: Path | None = None) -> Settings:
    """Merge config-file defaults with command-line values into ``Settings``.

    Command-line values win; ``None`` on the command line means "not given".
    Variables from the config file, the variables file and ``--var`` are merged
    in that order.

    Args:
        cli_values (dict[str, Any]): parsed command-line options
        config_path (Path | None): explicit config file; ``depotpack.toml`` in the
            working directory is used when present

    Raises:
        ConfigurationError: if any source holds invalid or unknown settings

    Returns:
        Settings: the validated settings
    """
    if config_path is None and Path(CONFIG_FILE).is_file():
        config_path = Path(CONFIG_FILE)
    merged: dict[str, Any] = load_config_file(config_path) if config_path else {}
    variables = dict(merged.pop("variables", {}) or {})

    values = dict(cli_values)
    vars_file = values.pop("vars_file", None)
    if vars_file:
        variables.update(load_variables_file(Path(vars_file)))
    variables.update(parse_variable_overrides(values.pop("var", None) or []))

    merged.update({key: value for key, value in values.items() if value is not None})
    merged["variables"] = variables
    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(detail=str(exc)) from exc
