from __future__ import annotations

from pathlib import Path

import pytest

from depotpack.exceptions import ConfigurationError
from depotpack.settings import (
    Settings,
    build_settings,
    load_config_file,
    p4_environment,
    parse_variable_overrides,
)


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings(package="hello")

    assert settings.depot_root == "//depot"
    assert settings.locator == "//depot/hello"
    assert settings.workdir.resolve() == Path.cwd().resolve()
    assert settings.checkout_dir == settings.workdir / "hello"
    assert settings.provenance_file == settings.workdir / "hello.provenance.yaml"
    assert settings.checkout_only is False
    assert settings.arg_max is None


@pytest.mark.unit
def test_depot_root_trailing_slash_is_removed() -> None:
    assert Settings(package="hello", depot_root="//depot/pkgs/").locator == "//depot/pkgs/hello"


@pytest.mark.unit
@pytest.mark.parametrize(("field", "value"), [("depot_root", "/local/path"), ("package", "a/b"), ("package", "..")])
def test_invalid_locations_are_rejected(field: str, value: str) -> None:
    values = {"package": "hello", field: value}

    with pytest.raises(ConfigurationError):
        build_settings(values)


@pytest.mark.unit
def test_parse_variable_overrides() -> None:
    assert parse_variable_overrides(["PREFIX=/opt", "EMPTY=", "EQ=a=b", "PREFIX=/usr"]) == {
        "PREFIX": "/usr",
        "EMPTY": "",
        "EQ": "a=b",
    }


@pytest.mark.unit
@pytest.mark.parametrize("value", ["NOVALUE", "=x", " =x"])
def test_parse_variable_overrides_rejects_malformed(value: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_variable_overrides([value])


@pytest.mark.unit
def test_config_file_defaults_are_overridden_by_cli(tmp_path: Path) -> None:
    config = tmp_path / "depotpack.toml"
    config.write_text(
        '[depotpack]\ndepot-root = "//depot/pkgs"\nplatform = "linux"\ncheckout_only = true\n'
        '\n[depotpack.variables]\nPREFIX = "/opt"\nDEBUG = "0"\n',
        encoding="utf-8",
    )
    vars_file = tmp_path / "vars.env"
    vars_file.write_text("DEBUG=1\nJOBS=4\n", encoding="utf-8")

    settings = build_settings(
        {"package": "hello", "platform": "darwin", "checkout_only": None, "var": ["JOBS=8"], "vars_file": vars_file},
        config,
    )

    assert settings.locator == "//depot/pkgs/hello"
    assert settings.platform == "darwin"
    assert settings.checkout_only is True
    assert settings.variables == {"PREFIX": "/opt", "DEBUG": "1", "JOBS": "8"}


@pytest.mark.unit
def test_unknown_config_keys_are_rejected(tmp_path: Path) -> None:
    config = tmp_path / "depotpack.toml"
    config.write_text('[depotpack]\nrevsion = "12"\n', encoding="utf-8")

    with pytest.raises(ConfigurationError):
        build_settings({"package": "hello"}, config)


@pytest.mark.unit
def test_invalid_toml_is_a_configuration_error(tmp_path: Path) -> None:
    config = tmp_path / "depotpack.toml"
    config.write_text("[depotpack\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config_file(config)


@pytest.mark.unit
def test_config_without_table_gives_no_defaults(tmp_path: Path) -> None:
    config = tmp_path / "other.toml"
    config.write_text('[tool]\nname = "x"\n', encoding="utf-8")

    assert load_config_file(config) == {}


@pytest.mark.unit
def test_missing_vars_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        build_settings({"package": "hello", "vars_file": tmp_path / "nope.env"})


@pytest.mark.unit
def test_p4_environment_keeps_only_p4_variables(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("P4PORT=ssl:perforce:1666\nP4USER=builder\nSECRET=x\n", encoding="utf-8")

    assert p4_environment(str(env_file)) == {"P4PORT": "ssl:perforce:1666", "P4USER": "builder"}
    assert p4_environment("") == {}
