from __future__ import annotations

import os
import shutil
import re
from pathlib import Path
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)
from pydantic.types import StrictInt
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .errors import ConfigError
from .keys import parse_chord
from .logging import get_logger
from .model import TrustLevel

logger = get_logger(__name__)

HOME_CONFIG_PATH = Path.home() / ".duopane" / "duopane.toml"
CONFIG_PATH_ENV = "DUOPANE_CONFIG_PATH"

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _default_shell() -> str:
    return os.environ.get("SHELL") or "/bin/sh"


class ShellSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    command: NonEmptyStr = Field(default_factory=_default_shell)
    args: list[str] = Field(default_factory=list)
    working_dir: NonEmptyStr | None = None
    env: dict[str, str] = Field(default_factory=dict)

    def argv(self) -> list[str]:
        return [self.command, *self.args]


class TerminalSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    rows: StrictInt = Field(default=24, ge=2, le=1000)
    cols: StrictInt = Field(default=80, ge=2, le=1000)
    history: StrictInt = Field(default=1000, ge=0, le=100_000)
    read_chunk_bytes: StrictInt = Field(default=8192, ge=64, le=1024 * 1024)
    toggle_key: NonEmptyStr = "ctrl+t"

    @field_validator("toggle_key")
    @classmethod
    def _validate_toggle_key(cls, value: str) -> str:
        key, mods = parse_chord(value)
        if len(key) == 1 and not mods & {"ctrl", "alt"}:
            raise ValueError(
                f"toggle_key {value!r} would swallow a typed character; "
                "add ctrl or alt"
            )
        return value


class PermissionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    trust_level: TrustLevel = TrustLevel.ASK_FIRST
    approval_timeout_s: float | None = Field(default=None, gt=0)
    redact_snapshots: bool = True
    redaction_patterns: dict[NonEmptyStr, NonEmptyStr] = Field(default_factory=dict)

    @field_validator("redaction_patterns")
    @classmethod
    def _validate_patterns(cls, value: dict[str, str]) -> dict[str, str]:
        for name, pattern in value.items():
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"redaction pattern {name!r} is invalid: {exc}") from exc
        return value


class LifecycleSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    terminate_grace_s: float = Field(default=0.5, ge=0, le=30)


class DuopaneSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        env_prefix="DUOPANE__",
        env_nested_delimiter="__",
        str_strip_whitespace=True,
    )

    log_level: Literal["debug", "info", "warning", "error"] = "info"
    log_json: bool = False

    shell: ShellSettings = Field(default_factory=ShellSettings)
    terminal: TerminalSettings = Field(default_factory=TerminalSettings)
    permissions: PermissionSettings = Field(default_factory=PermissionSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_settings(path: str | Path | None = None) -> tuple[DuopaneSettings, Path]:
    cfg_path = _resolve_config_path(path)
    _ensure_config_file(cfg_path)
    return _load_settings_from_path(cfg_path), cfg_path


def load_settings_if_exists(
    path: str | Path | None = None,
) -> tuple[DuopaneSettings, Path] | None:
    cfg_path = _resolve_config_path(path)
    if cfg_path.exists():
        if not cfg_path.is_file():
            raise ConfigError(
                f"Config path {cfg_path} exists but is not a file."
            ) from None
        return _load_settings_from_path(cfg_path), cfg_path
    return None


def _resolve_config_path(path: str | Path | None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return HOME_CONFIG_PATH


def _ensure_config_file(cfg_path: Path) -> None:
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None


def _load_settings_from_path(cfg_path: Path) -> DuopaneSettings:
    cfg = dict(DuopaneSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "DuopaneSettingsBound",
        (DuopaneSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        settings = Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to load config {cfg_path}: {exc}") from exc
    _check_shell(settings.shell, cfg_path)
    logger.debug(
        "settings.loaded",
        path=str(cfg_path),
        shell=settings.shell.command,
        trust_level=settings.permissions.trust_level.value,
    )
    return settings


def _check_shell(shell: ShellSettings, cfg_path: Path) -> None:
    if shell.working_dir is not None:
        working_dir = Path(shell.working_dir).expanduser()
        if not working_dir.is_dir():
            raise ConfigError(
                f"Invalid config in {cfg_path}: shell.working_dir "
                f"{working_dir} is not a directory."
            )
    # The default comes from $SHELL and is only checked when spawned.
    if "command" in shell.model_fields_set and shutil.which(shell.command) is None:
        raise ConfigError(
            f"Invalid config in {cfg_path}: shell.command {shell.command!r} "
            "was not found."
        )
