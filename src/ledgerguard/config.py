"""Configuration records and the YAML loader."""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .tools.errors import ConfigError
from .tools.hledger import DEFAULT_COMMAND, DEFAULT_TIMEOUT

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "ledgerguard.yaml"
ENV_HLEDGER = "LEDGERGUARD_HLEDGER"
ENV_HLEDGER_TIMEOUT = "LEDGERGUARD_HLEDGER_TIMEOUT"


class ConfigModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid")


class JournalSettings(ConfigModel):
    file: Optional[Path] = None
    read_only: bool = False
    skip_backup: bool = False


class HledgerSettings(ConfigModel):
    command: List[str] = Field(default_factory=lambda: list(DEFAULT_COMMAND), min_length=1)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return shlex.split(value)
        return value


class LedgerConfig(ConfigModel):
    """Top-level configuration for the journal service."""

    journal: JournalSettings = Field(default_factory=JournalSettings)
    hledger: HledgerSettings = Field(default_factory=HledgerSettings)


def _apply_env_overrides(config: LedgerConfig, env: Mapping[str, str]) -> LedgerConfig:
    executable = (env.get(ENV_HLEDGER) or "").strip()
    if executable:
        config.hledger.command = [executable]

    raw_timeout = (env.get(ENV_HLEDGER_TIMEOUT) or "").strip()
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError:
            timeout = 0.0
        if timeout > 0:
            config.hledger.timeout = timeout
        else:
            LOGGER.warning("Ignoring invalid %s value: %r", ENV_HLEDGER_TIMEOUT, raw_timeout)
    return config


def load_config(config_path: Path | str | None = None, *, env: Mapping[str, str] | None = None) -> LedgerConfig:
    """Load configuration from ``config_path``; a missing file yields the defaults."""

    path = Path(config_path) if config_path is not None else Path(DEFAULT_CONFIG_NAME)
    data: Any = {}
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as error:
            raise ConfigError(f"Failed to parse config: {error}", details={"path": path.as_posix()}) from error
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping at the top level.", details={"path": path.as_posix()})
    else:
        LOGGER.debug("No configuration file at %s; using defaults", path)

    try:
        config = LedgerConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {path}: {error}", details={"path": path.as_posix()}) from error

    journal_file = config.journal.file
    if journal_file is not None:
        journal_file = journal_file.expanduser()
        if not journal_file.is_absolute():
            journal_file = path.parent / journal_file
        config.journal.file = journal_file.absolute()

    return _apply_env_overrides(config, os.environ if env is None else env)


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "ENV_HLEDGER",
    "ENV_HLEDGER_TIMEOUT",
    "HledgerSettings",
    "JournalSettings",
    "LedgerConfig",
    "load_config",
]
