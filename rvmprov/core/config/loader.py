"""
Configuration loader — reads provision.yml into operator inputs.

This is the outer configuration layer: it turns a YAML file into
ProvisionInput records and an InstallerSource. It does not resolve
defaults like the home directory; that is the resolver's job.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rvmprov.core.models.desired import DEFAULT_VERSION, InstallerSource, ProvisionInput

logger = logging.getLogger(__name__)

PROVISION_CONFIG_FILE = "provision.yml"


class ConfigError(Exception):
    """Raised when provision.yml is invalid or missing."""


class UserDefaults(BaseModel):
    """Values applied to every user entry that doesn't set its own."""

    version: str = DEFAULT_VERSION
    rvmrc: str | None = None

    model_config = ConfigDict(extra="forbid")


class ProvisionConfig(BaseModel):
    """Root of provision.yml."""

    installer: InstallerSource = Field(default_factory=InstallerSource)
    defaults: UserDefaults = Field(default_factory=UserDefaults)
    users: list[dict | str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def inputs(self) -> list[ProvisionInput]:
        """One ProvisionInput per user entry, with defaults merged in."""
        merged = []
        for entry in self.users:
            if isinstance(entry, str):
                entry = {"user": entry}
            data = {"version": self.defaults.version, **entry}
            if "rvmrc" not in entry and "config_content" not in entry:
                data["rvmrc"] = self.defaults.rvmrc
            merged.append(ProvisionInput.model_validate(data))
        return merged


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROVISION_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_config(path: Path | None = None) -> ProvisionConfig:
    """Load and validate provision.yml.

    Args:
        path: Explicit path. If None, searches upward from the cwd.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigError(
            f"No {PROVISION_CONFIG_FILE} found. "
            "Create one, or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading provisioning config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ProvisionConfig.model_validate(data)
        inputs = config.inputs()
    except ValidationError as e:
        raise ConfigError(f"Invalid provisioning configuration: {e}") from e

    logger.info("Loaded %d user(s) from %s", len(inputs), path)
    return config
