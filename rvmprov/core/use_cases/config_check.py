"""
Config check use case — validate provision.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rvmprov.core.config.loader import ConfigError, ProvisionConfig, find_config_file, load_config
from rvmprov.core.errors import InvalidInputError
from rvmprov.core.services.resolver import resolve


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ProvisionConfig | None = None
    config_path: Path | None = None
    users: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "users": self.users,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate provision.yml, including every user entry's resolution."""
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append("No provision.yml found.")
        return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.config = config

    seen: set[str] = set()
    for index, raw in enumerate(config.inputs(), start=1):
        try:
            desired = resolve(raw)
        except InvalidInputError as e:
            result.errors.append(f"users[{index}]: {e}")
            continue
        if desired.user in seen:
            result.errors.append(f"users[{index}]: duplicate user '{desired.user}'")
            continue
        seen.add(desired.user)
        result.users.append(desired.user)
        if desired.version == "latest":
            result.warnings.append(
                f"{desired.user}: version 'latest' is only installed once; "
                "later releases are not picked up"
            )

    if not config.users:
        result.warnings.append("No users declared")

    result.valid = not result.errors
    return result
