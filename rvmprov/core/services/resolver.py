"""
Desired-state resolver — operator input → DesiredState.

Pure: applies defaults and rejects unusable input. Never touches the
host; whether the account really exists is the account provisioner's
business.
"""

from __future__ import annotations

import platform
from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Any

from pydantic import ValidationError

from rvmprov.core.errors import InvalidInputError
from rvmprov.core.models.desired import DEFAULT_VERSION, DesiredState, ProvisionInput


def default_home(user: str, system: str | None = None) -> str:
    """Conventional home directory for ``user`` on this platform."""
    if user == "root":
        return "/root"
    if (system or platform.system()) == "Darwin":
        return f"/Users/{user}"
    return f"/home/{user}"


def resolve(
    raw: ProvisionInput | Mapping[str, Any],
    system: str | None = None,
) -> DesiredState:
    """Build the canonical DesiredState for one user.

    Args:
        raw: Operator input, as a model or a plain mapping.
        system: Platform name override for the home convention.

    Raises:
        InvalidInputError: empty user, a user containing '/', or a
            relative home override.
    """
    if not isinstance(raw, ProvisionInput):
        try:
            raw = ProvisionInput.model_validate(dict(raw))
        except ValidationError as e:
            raise InvalidInputError(f"Invalid provisioning input: {e}") from e

    user = raw.user.strip()
    if not user:
        raise InvalidInputError("user must not be empty")
    if "/" in user:
        raise InvalidInputError(f"user may not contain '/': {user!r}")

    version = raw.version.strip() or DEFAULT_VERSION

    home = raw.home.strip()
    if home:
        if not PurePosixPath(home).is_absolute():
            raise InvalidInputError(f"home must be an absolute path: {home!r}")
        home = str(PurePosixPath(home))
    else:
        home = default_home(user, system)

    return DesiredState(
        user=user,
        version=version,
        home=home,
        config_content=raw.config_content or None,
    )
