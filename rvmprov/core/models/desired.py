"""
Desired state — what the operator wants one user's environment to be.

ProvisionInput is the raw operator request (CLI flags, a provision.yml
entry). DesiredState is its canonical, immutable form, built once per
run by the resolver. InstallerSource describes where the installer and
its signing keys come from.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Conventional locations under the user's home directory
TOOL_DIR = ".rvm"
ENTRY_POINT = ".rvm/bin/rvm"
CONFIG_FILE = ".rvmrc"

DEFAULT_VERSION = "stable"

# Published RVM release signing keys (mpapis, pkuczynski)
RVM_KEY_FINGERPRINTS = (
    "409B6B1796C275462A1703113804BB82D39DC0E3",
    "7D2BAF1CF37B13E2069D6956105BD0E739499BDB",
)

# Long key id (16 hex digits) up to a full v4 fingerprint (40)
_KEY_ID = re.compile(r"[0-9A-F]{16,40}")


class ProvisionInput(BaseModel):
    """Operator input, before defaults are applied."""

    user: str = ""
    version: str = DEFAULT_VERSION
    home: str = ""
    config_content: str | None = Field(default=None, alias="rvmrc")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class InstallerSource(BaseModel):
    """Where the installer script and its trust keys are fetched from."""

    url: str = "https://get.rvm.io"
    keyserver: str = "hkp://keyserver.ubuntu.com"
    key_fingerprints: list[str] = Field(
        default_factory=lambda: list(RVM_KEY_FINGERPRINTS)
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("key_fingerprints")
    @classmethod
    def _check_fingerprints(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one signing key fingerprint is required")
        normalised = []
        for raw in value:
            fpr = raw.replace(" ", "").upper().removeprefix("0X")
            if not _KEY_ID.fullmatch(fpr):
                raise ValueError(
                    f"{raw!r} is not a key fingerprint (16 to 40 hex digits)"
                )
            normalised.append(fpr)
        return normalised


class DesiredState(BaseModel):
    """The canonical provisioning target for one user.

    Immutable once built. ``config_content`` of None means the rvmrc is
    left untouched; it never means "empty file".
    """

    user: str
    version: str = DEFAULT_VERSION
    home: str
    config_content: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def tool_root(self) -> str:
        return str(PurePosixPath(self.home) / TOOL_DIR)

    @property
    def entry_point(self) -> str:
        """Path of the rvm executable whose presence means "installed"."""
        return str(PurePosixPath(self.home) / ENTRY_POINT)

    @property
    def config_path(self) -> str:
        return str(PurePosixPath(self.home) / CONFIG_FILE)

    @property
    def manages_config(self) -> bool:
        return bool(self.config_content)
