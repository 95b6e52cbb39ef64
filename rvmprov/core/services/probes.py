"""
Idempotency checker — probe the host for the three managed facts.

Each probe is independent: one failing never stops the others. A probe
that cannot read its fact raises ProbeError, which ``probe`` absorbs and
reports as "not satisfied".

All probes are read-only and go through the adapter registry, as the
target user, inside the target user's home.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from rvmprov.adapters.registry import AdapterRegistry
from rvmprov.core.errors import ProbeError
from rvmprov.core.models.action import Action, Fact
from rvmprov.core.models.desired import DesiredState, InstallerSource
from rvmprov.core.models.observed import ObservedState

logger = logging.getLogger(__name__)

LIST_KEYS_COMMAND = "gpg --batch --with-colons --list-keys"
LIST_KEYS_TIMEOUT = 120
MIN_KEY_ID_LENGTH = 16


def _probe_action(fact: Fact, desired: DesiredState, adapter: str, **params) -> Action:
    return Action(
        id=f"probe:{fact.value}:{desired.user}",
        name=f"probe {fact.value}",
        adapter=adapter,
        params=params,
    )


def keyring_fingerprints(listing: str) -> set[str]:
    """Key fingerprints and key IDs found in ``gpg --with-colons`` output."""
    found: set[str] = set()
    for line in listing.splitlines():
        fields = line.split(":")
        if fields[0] == "fpr" and len(fields) > 9 and fields[9]:
            found.add(fields[9].upper())
        elif fields[0] == "pub" and len(fields) > 4 and fields[4]:
            found.add(fields[4].upper())
    return found


def _matches_signer(found: set[str], fingerprints: list[str]) -> bool:
    """Whether any signer is in ``found``, by fingerprint or long key id.

    Ids shorter than a long key id (16 hex digits) never match on either
    side; a short suffix would collide with unrelated keys.
    """
    keys = {key for key in found if len(key) >= MIN_KEY_ID_LENGTH}
    for wanted in fingerprints:
        wanted = wanted.replace(" ", "").upper()
        if len(wanted) < MIN_KEY_ID_LENGTH:
            continue
        if any(wanted.endswith(key) or key.endswith(wanted) for key in keys):
            return True
    return False


def probe_key(
    desired: DesiredState,
    registry: AdapterRegistry,
    source: InstallerSource,
) -> bool:
    """Whether a known installer signing key is in the user's keyring."""
    action = _probe_action(
        Fact.KEY_IMPORTED,
        desired,
        "shell",
        command=LIST_KEYS_COMMAND,
        timeout=LIST_KEYS_TIMEOUT,
    )
    receipt = registry.execute_action(action, user=desired.user, home=desired.home)
    if not receipt.ok:
        raise ProbeError(Fact.KEY_IMPORTED.value, receipt.error or "keyring listing failed")
    return _matches_signer(keyring_fingerprints(receipt.output), source.key_fingerprints)


def probe_tool(desired: DesiredState, registry: AdapterRegistry) -> bool:
    """Whether the rvm entry point exists. Existence only, never version."""
    action = _probe_action(
        Fact.TOOL_INSTALLED,
        desired,
        "filesystem",
        operation="exists",
        path=desired.entry_point,
    )
    receipt = registry.execute_action(action, user=desired.user, home=desired.home)
    if not receipt.ok or "exists" not in receipt.metadata:
        raise ProbeError(Fact.TOOL_INSTALLED.value, receipt.error or "no existence result")
    return bool(receipt.metadata["exists"])


def probe_config(desired: DesiredState, registry: AdapterRegistry) -> bool:
    """Whether the rvmrc holds exactly the desired content.

    Unmanaged configs (no desired content) count as satisfied.
    """
    if not desired.manages_config:
        return True

    action = _probe_action(
        Fact.CONFIG_MATCHES,
        desired,
        "filesystem",
        operation="read",
        path=desired.config_path,
    )
    receipt = registry.execute_action(action, user=desired.user, home=desired.home)
    if receipt.metadata.get("missing"):
        return False
    if not receipt.ok:
        raise ProbeError(Fact.CONFIG_MATCHES.value, receipt.error or "config read failed")
    return receipt.output.encode("utf-8") == desired.config_content.encode("utf-8")


def probe(
    desired: DesiredState,
    registry: AdapterRegistry,
    source: InstallerSource | None = None,
) -> ObservedState:
    """Probe all three facts for one user.

    Never raises for host errors: a failed probe reads as False and its
    reason lands in ``ObservedState.probe_errors``.
    """
    source = source or InstallerSource()
    probes: dict[Fact, Callable[[], bool]] = {
        Fact.KEY_IMPORTED: lambda: probe_key(desired, registry, source),
        Fact.TOOL_INSTALLED: lambda: probe_tool(desired, registry),
        Fact.CONFIG_MATCHES: lambda: probe_config(desired, registry),
    }

    facts: dict[str, bool] = {}
    errors: dict[Fact, str] = {}
    for fact, run_probe in probes.items():
        try:
            facts[fact.value] = run_probe()
        except ProbeError as e:
            logger.warning("Probe %s for %s failed, assuming unsatisfied: %s",
                           fact.value, desired.user, e.message)
            facts[fact.value] = False
            errors[fact] = e.message

    observed = ObservedState(**facts, probe_errors=errors)
    logger.debug("Observed for %s: %s", desired.user, observed.to_dict())
    return observed
