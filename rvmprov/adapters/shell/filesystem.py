"""
Filesystem adapter — the file-system accessor.

Receipt-returning ``exists`` / ``read`` / ``write`` confined to the
target user's home directory, symlinks included: paths are checked after
following links and files are opened with O_NOFOLLOW. Content is handled
as UTF-8 bytes, so what is read back is byte-for-byte what is on disk.
"""

from __future__ import annotations

import logging
import os
import pwd
from pathlib import Path

from rvmprov.adapters.base import Adapter, ExecutionContext
from rvmprov.core.models.action import Receipt

logger = logging.getLogger(__name__)

_OPERATIONS = {"exists", "read", "write"}


class FilesystemAdapter(Adapter):
    """File operations with receipts.

    Action params:
        operation (str): One of 'exists', 'read', 'write'.
        path (str): Target path (relative to home or absolute under it).
        content (str): Content to write (for 'write').
        owner (str): Owner to chown a written file to (for 'write').

    Args:
        chown: Change ownership of written files. Disable when the
            process cannot give files away (tests, non-root runs that
            already are the target user).
    """

    def __init__(self, chown: bool = True):
        self._chown = chown

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.action.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in _OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_OPERATIONS))}"

        path = context.action.params.get("path", "")
        if not path:
            return False, "Missing required param: 'path'"

        try:
            context.real_path(path)
        except ValueError as e:
            return False, str(e)

        if operation == "write" and "content" not in context.action.params:
            return False, "Missing required param: 'content' for write operation"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.action.params["operation"]
        try:
            target = context.real_path(context.action.params["path"])
            if operation == "exists":
                return self._exists(context, target)
            if operation == "read":
                return self._read(context, target)
            return self._write(context, target)
        except (OSError, ValueError, LookupError) as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": context.action.params["path"]},
            )

    def _exists(self, ctx: ExecutionContext, target: Path) -> Receipt:
        exists = target.exists()
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=str(exists),
            metadata={"exists": exists, "is_file": target.is_file(), "path": str(target)},
        )

    def _read(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.is_file():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"File not found: {target}",
                metadata={"path": str(target), "missing": True},
            )
        with os.fdopen(os.open(target, os.O_RDONLY | os.O_NOFOLLOW), "rb") as fh:
            content = fh.read().decode("utf-8")
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=content,
            metadata={"path": str(target), "size": len(content)},
        )

    def _write(self, ctx: ExecutionContext, target: Path) -> Receipt:
        content = ctx.action.params["content"]
        owner = ctx.action.params.get("owner") or ctx.user
        data = content.encode("utf-8")

        account = pwd.getpwnam(owner) if self._chown else None

        target.parent.mkdir(parents=True, exist_ok=True)
        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_NOFOLLOW
        with os.fdopen(os.open(target, flags, 0o644), "wb") as fh:
            fh.write(data)
            if account is not None:
                os.fchown(fh.fileno(), account.pw_uid, account.pw_gid)
            os.fchmod(fh.fileno(), 0o644)

        logger.debug("Wrote %d bytes to %s (owner=%s)", len(data), target, owner)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Written {len(data)} bytes to {target}",
            metadata={"path": str(target), "size": len(data), "owner": owner},
        )
