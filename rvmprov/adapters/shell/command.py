"""
Shell command adapter — the process executor.

Runs one ``sh -c`` command as the target user, with the user's home
as working directory and HOME pointing at it. When the target user is
not the effective user the command goes through ``sudo -n``; a missing
sudo rule is a failed receipt, never a password prompt.
"""

from __future__ import annotations

import logging
import os
import pwd
import shutil
import subprocess
import time
from pathlib import Path

from rvmprov.adapters.base import Adapter, ExecutionContext
from rvmprov.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


def current_user() -> str:
    """Name of the effective user of this process."""
    return pwd.getpwuid(os.geteuid()).pw_name


def build_argv(command: str, user: str, env: dict[str, str]) -> list[str]:
    """Command line that runs ``command`` as ``user`` with ``env``."""
    if user == current_user():
        return ["sh", "-c", command]
    assignments = [f"{key}={value}" for key, value in env.items()]
    return ["sudo", "-n", "-H", "-u", user, "env", *assignments, "sh", "-c", command]


class ShellCommandAdapter(Adapter):
    """Execute shell commands as the target user and capture output.

    Action params:
        command (str): The command to execute.
        timeout (int): Timeout in seconds (default: 300).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.action.params.get("command", "")
        if not command:
            return False, "Missing required param: 'command'"

        if not Path(context.working_dir).is_dir():
            return False, f"Home directory does not exist: {context.working_dir}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        command = context.action.params.get("command", "")
        timeout = context.action.params.get("timeout", DEFAULT_TIMEOUT)
        argv = build_argv(command, context.user, context.env)

        env = os.environ.copy()
        env.update(context.env)

        logger.debug("Executing as %s: %s (cwd=%s)", context.user, command, context.working_dir)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                cwd=context.working_dir,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"command": command, "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={
                    "command": command,
                    "return_code": result.returncode,
                    "stderr": stderr,
                },
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            metadata={
                "command": command,
                "return_code": result.returncode,
                "stdout": output,
            },
        )
