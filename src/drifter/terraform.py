"""
Remote state lister using the terraform CLI.
"""

import os
import subprocess
from typing import Protocol, Set

from ..utils import setup_logging
from .context import RunContext
from .errors import BackendReconciliationError
from .process import run_command

logger = setup_logging()


class WorkspaceLister(Protocol):
    """Lists the workspaces that exist in a directory's backend."""

    def list_workspaces(self, ctx: RunContext, dir: str) -> Set[str]:
        ...


def parse_workspace_list(output: str) -> Set[str]:
    """Parses ``terraform workspace list`` output, dropping the current marker."""
    workspaces = set()
    for line in output.splitlines():
        name = line.strip().lstrip("*").strip()
        if name:
            workspaces.add(name)
    return workspaces


class TerraformClient:
    """Runs ``terraform init`` and ``terraform workspace list`` in a directory."""

    def __init__(
        self,
        binary: str = "terraform",
        timeout_seconds: float = 300.0,
    ) -> None:
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    def _run(self, ctx: RunContext, dir: str, *args: str) -> str:
        env = dict(os.environ, TF_IN_AUTOMATION="1", TF_INPUT="0")
        try:
            code, stdout, stderr = run_command(
                ctx, [self.binary, *args], cwd=dir, env=env, timeout=self.timeout_seconds
            )
        except OSError as e:
            raise BackendReconciliationError(f"cannot run terraform in {dir}: {e}", dir)
        except subprocess.TimeoutExpired:
            raise BackendReconciliationError(f"terraform {args[0]} timed out in {dir}", dir)
        if code != 0:
            raise BackendReconciliationError(
                f"terraform {' '.join(args)} failed in {dir}: {stderr.strip()}", dir
            )
        return stdout

    def list_workspaces(self, ctx: RunContext, dir: str) -> Set[str]:
        """
        Lists the workspaces present in a directory's remote backend.

        Raises:
            BackendReconciliationError: If init or the listing fails
            RunCancelledError: If the run is cancelled meanwhile
        """
        logger.debug(f"Initialising terraform in {dir}")
        self._run(ctx, dir, "init", "-input=false", "-no-color")
        workspaces = parse_workspace_list(self._run(ctx, dir, "workspace", "list"))
        logger.debug(f"Remote workspaces for {dir}: {sorted(workspaces)}")
        return workspaces

