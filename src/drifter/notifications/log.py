"""
Notification backend that writes events to the application log.
"""

import logging
from typing import Optional

from ...utils import setup_logging
from ..context import RunContext


class LogNotification:
    """Logs every drift event. Never fails."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or setup_logging()

    def temporary_error(
        self, ctx: RunContext, dir: str, workspace: str, error: BaseException
    ) -> None:
        self.logger.error(f"Temporary error: dir={dir} workspace={workspace} error={error}")

    def extra_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        self.logger.info(f"Extra workspace in remote: dir={dir} workspace={workspace}")

    def missing_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        self.logger.info(f"Missing workspace in remote: dir={dir} workspace={workspace}")

    def plan_drift(
        self,
        ctx: RunContext,
        dir: str,
        workspace: str,
        terraform_output: Optional[str] = None,
    ) -> None:
        self.logger.info(f"Plan drift: dir={dir} workspace={workspace}")
        if terraform_output:
            self.logger.debug(f"Plan output for {dir}#{workspace}:\n{terraform_output}")
