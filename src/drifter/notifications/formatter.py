"""
Chat message formatting for drift events.
"""

import os
from typing import Optional

ACTIONS_MARKER = "Terraform will perform the following actions:"
PLAN_MARKER = "Plan:"
MAX_DETAIL_LENGTH = 1000


class SlackMessageFormatter:
    """Builds the Slack message bodies sent by SlackWebhookNotification."""

    def __init__(self, max_detail_length: int = MAX_DETAIL_LENGTH) -> None:
        self.max_detail_length = max_detail_length

    def plan_drift(self, dir: str, workspace: str, terraform_output: Optional[str] = None) -> str:
        """
        Formats a plan drift message.

        Missing and empty output produce the same message, without a details block.

        Args:
            dir: Project directory
            workspace: Terraform workspace
            terraform_output: Full plan output, if any

        Returns:
            Message text
        """
        message = f"Terraform drift detected in `{dir}` (workspace `{workspace}`)."
        details = self.extract_drift_details(terraform_output or "")
        if details:
            message += f"\n\nDrift Details:\n```\n{details}\n```"
        return message

    def extra_workspace(self, dir: str, workspace: str) -> str:
        return f"Extra workspace in remote\nDirectory: {dir}\nWorkspace: {workspace}"

    def missing_workspace(self, dir: str, workspace: str) -> str:
        return f"Missing workspace in remote\nDirectory: {dir}\nWorkspace: {workspace}"

    def temporary_error(self, dir: str, workspace: str, error: BaseException) -> str:
        return f"Unknown error in remote\nDirectory: {dir}\nWorkspace: {workspace}\nError: {error}"

    def extract_drift_details(self, terraform_output: str) -> str:
        """
        Extracts the planned actions from Terraform output.

        Slack caps message size, so the action list is cut to
        ``max_detail_length`` characters and followed by the ``Plan:`` line.

        Args:
            terraform_output: Full plan output

        Returns:
            The trimmed action list, or "" if the output has no action section
        """
        start = terraform_output.find(ACTIONS_MARKER)
        if start == -1:
            return ""
        start += len(ACTIONS_MARKER)

        plan_index = terraform_output.find(PLAN_MARKER, start)
        if plan_index == -1:
            extracted = terraform_output[start:].strip()
            return self._truncate_at_newline(extracted)

        line_end = terraform_output.find("\n", plan_index)
        if line_end == -1:
            plan_line = terraform_output[plan_index:]
        else:
            plan_line = terraform_output[plan_index:line_end]
        content = terraform_output[start:plan_index].strip()

        if len(content) <= self.max_detail_length:
            return f"{content}\n{plan_line}"
        return f"{content[:self.max_detail_length]}\n...\n{plan_line}"

    def _truncate_at_newline(self, text: str) -> str:
        # Cut at the first newline past the limit so the last line stays whole.
        if len(text) <= self.max_detail_length:
            return text
        newline = text.find("\n", self.max_detail_length)
        if newline == -1:
            return text[:self.max_detail_length]
        return text[: newline + 1]


class FixCommandSlackFormatter(SlackMessageFormatter):
    """
    Drift messages that tell the reader how to apply the fix locally.

    The directory layout is expected to end in ``<environment>/<project>``;
    the environment selects the aws-vault profile and the project is passed
    to ``inv terraform.apply``.
    """

    def __init__(
        self,
        profile_prefix: str = "memfault",
        max_detail_length: int = MAX_DETAIL_LENGTH,
    ) -> None:
        super().__init__(max_detail_length=max_detail_length)
        self.profile_prefix = profile_prefix

    def plan_drift(self, dir: str, workspace: str, terraform_output: Optional[str] = None) -> str:
        """
        Formats a plan drift message with the local fix command.

        Raises:
            ValueError: If the directory has fewer than two path components
        """
        try:
            environment = self.extract_environment(dir)
        except ValueError as e:
            raise ValueError(f"failed to format plan drift message: {e}")

        message = (
            f"Terraform drift detected in `{dir}`.\n"
            "Fix locally with this command:\n\n"
            f"```\n{self.fix_command(environment, self.extract_project(dir))}\n```"
        )
        details = self.extract_drift_details(terraform_output or "")
        if details:
            message += f"\n\nDrift Details:\n```\n{details}\n```"
        return message

    def fix_command(self, environment: str, project: str) -> str:
        return f"aws-vault exec {self.build_profile(environment)} -- inv terraform.apply -p {project}"

    def extract_environment(self, dir: str) -> str:
        """Returns the second to last path component, e.g. ``eu`` in ``.../eu/lavinmq``."""
        parts = dir.split("/")
        if len(parts) < 2:
            raise ValueError(
                f"cannot extract environment from directory path: {dir} "
                "(need at least 2 path components)"
            )
        return parts[-2]

    def build_profile(self, environment: str) -> str:
        if environment == "production":
            return f"{self.profile_prefix}-prod"
        return f"{self.profile_prefix}-{environment}"

    def extract_project(self, dir: str) -> str:
        return os.path.basename(dir.rstrip("/"))
