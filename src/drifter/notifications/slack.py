"""
Slack incoming-webhook notification backend.
"""

from typing import Optional

import httpx

from ...utils import setup_logging
from ..context import RunContext
from ..errors import NotificationDeliveryError
from .formatter import SlackMessageFormatter

logger = setup_logging()


class SlackWebhookNotification:
    """Posts drift events to a Slack incoming webhook."""

    def __init__(
        self,
        webhook_url: str,
        client: Optional[httpx.Client] = None,
        formatter: Optional[SlackMessageFormatter] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.webhook_url = webhook_url
        self.client = client or httpx.Client(timeout=timeout_seconds)
        self.formatter = formatter or SlackMessageFormatter()

    @classmethod
    def from_url(
        cls,
        webhook_url: Optional[str],
        client: Optional[httpx.Client] = None,
        formatter: Optional[SlackMessageFormatter] = None,
    ) -> Optional["SlackWebhookNotification"]:
        """Returns a notifier, or None when no webhook URL is configured."""
        if not webhook_url:
            return None
        return cls(webhook_url, client=client, formatter=formatter)

    def _send(self, text: str) -> None:
        try:
            response = self.client.post(self.webhook_url, json={"text": text})
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"failed to send slack webhook request: {e}")
        if not response.is_success:
            raise NotificationDeliveryError(
                f"failed to send slack webhook request: HTTP {response.status_code}: {response.text}"
            )
        logger.debug(f"Sent slack webhook message ({len(text)} characters)")

    def temporary_error(
        self, ctx: RunContext, dir: str, workspace: str, error: BaseException
    ) -> None:
        self._send(self.formatter.temporary_error(dir, workspace, error))

    def extra_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        self._send(self.formatter.extra_workspace(dir, workspace))

    def missing_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        self._send(self.formatter.missing_workspace(dir, workspace))

    def plan_drift(
        self,
        ctx: RunContext,
        dir: str,
        workspace: str,
        terraform_output: Optional[str] = None,
    ) -> None:
        try:
            text = self.formatter.plan_drift(dir, workspace, terraform_output)
        except ValueError as e:
            raise NotificationDeliveryError(str(e))
        self._send(text)
