"""
GitHub Actions workflow_dispatch notification backend.

Only plan drift triggers the workflow; the other events are ignored.
"""

from typing import Optional

import httpx

from ...utils import setup_logging
from ..context import RunContext
from ..errors import NotificationDeliveryError

logger = setup_logging()

GITHUB_API_URL = "https://api.github.com"


class WorkflowNotification:
    """Dispatches a workflow run for every drifted (directory, workspace)."""

    def __init__(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        api_url: str = GITHUB_API_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.workflow_id = workflow_id
        self.ref = ref
        self.api_url = api_url.rstrip("/")
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = client or httpx.Client(timeout=timeout_seconds)
        self.headers = headers

    @property
    def dispatch_url(self) -> str:
        return (
            f"{self.api_url}/repos/{self.owner}/{self.repo}"
            f"/actions/workflows/{self.workflow_id}/dispatches"
        )

    def temporary_error(
        self, ctx: RunContext, dir: str, workspace: str, error: BaseException
    ) -> None:
        return None

    def extra_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        return None

    def missing_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        return None

    def plan_drift(
        self,
        ctx: RunContext,
        dir: str,
        workspace: str,
        terraform_output: Optional[str] = None,
    ) -> None:
        payload = {"ref": self.ref, "inputs": {"directory": dir, "workspace": workspace}}
        logger.info(f"Dispatching workflow {self.workflow_id} for {dir}#{workspace}")
        try:
            response = self.client.post(self.dispatch_url, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"failed to dispatch workflow: {e}")
        if not response.is_success:
            raise NotificationDeliveryError(
                f"failed to dispatch workflow: HTTP {response.status_code}: {response.text}"
            )
