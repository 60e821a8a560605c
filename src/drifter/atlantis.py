"""
Atlantis API client.

Requests a plan for one (directory, workspace) through Atlantis' ``/api/plan``
endpoint and turns the response into a PlanResult. Errors are classified so
the pipeline can tell retryable failures from permanent ones; retrying itself
is the pipeline's job.
"""

import re
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

import httpx

from ..utils import setup_logging
from .context import RunContext
from .errors import AuthenticationError, PlanRequestError, RunCancelledError, TransientPlanError
from .types import PlanResult, PlanSummary

logger = setup_logging()

LOCKED_MARKER = "currently locked"
POLL_SECONDS = 0.1

_PLAN_LINE = re.compile(
    r"Plan: (?:\d+ to import, )?\d+ to add, \d+ to change, \d+ to destroy\."
)
_NO_CHANGES_LINE = re.compile(
    r"No changes\. (?:Infrastructure is up-to-date|Your infrastructure matches the configuration)\."
)


def summarize_output(terraform_output: str) -> str:
    """
    Extracts the one-line plan summary from Terraform output.

    Returns:
        The "Plan: ..." or "No changes. ..." line, or "" if neither is present
    """
    match = _PLAN_LINE.search(terraform_output)
    if match:
        return match.group(0)
    match = _NO_CHANGES_LINE.search(terraform_output)
    if match:
        return match.group(0)
    return ""


def _is_lock_failure(failure: Optional[str]) -> bool:
    return bool(failure) and LOCKED_MARKER in str(failure)


def parse_plan_response(body: Dict[str, Any], dir: str, workspace: str) -> PlanResult:
    """
    Interprets the JSON body of an ``/api/plan`` response.

    Args:
        body: Decoded response body
        dir: Requested directory, for error messages
        workspace: Requested workspace, for error messages

    Returns:
        PlanResult with one summary per project result

    Raises:
        PlanRequestError: If Atlantis reports an error other than a lock
    """
    top_error = body.get("Error")
    top_failure = body.get("Failure")
    if top_error:
        raise PlanRequestError(f"atlantis error: {top_error}", dir, workspace)
    if top_failure and not _is_lock_failure(top_failure):
        raise PlanRequestError(f"atlantis failure: {top_failure}", dir, workspace)

    summaries: List[PlanSummary] = []
    for result in body.get("ProjectResults") or []:
        failure = result.get("Failure")
        if _is_lock_failure(failure):
            summaries.append(PlanSummary(has_lock=True, summary=str(failure)))
            continue
        if result.get("Error"):
            raise PlanRequestError(f"project error: {result['Error']}", dir, workspace)
        if failure:
            raise PlanRequestError(f"project failure: {failure}", dir, workspace)
        success = result.get("PlanSuccess")
        if not success:
            continue
        output = success.get("TerraformOutput") or ""
        summaries.append(PlanSummary(summary=summarize_output(output), terraform_output=output))

    if not summaries and _is_lock_failure(top_failure):
        summaries.append(PlanSummary(has_lock=True, summary=str(top_failure)))
    return PlanResult(summaries=tuple(summaries))


class AtlantisClient:
    """Plan capability backed by an Atlantis server."""

    def __init__(
        self,
        hostname: str,
        token: str,
        repo: str,
        ref: str = "main",
        client: Optional[httpx.Client] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if "://" not in hostname:
            hostname = f"https://{hostname}"
        self.base_url = hostname.rstrip("/")
        self.token = token
        self.repo = repo
        self.ref = ref
        self.timeout_seconds = timeout_seconds
        self.client = client or httpx.Client()

    def plan(self, ctx: RunContext, dir: str, workspace: str) -> PlanResult:
        """
        Requests a plan for one directory and workspace.

        Args:
            ctx: Run context; the request timeout never exceeds its deadline
            dir: Project directory relative to the repository root
            workspace: Terraform workspace

        Returns:
            PlanResult for the pair

        Raises:
            AuthenticationError: If Atlantis rejects the token
            TransientPlanError: On network errors, timeouts, 429 and 5xx
            PlanRequestError: On any other failure
            RunCancelledError: If the context is cancelled before or during
                the request
        """
        ctx.check()
        payload = {
            "Repository": self.repo,
            "Ref": self.ref,
            "Type": "Github",
            "Paths": [{"Directory": dir, "Workspace": workspace}],
            "PR": 0,
        }
        timeout = self.timeout_seconds
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = max(0.1, min(timeout, remaining))

        logger.debug(f"Requesting plan for {dir}#{workspace}")
        try:
            response = self._post(ctx, payload, timeout)
        except httpx.TimeoutException as e:
            raise TransientPlanError(f"timeout requesting plan: {e}", dir, workspace)
        except httpx.TransportError as e:
            raise TransientPlanError(f"network error requesting plan: {e}", dir, workspace)

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"atlantis rejected the token (HTTP {status})")

        body = self._decode(response)
        if response.is_success:
            if body is None:
                raise PlanRequestError(
                    f"unparseable plan response (HTTP {status})", dir, workspace
                )
            return parse_plan_response(body, dir, workspace)

        if status == 429 or status >= 500:
            # Atlantis answers 500 when a project failed, including lock failures.
            if body is not None:
                try:
                    result = parse_plan_response(body, dir, workspace)
                except PlanRequestError as e:
                    raise TransientPlanError(f"HTTP {status}: {e}", dir, workspace)
                if result.summaries:
                    return result
            raise TransientPlanError(f"HTTP {status} requesting plan", dir, workspace)

        raise PlanRequestError(f"HTTP {status} requesting plan: {response.text}", dir, workspace)

    def _post(self, ctx: RunContext, payload: Dict[str, Any], timeout: float) -> httpx.Response:
        # The request runs on a helper thread so that cancellation does not wait
        # for a slow plan. An abandoned request ends at its own timeout.
        future: "Future[httpx.Response]" = Future()

        def send() -> None:
            try:
                future.set_result(
                    self.client.post(
                        f"{self.base_url}/api/plan",
                        json=payload,
                        headers={"X-Atlantis-Token": self.token},
                        timeout=timeout,
                    )
                )
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=send, name="atlantis-plan", daemon=True).start()
        while True:
            try:
                return future.result(timeout=POLL_SECONDS)
            except FutureTimeoutError:
                if ctx.cancelled:
                    raise RunCancelledError(f"plan request interrupted: {ctx.reason}")

    @staticmethod
    def _decode(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            body = response.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None
