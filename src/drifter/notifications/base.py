"""
Notification sink protocol and fan-out.
"""

from typing import Callable, List, Optional, Protocol, Sequence

from ...utils import setup_logging
from ..context import RunContext
from ..errors import NotificationDeliveryError

logger = setup_logging()


class Notification(Protocol):
    """Capability set every notification backend implements."""

    def temporary_error(
        self, ctx: RunContext, dir: str, workspace: str, error: BaseException
    ) -> None:
        ...

    def extra_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        ...

    def missing_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        ...

    def plan_drift(
        self,
        ctx: RunContext,
        dir: str,
        workspace: str,
        terraform_output: Optional[str] = None,
    ) -> None:
        ...


class MultiNotification:
    """
    Sends each event to every configured backend, in order.

    A failing backend does not stop delivery to the ones after it; all
    failures are raised together as one NotificationDeliveryError.
    """

    def __init__(self, notifications: Optional[Sequence[Notification]] = None) -> None:
        self.notifications: List[Notification] = list(notifications or [])

    def add(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def _each(self, event: str, send: Callable[[Notification], None]) -> None:
        errors: List[BaseException] = []
        for notification in self.notifications:
            try:
                send(notification)
            except Exception as e:
                logger.error(
                    f"Notification backend {type(notification).__name__} failed on {event}: {e}"
                )
                errors.append(e)
        if errors:
            raise NotificationDeliveryError(
                f"{len(errors)} notification backend(s) failed on {event}", errors
            )

    def temporary_error(
        self, ctx: RunContext, dir: str, workspace: str, error: BaseException
    ) -> None:
        self._each(
            "temporary_error", lambda n: n.temporary_error(ctx, dir, workspace, error)
        )

    def extra_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        self._each(
            "extra_workspace_in_remote",
            lambda n: n.extra_workspace_in_remote(ctx, dir, workspace),
        )

    def missing_workspace_in_remote(self, ctx: RunContext, dir: str, workspace: str) -> None:
        self._each(
            "missing_workspace_in_remote",
            lambda n: n.missing_workspace_in_remote(ctx, dir, workspace),
        )

    def plan_drift(
        self,
        ctx: RunContext,
        dir: str,
        workspace: str,
        terraform_output: Optional[str] = None,
    ) -> None:
        self._each(
            "plan_drift", lambda n: n.plan_drift(ctx, dir, workspace, terraform_output)
        )
