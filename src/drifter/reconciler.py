"""
Workspace reconciliation.

Compares the workspaces declared for each directory with the workspaces that
actually exist in the directory's remote backend.
"""

import os
from collections import OrderedDict
from typing import Iterable, List, Optional

from ..utils import setup_logging
from .context import RunContext
from .errors import (
    BackendReconciliationError,
    FatalOrchestrationError,
    NotificationDeliveryError,
    RunCancelledError,
)
from .notifications import Notification
from .results import ResultAggregator
from .terraform import WorkspaceLister
from .types import ProjectSpec

logger = setup_logging()

# Terraform always has this workspace and it cannot be deleted.
DEFAULT_WORKSPACE = "default"


def group_by_directory(projects: Iterable[ProjectSpec]) -> "OrderedDict[str, List[str]]":
    """Groups declared workspaces by directory, keeping first-seen order."""
    grouped: "OrderedDict[str, List[str]]" = OrderedDict()
    for project in projects:
        workspaces = grouped.setdefault(project.dir, [])
        if project.workspace not in workspaces:
            workspaces.append(project.workspace)
    return grouped


class WorkspaceReconciler:
    """Emits extra/missing workspace events for one directory at a time."""

    def __init__(
        self,
        lister: WorkspaceLister,
        notification: Notification,
        aggregator: ResultAggregator,
        root: Optional[str] = None,
    ) -> None:
        self.lister = lister
        self.notification = notification
        self.aggregator = aggregator
        self.root = root

    def reconcile(self, ctx: RunContext, dir: str, declared: List[str]) -> None:
        """
        Reconciles one directory. Failures are recorded, never raised,
        except fatal errors.

        Args:
            ctx: Run context
            dir: Directory relative to the checkout
            declared: Workspaces declared for the directory
        """
        path = os.path.join(self.root, dir) if self.root else dir
        try:
            remote = self.lister.list_workspaces(ctx, path)
        except FatalOrchestrationError:
            raise
        except RunCancelledError as e:
            logger.warning(f"Workspace listing cancelled for {dir}")
            self.aggregator.record_error(BackendReconciliationError(f"{dir}: {e}", dir))
            return
        except Exception as e:
            logger.error(f"Workspace listing failed for {dir}: {e}")
            if not isinstance(e, BackendReconciliationError) or e.dir != dir:
                e = BackendReconciliationError(f"{dir}: {e}", dir)
            self.aggregator.record_error(e)
            return

        declared_set = set(declared)
        for workspace in sorted(remote - declared_set):
            if workspace == DEFAULT_WORKSPACE:
                continue
            logger.warning(f"Extra workspace in remote: {dir}#{workspace}")
            self.aggregator.record_extra_workspace(ProjectSpec(dir, workspace))
            self._notify(ctx, "extra", dir, workspace)

        for workspace in declared:
            if workspace in remote:
                continue
            logger.warning(f"Missing workspace in remote: {dir}#{workspace}")
            self.aggregator.record_missing_workspace(ProjectSpec(dir, workspace))
            self._notify(ctx, "missing", dir, workspace)

    def _notify(self, ctx: RunContext, kind: str, dir: str, workspace: str) -> None:
        try:
            if kind == "extra":
                self.notification.extra_workspace_in_remote(ctx, dir, workspace)
            else:
                self.notification.missing_workspace_in_remote(ctx, dir, workspace)
        except NotificationDeliveryError as e:
            self.aggregator.record_notification_error(e)
        except Exception as e:
            logger.error(f"Notification of {kind} workspace {dir}#{workspace} failed: {e}")
            self.aggregator.record_notification_error(NotificationDeliveryError(str(e), [e]))
