"""
Exception taxonomy for drift runs.

Only FatalOrchestrationError and its subclasses stop a run. Everything else
is isolated to a single pair or directory and merged into DriftRunError.
"""

from typing import List, Optional, Sequence


class DrifterError(Exception):
    """Base class for drift detector errors."""


class FatalOrchestrationError(DrifterError):
    """A failure that aborts the whole run."""


class CloneError(FatalOrchestrationError):
    """The repository snapshot could not be produced."""


class ConfigParseError(FatalOrchestrationError):
    """The automation config is missing or malformed."""


class AuthenticationError(FatalOrchestrationError):
    """A required collaborator rejected our credentials."""


class PlanRequestError(DrifterError):
    """A plan request failed for one pair and should not be retried."""

    def __init__(
        self,
        message: str,
        dir: Optional[str] = None,
        workspace: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.dir = dir
        self.workspace = workspace


class TransientPlanError(PlanRequestError):
    """A plan request failed in a way that may succeed on retry."""


class BackendReconciliationError(DrifterError):
    """Listing the remote workspaces of a directory failed."""

    def __init__(self, message: str, dir: Optional[str] = None) -> None:
        super().__init__(message)
        self.dir = dir


class NotificationDeliveryError(DrifterError):
    """One or more notification backends failed to deliver an event."""

    def __init__(self, message: str, errors: Optional[Sequence[BaseException]] = None) -> None:
        super().__init__(message)
        self.errors: List[BaseException] = list(errors or [])


class RunCancelledError(DrifterError):
    """The run context was cancelled or hit its deadline."""


class PairError(DrifterError):
    """Wraps a per-pair failure with the pair's identity."""

    def __init__(self, dir: str, workspace: str, cause: BaseException) -> None:
        super().__init__(f"{dir}#{workspace}: {cause}")
        self.dir = dir
        self.workspace = workspace
        self.cause = cause


class DriftRunError(DrifterError):
    """Combined error summarising every partial failure of a run."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} error(s) during drift run:\n{lines}")
