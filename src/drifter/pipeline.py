"""
Per-pair drift pipeline.

For one (directory, workspace): cache gate, plan request with retries, lock
filter, drift classification, notification and cache write. The first
matching rule decides the terminal outcome.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Tuple

from ..utils import setup_logging
from .cache import ResultCache
from .context import RunContext
from .errors import (
    FatalOrchestrationError,
    NotificationDeliveryError,
    PlanRequestError,
    RunCancelledError,
    TransientPlanError,
)
from .notifications import Notification
from .types import CacheEntry, Outcome, PairOutcome, PlanResult, ProjectSpec

logger = setup_logging()


class PlanRequester(Protocol):
    """Performs one plan call for a pair."""

    def plan(self, ctx: RunContext, dir: str, workspace: str) -> PlanResult:
        ...


def classify(result: PlanResult) -> Tuple[Outcome, Optional[str]]:
    """
    Turns a plan result into a drift verdict.

    Locked summaries never count towards drift. If every summary is locked the
    real state is unknown and the pair is skipped.

    Returns:
        Tuple of (outcome, terraform output to report). The output is only set
        for DRIFTED and is None when no unlocked summary carries any.
    """
    if result.is_locked():
        return Outcome.LOCKED, None
    if result.has_changes():
        return Outcome.DRIFTED, result.terraform_output() or None
    return Outcome.NO_DRIFT, None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PairPipeline:
    """Runs the drift pipeline for single pairs. Safe to share between workers."""

    def __init__(
        self,
        planner: PlanRequester,
        cache: ResultCache,
        notification: Notification,
        cache_valid_duration: timedelta = timedelta(hours=24),
        max_retries: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.planner = planner
        self.cache = cache
        self.notification = notification
        self.cache_valid_duration = cache_valid_duration
        self.max_retries = max(0, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.clock = clock

    def run(self, ctx: RunContext, project: ProjectSpec) -> PairOutcome:
        """
        Processes one pair.

        Args:
            ctx: Run context
            project: The pair to check

        Returns:
            The pair's terminal outcome

        Raises:
            FatalOrchestrationError: If a collaborator fails in a way that must
                abort the whole run (e.g. authentication)
        """
        dir, workspace = project.dir, project.workspace

        try:
            entry = self.cache.get(dir, workspace)
        except FatalOrchestrationError:
            raise
        except Exception as e:
            logger.error(f"Result cache read failed for {project}: {e}")
            return PairOutcome(project, Outcome.ERROR, error=e)
        if entry is not None and entry.is_valid(self.cache_valid_duration, self.clock()):
            logger.info(
                f"Skipping {project}: processed at {entry.processed_at.isoformat()} "
                f"({entry.outcome.value})"
            )
            return PairOutcome(project, Outcome.CACHED)

        try:
            result = self._request_plan(ctx, project)
        except FatalOrchestrationError:
            raise
        except RunCancelledError as e:
            logger.warning(f"Plan for {project} cancelled: {e}")
            return PairOutcome(project, Outcome.ERROR, error=e)
        except Exception as e:
            logger.error(f"Plan for {project} failed: {e}")
            notification_error = self._notify(
                "temporary_error",
                lambda: self.notification.temporary_error(ctx, dir, workspace, e),
            )
            cache_error = self._store(project, Outcome.ERROR)
            return PairOutcome(
                project,
                Outcome.ERROR,
                error=e,
                cache_error=cache_error,
                notification_error=notification_error,
            )

        outcome, output = classify(result)
        if outcome is Outcome.LOCKED:
            logger.info(f"Skipping {project}: plan is locked by another run")
            return PairOutcome(project, outcome)

        notification_error = None
        if outcome is Outcome.DRIFTED:
            logger.warning(f"Drift detected in {project}")
            notification_error = self._notify(
                "plan_drift",
                lambda: self.notification.plan_drift(ctx, dir, workspace, output),
            )
        else:
            logger.info(f"No drift in {project}")

        cache_error = self._store(project, outcome)
        return PairOutcome(
            project,
            outcome,
            terraform_output=output,
            cache_error=cache_error,
            notification_error=notification_error,
        )

    def _request_plan(self, ctx: RunContext, project: ProjectSpec) -> PlanResult:
        attempt = 0
        while True:
            ctx.check()
            try:
                result = self.planner.plan(ctx, project.dir, project.workspace)
            except TransientPlanError as e:
                if attempt >= self.max_retries:
                    raise PlanRequestError(
                        f"giving up after {attempt + 1} attempt(s): {e}",
                        project.dir,
                        project.workspace,
                    )
                delay = min(self.backoff_max, self.backoff_base * (2 ** attempt))
                attempt += 1
                logger.warning(
                    f"Transient plan failure for {project} ({e}). "
                    f"Retry {attempt}/{self.max_retries} in {delay:.1f}s."
                )
                if ctx.wait(delay):
                    raise RunCancelledError(f"cancelled while retrying: {ctx.reason}")
                continue
            # A plan that finishes after cancellation is discarded.
            ctx.check()
            return result

    def _notify(self, event: str, send: Callable[[], None]) -> Optional[BaseException]:
        try:
            send()
        except NotificationDeliveryError as e:
            return e
        except Exception as e:
            logger.error(f"Notification {event} failed: {e}")
            return NotificationDeliveryError(f"{event}: {e}", [e])
        return None

    def _store(self, project: ProjectSpec, outcome: Outcome) -> Optional[BaseException]:
        entry = CacheEntry(project.dir, project.workspace, self.clock(), outcome)
        try:
            self.cache.put(project.dir, project.workspace, entry)
        except Exception as e:
            logger.error(f"Result cache write failed for {project}: {e}")
            return e
        return None
