"""
Core drift detection orchestration logic.

This module contains the run entry point. A run:
1. Produces a repository checkout (clone or an existing directory)
2. Loads the declared projects and filters/de-duplicates them
3. Optionally reconciles declared and remote workspaces per directory
4. Fans the per-pair pipeline out over a bounded worker pool
5. Returns the aggregated RunResult, or raises the first fatal error
"""

import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import timedelta
from queue import Empty, Queue
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, TypeVar

from ..utils import setup_logging
from .atlantis_config import load_atlantis_config
from .cache import NoopCache, ResultCache
from .context import RunContext
from .errors import CloneError, FatalOrchestrationError, RunCancelledError
from .git import GitCloner
from .notifications import Notification
from .pipeline import PairPipeline, PlanRequester
from .reconciler import WorkspaceReconciler, group_by_directory
from .results import ResultAggregator
from .terraform import WorkspaceLister
from .types import Outcome, PairOutcome, ProjectSpec, RunResult

logger = setup_logging()

T = TypeVar("T")


def filter_projects(
    projects: Iterable[ProjectSpec], whitelist: Optional[Sequence[str]] = None
) -> List[ProjectSpec]:
    """
    De-duplicates projects and applies the directory whitelist.

    Args:
        projects: Declared projects, possibly with duplicates
        whitelist: Directory prefixes; empty or None allows everything

    Returns:
        Unique projects in first-seen order whose directory is one of the
        whitelist directories or lies beneath one
    """
    unique = list(dict.fromkeys(projects))
    prefixes = [os.path.normpath(p) for p in (whitelist or []) if p]
    # "." names the repository root, which contains every project.
    if not prefixes or os.curdir in prefixes:
        return unique
    return [p for p in unique if any(_within(p.dir, prefix) for prefix in prefixes)]


def _within(dir: str, prefix: str) -> bool:
    return dir == prefix or dir.startswith(prefix.rstrip(os.sep) + os.sep)


def fan_out(
    ctx: RunContext,
    items: Sequence[T],
    parallelism: int,
    work: Callable[[T], None],
    aggregator: ResultAggregator,
) -> int:
    """
    Runs ``work`` over ``items`` with at most ``parallelism`` workers.

    Workers pull from a shared queue and stop taking items once the context
    is cancelled. A fatal error is recorded on the aggregator and cancels the
    context so the other workers wind down.

    Returns:
        Number of items that were never dispatched
    """
    if not items:
        return 0
    pending: "Queue[T]" = Queue()
    for item in items:
        pending.put(item)

    def worker() -> None:
        while not ctx.cancelled:
            try:
                item = pending.get_nowait()
            except Empty:
                return
            try:
                work(item)
            except FatalOrchestrationError as e:
                logger.error(f"Fatal error, aborting run: {e}")
                if aggregator.record_fatal(e):
                    ctx.cancel(f"aborted: {e}")
                return

    workers = min(max(1, parallelism), len(items))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="drifter") as pool:
        futures = [pool.submit(worker) for _ in range(workers)]
        for future in futures:
            future.result()
    return pending.qsize()


class Drifter:
    """
    Finds drifted Terraform projects of one repository.

    Holds no state between runs; every call to ``drift`` is self-contained.
    """

    def __init__(
        self,
        repo: str,
        planner: PlanRequester,
        notification: Notification,
        cache: Optional[ResultCache] = None,
        workspace_lister: Optional[WorkspaceLister] = None,
        cloner: Optional[GitCloner] = None,
        repo_ref: str = "main",
        atlantis_config_path: str = "atlantis.yaml",
        directory_whitelist: Optional[Sequence[str]] = None,
        parallel_runs: int = 1,
        cache_valid_duration: timedelta = timedelta(hours=24),
        skip_workspace_check: bool = False,
        max_retries: int = 3,
        checkout_dir: Optional[str] = None,
        project_loader: Callable[[str], List[ProjectSpec]] = load_atlantis_config,
    ) -> None:
        self.repo = repo
        self.planner = planner
        self.notification = notification
        self.cache = cache if cache is not None else NoopCache()
        self.workspace_lister = workspace_lister
        self.cloner = cloner if cloner is not None else GitCloner()
        self.repo_ref = repo_ref
        self.atlantis_config_path = atlantis_config_path
        self.directory_whitelist = list(directory_whitelist or [])
        self.parallel_runs = parallel_runs if parallel_runs > 0 else 1
        self.cache_valid_duration = cache_valid_duration
        self.skip_workspace_check = skip_workspace_check
        self.max_retries = max_retries
        self.checkout_dir = checkout_dir
        self.project_loader = project_loader

    @contextmanager
    def _checkout(self, ctx: RunContext) -> Iterator[str]:
        if self.checkout_dir:
            yield self.checkout_dir
            return
        with tempfile.TemporaryDirectory(prefix="drifter-") as tmp:
            dest = os.path.join(tmp, "repo")
            try:
                self.cloner.clone(ctx, self.repo, self.repo_ref, dest)
            except RunCancelledError as e:
                raise CloneError(f"clone cancelled: {e}")
            yield dest

    def _pipeline(self) -> PairPipeline:
        return PairPipeline(
            planner=self.planner,
            cache=self.cache,
            notification=self.notification,
            cache_valid_duration=self.cache_valid_duration,
            max_retries=self.max_retries,
        )

    def drift(self, ctx: Optional[RunContext] = None) -> RunResult:
        """
        Runs one drift detection pass.

        Args:
            ctx: Run context; cancelling it stops new work and interrupts
                in-flight calls

        Returns:
            The immutable run result. Partial failures are listed in
            ``result.errors`` and combined in ``result.error``.

        Raises:
            FatalOrchestrationError: On clone, config or authentication
                failures; no result is returned in that case
        """
        parent = ctx if ctx is not None else RunContext()
        run_ctx = parent.child()
        aggregator = ResultAggregator()

        with self._checkout(run_ctx) as root:
            config_path = os.path.join(root, self.atlantis_config_path)
            declared = self.project_loader(config_path)
            projects = filter_projects(declared, self.directory_whitelist)
            aggregator.set_scheduled(len(projects))
            logger.info(
                f"Starting drift run for {self.repo}: {len(projects)} pair(s) scheduled "
                f"of {len(declared)} declared, parallelism {self.parallel_runs}"
            )

            if not self.skip_workspace_check and self.workspace_lister is not None:
                self._reconcile(run_ctx, root, projects, aggregator, self.workspace_lister)
                if aggregator.fatal is not None:
                    raise aggregator.fatal

            pipeline = self._pipeline()

            def check(project: ProjectSpec) -> None:
                try:
                    outcome = pipeline.run(run_ctx, project)
                except FatalOrchestrationError:
                    raise
                except Exception as e:
                    logger.error(f"Unexpected error processing {project}: {e}")
                    outcome = PairOutcome(project, Outcome.ERROR, error=e)
                aggregator.record(outcome)

            undispatched = fan_out(run_ctx, projects, self.parallel_runs, check, aggregator)

        if aggregator.fatal is not None:
            raise aggregator.fatal
        if undispatched:
            aggregator.record_error(
                RunCancelledError(f"{undispatched} pair(s) not processed: {run_ctx.reason}")
            )

        result = aggregator.freeze()
        logger.info(
            f"Drift run finished: {result.drifted} drifted, {result.no_drift} clean, "
            f"{result.skipped_cached} cached, {result.skipped_locked} locked, "
            f"{result.errored} errored"
        )
        return result

    def _reconcile(
        self,
        ctx: RunContext,
        root: str,
        projects: List[ProjectSpec],
        aggregator: ResultAggregator,
        lister: WorkspaceLister,
    ) -> None:
        reconciler = WorkspaceReconciler(lister, self.notification, aggregator, root=root)
        directories = list(group_by_directory(projects).items())
        logger.info(f"Reconciling workspaces of {len(directories)} director(ies)")
        skipped = fan_out(
            ctx,
            directories,
            self.parallel_runs,
            lambda item: reconciler.reconcile(ctx, item[0], item[1]),
            aggregator,
        )
        if skipped and aggregator.fatal is None:
            aggregator.record_error(
                RunCancelledError(f"{skipped} director(ies) not reconciled: {ctx.reason}")
            )
