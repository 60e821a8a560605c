"""
Tests for the drift run orchestration: filtering, bounded fan-out,
error isolation, reconciliation and cancellation.
"""

import tempfile
import unittest
from typing import List

from fakes import FakeLister, FakePlanner, RecordingNotification, changed, locked

from src.drifter import Drifter
from src.drifter.cache import MemoryCache
from src.drifter.context import RunContext
from src.drifter.errors import (
    AuthenticationError,
    BackendReconciliationError,
    ConfigParseError,
    DriftRunError,
    PlanRequestError,
    RunCancelledError,
)
from src.drifter.types import Outcome, ProjectSpec

DATABASE = "infra/terraform/database/prod/us-east-1/production/redis"


class TestDrifter(unittest.TestCase):
    """End-to-end drift runs against in-memory collaborators."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.checkout = self._tmp.name
        self.notification = RecordingNotification()
        self.cache = MemoryCache()
        self.loaded_paths: List[str] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def make(self, projects: List[ProjectSpec], planner: FakePlanner, **kwargs) -> Drifter:
        def loader(path: str) -> List[ProjectSpec]:
            self.loaded_paths.append(path)
            return list(projects)

        kwargs.setdefault("cache", self.cache)
        return Drifter(
            repo="acme/infra",
            planner=planner,
            notification=self.notification,
            checkout_dir=self.checkout,
            project_loader=loader,
            **kwargs,
        )

    def test_drifted_pair_is_reported(self) -> None:
        projects = [ProjectSpec(DATABASE, "workspace"), ProjectSpec("clean", "default")]
        planner = FakePlanner({(DATABASE, "workspace"): changed()})

        result = self.make(projects, planner).drift()

        self.assertEqual(result.scheduled, 2)
        self.assertEqual(result.drifted, 1)
        self.assertEqual(result.no_drift, 1)
        self.assertEqual(result.drifted_projects, (ProjectSpec(DATABASE, "workspace"),))
        self.assertIsNone(result.error)
        self.assertEqual([e[1:3] for e in self.notification.of_kind("plan_drift")], [(DATABASE, "workspace")])
        self.assertTrue(self.loaded_paths[0].endswith("atlantis.yaml"))

    def test_duplicate_pairs_are_planned_once(self) -> None:
        projects = [ProjectSpec("a"), ProjectSpec("a"), ProjectSpec("b")]
        planner = FakePlanner()

        result = self.make(projects, planner).drift()

        self.assertEqual(result.scheduled, 2)
        self.assertEqual(planner.call_count("a", "default"), 1)

    def test_whitelist_excludes_other_directories(self) -> None:
        projects = [ProjectSpec(DATABASE, "workspace"), ProjectSpec("other/path", "default")]
        planner = FakePlanner()

        self.make(projects, planner, directory_whitelist=["infra/terraform/database"]).drift()

        self.assertEqual(planner.calls, [(DATABASE, "workspace")])

    def test_concurrency_is_bounded(self) -> None:
        projects = [ProjectSpec(f"dir{i}") for i in range(9)]
        planner = FakePlanner(delay=0.05)

        result = self.make(projects, planner, parallel_runs=3).drift()

        self.assertEqual(result.no_drift, 9)
        self.assertLessEqual(planner.max_in_flight, 3)
        self.assertGreaterEqual(planner.max_in_flight, 2)

    def test_non_positive_parallelism_runs_serially(self) -> None:
        projects = [ProjectSpec(f"dir{i}") for i in range(4)]
        planner = FakePlanner(delay=0.01)

        result = self.make(projects, planner, parallel_runs=0).drift()

        self.assertEqual(result.no_drift, 4)
        self.assertEqual(planner.max_in_flight, 1)

    def test_failing_pair_does_not_stop_others(self) -> None:
        projects = [ProjectSpec("a"), ProjectSpec("broken", "prod"), ProjectSpec("c")]
        planner = FakePlanner({("broken", "prod"): PlanRequestError("project not found")})

        result = self.make(projects, planner, parallel_runs=2).drift()

        self.assertEqual(result.errored, 1)
        self.assertEqual(result.no_drift, 2)
        self.assertIsInstance(result.error, DriftRunError)
        self.assertIn("broken#prod", str(result.error))
        self.assertIn("project not found", str(result.error))
        with self.assertRaises(DriftRunError):
            result.raise_for_errors()

    def test_second_run_uses_cached_results(self) -> None:
        projects = [ProjectSpec(DATABASE, "workspace"), ProjectSpec("clean")]
        planner = FakePlanner({(DATABASE, "workspace"): changed()})
        drifter = self.make(projects, planner)

        drifter.drift()
        events_after_first = len(self.notification.events)
        second = drifter.drift()

        self.assertEqual(second.skipped_cached, 2)
        self.assertEqual(len(planner.calls), 2)
        self.assertEqual(len(self.notification.events), events_after_first)

    def test_locked_pair_is_retried_next_run(self) -> None:
        projects = [ProjectSpec("busy")]
        planner = FakePlanner({("busy", "default"): [locked(), changed()]})
        drifter = self.make(projects, planner)

        first = drifter.drift()
        second = drifter.drift()

        self.assertEqual(first.skipped_locked, 1)
        self.assertEqual(second.drifted, 1)

    def test_authentication_failure_aborts_run(self) -> None:
        projects = [ProjectSpec(f"dir{i}") for i in range(6)]
        planner = FakePlanner({("dir0", "default"): AuthenticationError("HTTP 401")})

        with self.assertRaises(AuthenticationError):
            self.make(projects, planner).drift()

        self.assertEqual(planner.calls, [("dir0", "default")])

    def test_config_error_aborts_run(self) -> None:
        def broken_loader(path: str) -> List[ProjectSpec]:
            raise ConfigParseError(f"cannot read {path}")

        drifter = Drifter(
            repo="acme/infra",
            planner=FakePlanner(),
            notification=self.notification,
            checkout_dir=self.checkout,
            project_loader=broken_loader,
        )
        with self.assertRaises(ConfigParseError):
            drifter.drift()

    def test_cancelled_run_reports_unprocessed_pairs(self) -> None:
        projects = [ProjectSpec("a"), ProjectSpec("b")]
        planner = FakePlanner()
        ctx = RunContext()
        ctx.cancel("shutting down")

        result = self.make(projects, planner).drift(ctx)

        self.assertEqual(planner.calls, [])
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], RunCancelledError)
        self.assertIn("2 pair(s) not processed", str(result.errors[0]))
        self.assertIn("shutting down", str(result.errors[0]))


class TestWorkspaceReconciliation(unittest.TestCase):
    """Declared versus remote workspaces."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.notification = RecordingNotification()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def make(self, projects: List[ProjectSpec], lister: FakeLister, **kwargs) -> Drifter:
        return Drifter(
            repo="acme/infra",
            planner=FakePlanner(),
            notification=self.notification,
            workspace_lister=lister,
            checkout_dir=self._tmp.name,
            project_loader=lambda path: list(projects),
            **kwargs,
        )

    def test_extra_and_missing_workspaces(self) -> None:
        projects = [ProjectSpec("app", "staging"), ProjectSpec("app", "prod")]
        lister = FakeLister({"app": {"default", "staging", "legacy"}})

        result = self.make(projects, lister).drift()

        self.assertEqual(result.extra_workspaces, (ProjectSpec("app", "legacy"),))
        self.assertEqual(result.missing_workspaces, (ProjectSpec("app", "prod"),))
        self.assertEqual(
            self.notification.of_kind("extra_workspace_in_remote"),
            [("extra_workspace_in_remote", "app", "legacy")],
        )
        self.assertEqual(
            self.notification.of_kind("missing_workspace_in_remote"),
            [("missing_workspace_in_remote", "app", "prod")],
        )
        self.assertEqual(result.no_drift, 2)

    def test_directories_are_listed_once(self) -> None:
        projects = [ProjectSpec("app", "staging"), ProjectSpec("app", "prod")]
        lister = FakeLister({"app": {"staging", "prod"}})

        self.make(projects, lister).drift()

        self.assertEqual(len(lister.calls), 1)
        self.assertTrue(lister.calls[0].endswith("app"))

    def test_listing_failure_is_isolated(self) -> None:
        projects = [ProjectSpec("app", "default"), ProjectSpec("net", "default")]
        lister = FakeLister({"app": RuntimeError("backend unreachable"), "net": {"default"}})

        result = self.make(projects, lister).drift()

        self.assertEqual(result.no_drift, 2)
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], BackendReconciliationError)
        self.assertIn("backend unreachable", str(result.errors[0]))
        self.assertEqual(result.errors[0].dir, "app")

    def test_notification_failure_is_recorded(self) -> None:
        self.notification.fail_on = {"missing_workspace_in_remote"}
        projects = [ProjectSpec("app", "prod")]
        lister = FakeLister({"app": {"default"}})

        result = self.make(projects, lister).drift()

        self.assertEqual(result.missing_workspaces, (ProjectSpec("app", "prod"),))
        self.assertEqual(len(result.notification_errors), 1)
        self.assertIsNone(result.error)

    def test_skip_workspace_check(self) -> None:
        lister = FakeLister({"app": {"legacy"}})

        result = self.make([ProjectSpec("app")], lister, skip_workspace_check=True).drift()

        self.assertEqual(lister.calls, [])
        self.assertEqual(result.extra_workspaces, ())


if __name__ == "__main__":
    unittest.main()
