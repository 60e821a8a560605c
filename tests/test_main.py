"""
Tests for the Lambda entry point and collaborator wiring.
"""

import json
import unittest
from unittest.mock import MagicMock, patch

import httpx

from src.config import Config
from src.drifter.cache import DynamoDBCache, NoopCache
from src.drifter.errors import CloneError, PlanRequestError
from src.drifter.notifications import (
    FixCommandSlackFormatter,
    LogNotification,
    SlackWebhookNotification,
    WorkflowNotification,
)
from src.drifter.types import ProjectSpec, RunResult
from src.main import build_drifter, build_notification, lambda_handler

ENV = {
    "REPO": "acme/infra",
    "ATLANTIS_HOST": "atlantis.example.com",
    "ATLANTIS_TOKEN": "secret",
}


def make_config(**overrides) -> Config:
    values = dict(repo="acme/infra", atlantis_hostname="atlantis.example.com", atlantis_token="secret")
    values.update(overrides)
    return Config(**values)


class TestWiring(unittest.TestCase):
    """Collaborators built from configuration."""

    def test_log_only_by_default(self) -> None:
        notification = build_notification(make_config(), httpx.Client())
        self.assertEqual([type(n) for n in notification.notifications], [LogNotification])

    def test_all_backends(self) -> None:
        config = make_config(
            slack_webhook_url="https://hooks.slack.com/services/T/B/X",
            workflow_owner="acme",
            workflow_repo="infra",
            workflow_id="drift.yaml",
            workflow_ref="main",
        )
        notification = build_notification(config, httpx.Client())
        self.assertEqual(
            [type(n) for n in notification.notifications],
            [LogNotification, SlackWebhookNotification, WorkflowNotification],
        )

    def test_fix_command_message_format(self) -> None:
        config = make_config(
            slack_webhook_url="https://hooks.slack.com/services/T/B/X",
            slack_message_format="fix-command",
            slack_profile_prefix="acme",
        )
        slack = build_notification(config, httpx.Client()).notifications[1]
        self.assertIsInstance(slack.formatter, FixCommandSlackFormatter)
        self.assertEqual(slack.formatter.build_profile("production"), "acme-prod")

    def test_cache_selection(self) -> None:
        self.assertIsInstance(build_drifter(make_config()).cache, NoopCache)
        with patch("src.drifter.cache.dynamodb.boto3.client"):
            drifter = build_drifter(make_config(dynamodb_table="drift-cache", aws_region="us-east-1"))
        self.assertIsInstance(drifter.cache, DynamoDBCache)
        self.assertEqual(drifter.cache.table_name, "drift-cache")

    def test_settings_are_passed_through(self) -> None:
        drifter = build_drifter(make_config(parallel_runs=4, directory_whitelist=["infra"], repo_ref="dev"))
        self.assertEqual(drifter.parallel_runs, 4)
        self.assertEqual(drifter.directory_whitelist, ["infra"])
        self.assertEqual(drifter.repo_ref, "dev")
        self.assertEqual(drifter.planner.base_url, "https://atlantis.example.com")


class TestLambdaHandler(unittest.TestCase):
    """Lambda handler responses."""

    @patch("src.main.load_env_file")
    @patch.dict("os.environ", {}, clear=True)
    def test_missing_configuration(self, _: MagicMock) -> None:
        response = lambda_handler({}, None)
        self.assertEqual(response["statusCode"], 400)
        self.assertEqual(json.loads(response["body"])["error"], "Configuration error")

    @patch("src.main.build_drifter")
    @patch("src.main.load_env_file")
    @patch.dict("os.environ", ENV, clear=True)
    def test_successful_run(self, _: MagicMock, mock_build: MagicMock) -> None:
        mock_build.return_value.drift.return_value = RunResult(
            scheduled=2,
            drifted=1,
            no_drift=1,
            drifted_projects=(ProjectSpec("infra/app", "prod"),),
        )
        context = MagicMock()
        context.get_remaining_time_in_millis.return_value = 300000

        response = lambda_handler({}, context)

        self.assertEqual(response["statusCode"], 200)
        body = json.loads(response["body"])
        self.assertTrue(body["drift_detected"])
        self.assertEqual(body["drifted_projects"], ["infra/app#prod"])
        run_ctx = mock_build.return_value.drift.call_args[0][0]
        self.assertLessEqual(run_ctx.remaining(), 285.0)

    @patch("src.main.build_drifter")
    @patch("src.main.load_env_file")
    @patch.dict("os.environ", ENV, clear=True)
    def test_partial_failures_are_reported(self, _: MagicMock, mock_build: MagicMock) -> None:
        mock_build.return_value.drift.return_value = RunResult(
            scheduled=1, errored=1, errors=(PlanRequestError("app#default: HTTP 400"),)
        )
        response = lambda_handler({}, None)
        self.assertEqual(response["statusCode"], 200)
        self.assertEqual(json.loads(response["body"])["errors"], ["app#default: HTTP 400"])

    @patch("src.main.build_drifter")
    @patch("src.main.load_env_file")
    @patch.dict("os.environ", ENV, clear=True)
    def test_fatal_error(self, _: MagicMock, mock_build: MagicMock) -> None:
        mock_build.return_value.drift.side_effect = CloneError("git clone of acme/infra failed")
        response = lambda_handler({}, None)
        self.assertEqual(response["statusCode"], 500)
        self.assertEqual(json.loads(response["body"])["error"], "Drift run aborted")

    @patch("src.main.build_drifter")
    @patch("src.main.load_env_file")
    @patch.dict("os.environ", ENV, clear=True)
    def test_unexpected_error(self, _: MagicMock, mock_build: MagicMock) -> None:
        mock_build.return_value.drift.side_effect = RuntimeError("boom")
        response = lambda_handler({}, None)
        self.assertEqual(response["statusCode"], 500)
        self.assertEqual(json.loads(response["body"])["error"], "Internal server error")


if __name__ == "__main__":
    unittest.main()
