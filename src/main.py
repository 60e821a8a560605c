"""
AWS Lambda entry point for the Atlantis drift detector.

The function is meant to be triggered on a schedule (e.g. an EventBridge cron
rule); each invocation performs exactly one drift run.
"""

import json
from typing import Optional

import httpx

from .config import Config, load_config, load_env_file
from .drifter import Drifter, FatalOrchestrationError, RunContext
from .drifter.atlantis import AtlantisClient
from .drifter.cache import DynamoDBCache, NoopCache, ResultCache
from .drifter.git import GitCloner
from .drifter.notifications import (
    FixCommandSlackFormatter,
    LogNotification,
    MultiNotification,
    SlackMessageFormatter,
    SlackWebhookNotification,
    WorkflowNotification,
)
from .drifter.terraform import TerraformClient
from .utils import setup_logging

# Leave this much of the Lambda's time budget for reporting.
DEADLINE_MARGIN_SECONDS = 15.0


def build_notification(config: Config, http_client: httpx.Client) -> MultiNotification:
    """Builds the notification fan-out from configuration."""
    logger = setup_logging(config.log_level)
    notification = MultiNotification([LogNotification()])
    formatter = SlackMessageFormatter()
    if config.slack_message_format == "fix-command":
        formatter = FixCommandSlackFormatter(profile_prefix=config.slack_profile_prefix)
    slack = SlackWebhookNotification.from_url(
        config.slack_webhook_url, client=http_client, formatter=formatter
    )
    if slack is not None:
        logger.info("Setting up slack webhook notification")
        notification.add(slack)
    if config.workflow_enabled:
        logger.info("Setting up workflow notification")
        notification.add(
            WorkflowNotification(
                owner=str(config.workflow_owner),
                repo=str(config.workflow_repo),
                workflow_id=str(config.workflow_id),
                ref=str(config.workflow_ref),
                token=config.github_token,
                client=http_client,
            )
        )
    return notification


def build_drifter(config: Config, http_client: Optional[httpx.Client] = None) -> Drifter:
    """
    Wires a Drifter and its collaborators from configuration.

    Args:
        config: Loaded configuration
        http_client: Shared HTTP client; one is created if omitted

    Returns:
        Ready-to-run Drifter
    """
    logger = setup_logging(config.log_level)
    if http_client is None:
        http_client = httpx.Client(timeout=config.timeout_seconds)

    cache: ResultCache = NoopCache()
    if config.dynamodb_table:
        logger.info("Setting up dynamodb result cache")
        cache = DynamoDBCache(config.dynamodb_table, region_name=config.aws_region)

    return Drifter(
        repo=config.repo,
        repo_ref=config.repo_ref,
        planner=AtlantisClient(
            hostname=config.atlantis_hostname,
            token=config.atlantis_token,
            repo=config.repo,
            ref=config.repo_ref,
            client=http_client,
            timeout_seconds=config.timeout_seconds,
        ),
        notification=build_notification(config, http_client),
        cache=cache,
        workspace_lister=TerraformClient(),
        cloner=GitCloner(token=config.github_token),
        atlantis_config_path=config.atlantis_config_path,
        directory_whitelist=config.directory_whitelist,
        parallel_runs=config.parallel_runs,
        cache_valid_duration=config.cache_valid_duration,
        skip_workspace_check=config.skip_workspace_check,
        max_retries=config.max_retries,
    )


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "body": json.dumps(body),
        "headers": {
            "Content-Type": "application/json"
        },
    }


def lambda_handler(event: dict, context: object) -> dict:
    """
    AWS Lambda handler function.

    Args:
        event: Lambda event data (unused; every invocation runs once)
        context: Lambda context

    Returns:
        Dictionary with statusCode and body containing the run summary
    """
    logger = setup_logging()
    try:
        # Load and validate configuration
        load_env_file()
        config = load_config()

        # Setup logging
        logger = setup_logging(config.log_level)
        logger.info("Starting Atlantis drift detection")

        timeout = None
        get_remaining = getattr(context, "get_remaining_time_in_millis", None)
        if callable(get_remaining):
            timeout = max(1.0, get_remaining() / 1000.0 - DEADLINE_MARGIN_SECONDS)

        drifter = build_drifter(config)
        result = drifter.drift(RunContext(timeout=timeout))

        logger.info(
            f"Drift detection completed. Drift detected: {result.drifted > 0}, "
            f"errors: {len(result.errors)}"
        )
        if result.error is not None:
            logger.error(str(result.error))

        return _response(200, result.to_dict())

    except ValueError as e:
        # Configuration or validation errors
        logger.error(f"Configuration error: {str(e)}")
        return _response(400, {"error": "Configuration error", "message": str(e)})

    except FatalOrchestrationError as e:
        logger.error(f"Drift run aborted: {str(e)}")
        return _response(500, {"error": "Drift run aborted", "message": str(e)})

    except Exception as e:
        # Unexpected errors
        logger.error(f"Unexpected error: {str(e)}")
        return _response(500, {"error": "Internal server error", "message": str(e)})
