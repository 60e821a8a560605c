"""
Configuration loader for the Atlantis drift detector.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv

from .utils import parse_bool, parse_duration, split_list

SLACK_MESSAGE_FORMATS = ("default", "fix-command")


@dataclass
class Config:
    """Configuration class for the drift detector."""

    repo: str
    atlantis_hostname: str
    atlantis_token: str
    repo_ref: str = "main"
    atlantis_config_path: str = "atlantis.yaml"
    directory_whitelist: List[str] = field(default_factory=list)
    slack_webhook_url: Optional[str] = None
    slack_message_format: str = "default"
    slack_profile_prefix: str = "memfault"
    skip_workspace_check: bool = False
    parallel_runs: int = 1
    dynamodb_table: Optional[str] = None
    cache_valid_duration: timedelta = timedelta(hours=24)
    workflow_owner: Optional[str] = None
    workflow_repo: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_ref: Optional[str] = None
    github_token: Optional[str] = None
    aws_region: Optional[str] = None
    log_level: str = "INFO"
    max_retries: int = 3
    timeout_seconds: int = 30

    @property
    def workflow_enabled(self) -> bool:
        """True when every workflow dispatch setting is present."""
        return all(
            (self.workflow_owner, self.workflow_repo, self.workflow_id, self.workflow_ref)
        )


def _required(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"{name} environment variable is required")
    return value


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _bool(name: str) -> bool:
    try:
        return parse_bool(os.environ.get(name, ""))
    except ValueError:
        raise ValueError(f"{name} must be a boolean, got {os.environ.get(name)!r}")


def load_env_file(path: str = ".env") -> None:
    """Loads a .env file into the environment if one exists, without overriding."""
    if os.path.exists(path):
        load_dotenv(path, override=False)


def load_config() -> Config:
    """
    Loads and validates configuration from the environment.

    Returns:
        Config object with validated settings

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Required configuration
    repo = _required("REPO")
    if "/" not in repo.strip("/"):
        raise ValueError("REPO must be in the form owner/name")
    atlantis_hostname = _required("ATLANTIS_HOST")
    atlantis_token = _required("ATLANTIS_TOKEN")

    raw_duration = os.environ.get("CACHE_VALID_DURATION", "24h")
    try:
        cache_valid_duration = parse_duration(raw_duration)
    except ValueError:
        raise ValueError(
            f"CACHE_VALID_DURATION must be a duration such as 24h, got {raw_duration!r}"
        )

    max_retries = _int("MAX_RETRIES", 3)
    if max_retries < 0:
        raise ValueError("MAX_RETRIES must not be negative")

    slack_message_format = (os.environ.get("SLACK_MESSAGE_FORMAT") or "default").lower()
    if slack_message_format not in SLACK_MESSAGE_FORMATS:
        raise ValueError(
            f"SLACK_MESSAGE_FORMAT must be one of {', '.join(SLACK_MESSAGE_FORMATS)}, "
            f"got {slack_message_format!r}"
        )

    # Optional configuration with defaults
    return Config(
        repo=repo,
        atlantis_hostname=atlantis_hostname,
        atlantis_token=atlantis_token,
        repo_ref=os.environ.get("REPO_REF") or "main",
        atlantis_config_path=os.environ.get("ATLANTIS_CONFIG_PATH") or "atlantis.yaml",
        directory_whitelist=split_list(os.environ.get("DIRECTORY_WHITELIST", "")),
        slack_webhook_url=os.environ.get("SLACK_WEBHOOK_URL") or None,
        slack_message_format=slack_message_format,
        slack_profile_prefix=os.environ.get("SLACK_PROFILE_PREFIX") or "memfault",
        skip_workspace_check=_bool("SKIP_WORKSPACE_CHECK"),
        parallel_runs=_int("PARALLEL_RUNS", 1),
        dynamodb_table=os.environ.get("DYNAMODB_TABLE") or None,
        cache_valid_duration=cache_valid_duration,
        workflow_owner=os.environ.get("WORKFLOW_OWNER") or None,
        workflow_repo=os.environ.get("WORKFLOW_REPO") or None,
        workflow_id=os.environ.get("WORKFLOW_ID") or None,
        workflow_ref=os.environ.get("WORKFLOW_REF") or None,
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        aws_region=os.environ.get("AWS_REGION") or None,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        max_retries=max_retries,
        timeout_seconds=_int("TIMEOUT_SECONDS", 30),
    )
