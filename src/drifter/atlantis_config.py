"""
Loader for the repository's ``atlantis.yaml``.
"""

import os
from typing import List

import yaml

from ..utils import setup_logging
from .errors import ConfigParseError
from .types import ProjectSpec

logger = setup_logging()


def parse_atlantis_config(content: str, source: str = "atlantis.yaml") -> List[ProjectSpec]:
    """
    Parses atlantis.yaml content into declared projects.

    Args:
        content: Raw YAML text
        source: Name used in error messages

    Returns:
        Declared (directory, workspace) pairs in file order. Duplicates are kept.

    Raises:
        ConfigParseError: If the YAML is malformed or a project has no dir
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"invalid YAML in {source}: {e}")

    if not isinstance(data, dict):
        raise ConfigParseError(f"{source} must contain a mapping")
    projects = data.get("projects")
    if not isinstance(projects, list):
        raise ConfigParseError(f"{source} has no projects list")

    specs = []
    for index, project in enumerate(projects):
        if not isinstance(project, dict):
            raise ConfigParseError(f"{source}: project #{index} is not a mapping")
        directory = project.get("dir")
        if not directory or not isinstance(directory, str):
            raise ConfigParseError(f"{source}: project #{index} has no dir")
        workspace = project.get("workspace") or "default"
        specs.append(ProjectSpec(dir=os.path.normpath(directory), workspace=str(workspace)))

    logger.info(f"Parsed {len(specs)} project(s) from {source}")
    return specs


def load_atlantis_config(path: str) -> List[ProjectSpec]:
    """
    Reads and parses an atlantis.yaml file.

    Raises:
        ConfigParseError: If the file cannot be read or parsed
    """
    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError as e:
        raise ConfigParseError(f"cannot read {path}: {e}")
    return parse_atlantis_config(content, source=path)
