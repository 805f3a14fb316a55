"""
Configuration file parsing for build settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import platformdirs
import yaml

from buildtree.errors import ConfigError
from buildtree.freshness import FreshnessPolicyTypes
from buildtree.logging import LogLevel
from buildtree.process_runner import TaskOutputTypes

__all__ = [
    "BuildConfig",
    "ConfigError",
    "PROJECT_CONFIG_FILE",
    "find_project_config",
    "get_machine_config_path",
    "get_user_config_path",
    "load_config",
    "parse_config_file",
]

PROJECT_CONFIG_FILE = ".buildtree-config.yml"
INCREMENTAL_DIR_ENV = "BUILDTREE_INCREMENTAL_DIR"

DEFAULT_INCREMENTAL_DIR = ".buildtree/incremental"


@dataclass(frozen=True)
class BuildConfig:
    """
    Effective build settings.

    ``incremental_dir`` is relative to the project root unless absolute.
    An empty ``shell`` means the platform default (bash -c, or cmd /c on Windows).
    """

    incremental_dir: str = DEFAULT_INCREMENTAL_DIR
    freshness: FreshnessPolicyTypes = FreshnessPolicyTypes.MTIME
    shell: str = ""
    shell_args: Optional[list[str]] = None
    task_output: TaskOutputTypes = TaskOutputTypes.ALL
    log_level: LogLevel = LogLevel.INFO
    sources: list[Path] = field(default_factory=list, compare=False)

    def incremental_path(self, project_root: Path) -> Path:
        path = Path(self.incremental_dir).expanduser()
        if path.is_absolute():
            return path
        return project_root / path


def get_machine_config_path() -> Path:
    """
    Get the path to the machine-level (system-wide) configuration file.

    Uses platformdirs to determine the appropriate site config directory
    for the current platform, then appends 'buildtree/config.yml'.

    Returns:
        Path to the machine config file (may not exist)
    """
    config_dir = Path(platformdirs.site_config_dir("buildtree"))
    return config_dir / "config.yml"


def get_user_config_path() -> Path:
    """
    Get the path to the user-level configuration file.

    Returns:
        Path to the user config file (may not exist)
    """
    config_dir: Path = Path(platformdirs.user_config_dir("buildtree"))
    return config_dir / "config.yml"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """
    Walk up the directory tree from start_dir to find .buildtree-config.yml.

    Args:
        start_dir: Directory to start searching from

    Returns:
        Path to .buildtree-config.yml if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        # resolve() can raise OSError on invalid paths or RuntimeError on symlink loops
        return None

    # Maximum depth of 100 prevents infinite loops in edge cases
    max_depth = 100
    for _ in range(max_depth):
        try:
            config_path = current / PROJECT_CONFIG_FILE
            if config_path.exists():
                return config_path
        except (OSError, PermissionError):
            # Skip directories we can't inspect and continue up the tree
            pass

        parent = current.parent
        if parent == current:
            break

        current = parent

    return None


def _enum_field(path: Path, data: dict[str, Any], key: str, enum_type) -> Any:
    value = data[key]
    if not isinstance(value, str):
        raise ConfigError(f"Error in config file '{path}': Field '{key}' must be a string")
    try:
        if enum_type is LogLevel:
            return LogLevel.from_name(value)
        return enum_type(value.strip().lower())
    except ValueError:
        if enum_type is LogLevel:
            valid = [level.name.lower() for level in LogLevel]
        else:
            valid = [member.value for member in enum_type]
        raise ConfigError(
            f"Error in config file '{path}': Field '{key}' must be one of: {', '.join(valid)}"
        )


def parse_config_file(path: Path) -> dict[str, Any]:
    """
    Parse a buildtree configuration file.

    Empty files and files without a 'build' section are valid and yield no
    settings.

    Args:
        path: Path to the configuration file

    Returns:
        The settings the file defines, keyed by BuildConfig field name

    Raises:
        ConfigError: If the config file is invalid (malformed YAML, wrong types,
                     unknown keys)

    Config File Example:

        ```yaml
        build:
          incremental_dir: generated/incremental
          freshness: mtime
          shell: /bin/bash
          shell_args: [-euo, pipefail, -c]
          task_output: all
          log_level: info
        ```
    """
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            content = f.read()
    except (IOError, OSError) as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    if not content.strip():
        return {}

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(f"Error in config file '{path}': top level must be a dictionary")

    if "build" not in data:
        return {}

    build_data = data["build"]
    if build_data is None:
        return {}
    if not isinstance(build_data, dict):
        raise ConfigError(f"Error in config file '{path}': 'build' must be a dictionary")

    known = {"incremental_dir", "freshness", "shell", "shell_args", "task_output", "log_level"}
    unknown = sorted(set(build_data) - known)
    if unknown:
        raise ConfigError(
            f"Error in config file '{path}': Unknown field(s): {', '.join(unknown)}"
        )

    settings: dict[str, Any] = {}

    for key in ("incremental_dir", "shell"):
        if key in build_data:
            if not isinstance(build_data[key], str):
                raise ConfigError(f"Error in config file '{path}': Field '{key}' must be a string")
            settings[key] = build_data[key]

    if "incremental_dir" in settings and not settings["incremental_dir"].strip():
        raise ConfigError(f"Error in config file '{path}': Field 'incremental_dir' must not be empty")

    if "shell_args" in build_data:
        shell_args = build_data["shell_args"]
        if isinstance(shell_args, str):
            shell_args = [shell_args]
        if not isinstance(shell_args, list) or not all(isinstance(a, str) for a in shell_args):
            raise ConfigError(
                f"Error in config file '{path}': Field 'shell_args' must be a list of strings"
            )
        settings["shell_args"] = shell_args

    if "freshness" in build_data:
        settings["freshness"] = _enum_field(path, build_data, "freshness", FreshnessPolicyTypes)
    if "task_output" in build_data:
        settings["task_output"] = _enum_field(path, build_data, "task_output", TaskOutputTypes)
    if "log_level" in build_data:
        settings["log_level"] = _enum_field(path, build_data, "log_level", LogLevel)

    return settings


def load_config(start_dir: Path) -> BuildConfig:
    """
    Build the effective configuration.

    Precedence, lowest first: built-in defaults, machine config, user config,
    project config, then the BUILDTREE_INCREMENTAL_DIR environment variable.

    Raises:
        ConfigError: If any config file is invalid
    """
    config = BuildConfig()
    candidates = [get_machine_config_path(), get_user_config_path()]
    project_config = find_project_config(start_dir)
    if project_config is not None:
        candidates.append(project_config)

    sources: list[Path] = []
    for path in candidates:
        settings = parse_config_file(path)
        if settings:
            config = replace(config, **settings)
            sources.append(path)

    incremental_dir = os.environ.get(INCREMENTAL_DIR_ENV)
    if incremental_dir:
        config = replace(config, incremental_dir=incremental_dir)

    return replace(config, sources=sources)
