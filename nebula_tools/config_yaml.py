"""
YAML-based configuration module for nebula_tools

This module is responsible for loading and resolving configuration values.
A value is looked up, in order of precedence, in:

1. the process environment
2. the project's .env file (the values Nebula defines its constants from)
3. the YAML configuration (project nebula-tools.yml merged over the user
   configuration and the built-in defaults)
"""

import os
import copy
from pathlib import Path
from typing import Dict, List, Any, Optional

import yaml
from dotenv import dotenv_values

PROJECT_CONFIG_FILENAME = "nebula-tools.yml"
USER_CONFIG_FILE = Path("~/.config/nebula-tools/config.yml")

# Files that mark the root of a Nebula project
PROJECT_MARKERS = [PROJECT_CONFIG_FILENAME, "composer.json", ".env"]

DEFAULT_CONFIG: Dict[str, Any] = {
    "NEBULA_SSH_PORT": "22",
    "NEBULA_TOOLS_REPOSITORY": "https://github.com/eighteen73/nebula-tools.git",
    "NEBULA_SYNC_ACTIVATE_PLUGINS": [],
    "NEBULA_SYNC_DEACTIVATE_PLUGINS": [],
}

# Nested YAML keys that can be used instead of the flat names
NESTED_KEYS = {
    ("ssh", "host"): "NEBULA_SSH_HOST",
    ("ssh", "user"): "NEBULA_SSH_USER",
    ("ssh", "port"): "NEBULA_SSH_PORT",
    ("ssh", "path"): "NEBULA_SSH_PATH",
    ("sync", "activate_plugins"): "NEBULA_SYNC_ACTIVATE_PLUGINS",
    ("sync", "deactivate_plugins"): "NEBULA_SYNC_DEACTIVATE_PLUGINS",
    ("version", "repository"): "NEBULA_TOOLS_REPOSITORY",
    ("version", "skip_check"): "NEBULA_SKIP_VERSION_CHECK",
}

TRUE_VALUES = ("1", "true", "yes", "on")


class YAMLConfig:
    """
    Class for resolving configuration from the environment, .env and YAML files
    """

    def __init__(self, project_root: Optional[Path] = None, verbose: bool = False):
        """
        Initializes configuration

        Args:
            project_root: Project root path. If None, it is automatically detected.
            verbose: Enable detailed mode
        """
        self.verbose = verbose
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.env_values: Dict[str, str] = {}

        if project_root is None:
            self.project_root = self._detect_project_root()
        else:
            self.project_root = Path(project_root)

        if self.verbose:
            print(f"Detected project directory: {self.project_root}")

        self.load_config()

    def _detect_project_root(self) -> Path:
        """
        Searches up the directory tree until finding a directory that
        contains one of the project markers.

        Returns:
            Path: Path to the project root
        """
        current_dir = Path.cwd()

        while current_dir != current_dir.parent:
            if any((current_dir / marker).exists() for marker in PROJECT_MARKERS):
                return current_dir
            current_dir = current_dir.parent

        return Path.cwd()

    def load_config(self):
        """
        Loads the YAML configuration files and the project .env
        """
        user_config_file = USER_CONFIG_FILE.expanduser()
        if user_config_file.exists():
            self._load_yaml_file(user_config_file)

        project_config_file = self.project_root / PROJECT_CONFIG_FILENAME
        if project_config_file.exists():
            self._load_yaml_file(project_config_file)

        env_file = self.project_root / ".env"
        if env_file.exists():
            if self.verbose:
                print(f"📝 Reading constants from {env_file}")
            self.env_values = {
                key: value for key, value in dotenv_values(env_file).items() if value is not None
            }

    def _load_yaml_file(self, file_path: Path):
        """
        Loads a YAML file and merges it into the configuration

        Args:
            file_path: Path to the YAML file
        """
        if self.verbose:
            print(f"📝 Loading configuration from {file_path}")

        try:
            with open(file_path, 'r') as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}") from e

        if not isinstance(yaml_data, dict):
            print(f"⚠️ Ignoring {file_path}: the top level must be a mapping")
            return

        self._update_dict_recursive(self.config, self._flatten_nested(yaml_data))

    def _flatten_nested(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Translates nested keys (ssh.host) into their flat names (NEBULA_SSH_HOST)
        """
        flat = {}
        for key, value in data.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    name = NESTED_KEYS.get((key, sub_key))
                    if name:
                        flat[name] = sub_value
                if not any(section == key for section, _ in NESTED_KEYS):
                    flat[key] = value
            else:
                flat[key] = value
        return flat

    def _update_dict_recursive(self, target: Dict, source: Dict):
        """
        Updates a dictionary recursively

        Args:
            target: Destination dictionary
            source: Dictionary with new values
        """
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._update_dict_recursive(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    def lookup(self, name: str, default: Any = None) -> Any:
        """
        Resolves a setting from the environment, the project .env or the YAML
        configuration, in that order. Empty strings count as unset.

        Args:
            name: Setting name, e.g. NEBULA_SSH_HOST
            default: Value returned when no layer defines the setting

        Returns:
            The resolved value or the default value
        """
        value = os.environ.get(name)
        if value not in (None, ""):
            return value

        value = self.env_values.get(name)
        if value not in (None, ""):
            return value

        value = self.config.get(name)
        if value not in (None, "", []):
            return value

        return default

    def lookup_list(self, name: str) -> List[str]:
        """
        Resolves a list setting. Strings are split on commas; YAML lists are
        used as they are. Blank and duplicate entries are dropped.
        """
        value = self.lookup(name, default=[])
        if isinstance(value, str):
            items = value.split(",")
        elif isinstance(value, (list, tuple)):
            items = [str(item) for item in value]
        else:
            items = [str(value)]

        result = []
        for item in items:
            item = item.strip()
            if item and item not in result:
                result.append(item)
        return result

    def lookup_bool(self, name: str, default: bool = False) -> bool:
        """
        Resolves a boolean setting
        """
        value = self.lookup(name)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUE_VALUES

    def get_strict(self, name: str) -> Any:
        """
        Resolves a setting following the fail-fast principle

        Raises:
            ValueError: If no layer defines the setting
        """
        value = self.lookup(name)
        if value is None:
            raise ValueError(
                f"'{name}' is not configured. Set it in the environment, "
                f"the project .env or {PROJECT_CONFIG_FILENAME}"
            )
        return value

    def display(self):
        """
        Displays the resolved configuration with secrets hidden
        """
        names = sorted(set(self.config.keys()) | {name for name in NESTED_KEYS.values()})

        print("\n🔧 Loaded configuration:")
        print(f"   - project root: {self.project_root}")
        for name in names:
            value = self.lookup(name)
            if value is None:
                display_value = "Not configured"
            elif any(secret in name.lower() for secret in ("pass", "password", "key")):
                display_value = "***********"
            else:
                display_value = value
            print(f"   - {name}: {display_value}")
        print()


# Global configuration instance
_config_instance: Optional[YAMLConfig] = None


def get_yaml_config(verbose: bool = False) -> YAMLConfig:
    """
    Gets the unique instance of the configuration

    Args:
        verbose: If True, shows additional information

    Returns:
        YAMLConfig: Configuration instance
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = YAMLConfig(verbose=verbose)

    return _config_instance


def reset_yaml_config():
    """
    Drops the global configuration instance so the next call reloads it
    """
    global _config_instance
    _config_instance = None
