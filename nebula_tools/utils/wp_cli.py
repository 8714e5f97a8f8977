"""
Utilities for interacting with WP-CLI from Python

All WP-CLI calls go through run_wp_cli() so that the binary and the
WordPress path (--path) are handled in one place.
"""

import json
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Union

from nebula_tools.utils.shell import CommandResult, run_command

# Locations probed for the wp binary, in order of preference
WP_CLI_CANDIDATES = [
    "wp",
    "/usr/local/bin/wp",
    "/usr/bin/wp",
    "~/bin/wp",
    "~/.local/bin/wp",
    "/opt/homebrew/bin/wp",
]

ACTIVE_STATUSES = ("active", "active-network")


def find_local_wp_binary() -> Optional[str]:
    """
    Locates the local WP-CLI binary by probing the candidate list

    Returns:
        Optional[str]: Path of the binary or None if none is found
    """
    for candidate in WP_CLI_CANDIDATES:
        if "/" not in candidate:
            found = shutil.which(candidate)
            if found:
                return found
            continue

        path = os.path.expanduser(candidate)
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path

    return None


def get_wp_path(project_root: Union[str, Path]) -> Optional[Path]:
    """
    Gets the WordPress core directory of a Nebula project (web/wp)

    Returns:
        Optional[Path]: The directory, or None when the project isn't laid out
        that way and WP-CLI should find WordPress itself
    """
    wp_path = Path(project_root) / "web" / "wp"
    if wp_path.is_dir():
        return wp_path
    return None


def run_wp_cli(command: List[str], path: Optional[Union[str, Path]] = None,
               wp_binary: Optional[str] = None, input_text: Optional[str] = None) -> CommandResult:
    """
    Executes a WP-CLI command

    Args:
        command: List with the command and its arguments
        path: WordPress directory passed as --path (optional)
        wp_binary: WP-CLI binary (defaults to "wp")
        input_text: Text fed to stdin

    Returns:
        CommandResult: Exit code, standard output, standard error
    """
    cmd = [wp_binary or "wp"] + list(command)
    if path:
        cmd.append(f"--path={path}")
    return run_command(cmd, input_text=input_text)


def get_option(name: str, path: Optional[Union[str, Path]] = None,
               wp_binary: Optional[str] = None) -> Optional[str]:
    result = run_wp_cli(["option", "get", name], path, wp_binary)
    if not result.ok:
        return None
    return result.stdout.strip()


def update_option(name: str, value: str, path: Optional[Union[str, Path]] = None,
                  wp_binary: Optional[str] = None) -> bool:
    """
    Updates a WordPress option

    Returns:
        bool: True if it was updated correctly, False otherwise
    """
    result = run_wp_cli(["option", "update", name, value], path, wp_binary)
    if not result.ok:
        print(f"⚠️ Error updating option {name}: {result.output}")
        return False
    return True


def add_option(name: str, value: str, autoload: bool = True, path: Optional[Union[str, Path]] = None,
               wp_binary: Optional[str] = None, value_format: Optional[str] = None) -> bool:
    """
    Adds a WordPress option, optionally as an autoload option
    """
    cmd = ["option", "add", name, value]
    if value_format:
        cmd.append(f"--format={value_format}")
    if autoload:
        cmd.append("--autoload=yes")

    result = run_wp_cli(cmd, path, wp_binary)
    if not result.ok:
        print(f"⚠️ Error adding option {name}: {result.output}")
        return False
    return True


def get_plugin_statuses(path: Optional[Union[str, Path]] = None,
                        wp_binary: Optional[str] = None) -> Dict[str, str]:
    """
    Gets the status of every installed plugin

    Returns:
        Dict[str, str]: Plugin slug -> status ("active", "inactive", ...)
    """
    result = run_wp_cli(["plugin", "list", "--fields=name,status", "--format=json"], path, wp_binary)
    if not result.ok:
        print(f"⚠️ Error listing plugins: {result.output}")
        return {}

    try:
        plugins = json.loads(result.stdout or "[]")
    except json.JSONDecodeError:
        print("⚠️ Error parsing the plugin list")
        return {}

    return {plugin.get("name", "").lower(): plugin.get("status", "") for plugin in plugins}


def get_plugin_status(plugin_slug: str, path: Optional[Union[str, Path]] = None,
                      wp_binary: Optional[str] = None) -> Optional[str]:
    """
    Gets the status of a plugin

    Returns:
        Optional[str]: "active", "inactive", etc. or None if not installed
    """
    return get_plugin_statuses(path, wp_binary).get(plugin_slug.lower())


def is_plugin_active(plugin_slug: str, path: Optional[Union[str, Path]] = None,
                     wp_binary: Optional[str] = None) -> bool:
    return get_plugin_status(plugin_slug, path, wp_binary) in ACTIVE_STATUSES


def activate_plugin(plugin_slug: str, path: Optional[Union[str, Path]] = None,
                    wp_binary: Optional[str] = None) -> bool:
    """
    Activates a WordPress plugin

    A plugin that is already active or isn't installed is skipped with a
    warning; neither counts as a failure.

    Returns:
        bool: False only if WP-CLI failed to activate an installed plugin
    """
    status = get_plugin_status(plugin_slug, path, wp_binary)

    if status is None:
        print(f"⚠️ Plugin '{plugin_slug}' is not installed, skipping activation")
        return True

    if status in ACTIVE_STATUSES:
        print(f"⚠️ Plugin '{plugin_slug}' is already active")
        return True

    result = run_wp_cli(["plugin", "activate", plugin_slug], path, wp_binary)
    if not result.ok:
        print(f"❌ Error activating plugin '{plugin_slug}': {result.output}")
        return False

    print(f"✅ Plugin '{plugin_slug}' activated")
    return True


def deactivate_plugin(plugin_slug: str, path: Optional[Union[str, Path]] = None,
                      wp_binary: Optional[str] = None) -> bool:
    """
    Deactivates a WordPress plugin

    A plugin that is already inactive or isn't installed is skipped with a
    warning; neither counts as a failure.

    Returns:
        bool: False only if WP-CLI failed to deactivate an active plugin
    """
    status = get_plugin_status(plugin_slug, path, wp_binary)

    if status is None:
        print(f"⚠️ Plugin '{plugin_slug}' is not installed, skipping deactivation")
        return True

    if status not in ACTIVE_STATUSES:
        print(f"⚠️ Plugin '{plugin_slug}' is already inactive")
        return True

    result = run_wp_cli(["plugin", "deactivate", plugin_slug], path, wp_binary)
    if not result.ok:
        print(f"❌ Error deactivating plugin '{plugin_slug}': {result.output}")
        return False

    print(f"✅ Plugin '{plugin_slug}' deactivated")
    return True


def search_replace(old: str, new: str, path: Optional[Union[str, Path]] = None,
                   wp_binary: Optional[str] = None) -> CommandResult:
    """
    Replaces a string across every table, leaving post GUIDs untouched
    """
    return run_wp_cli(
        ["search-replace", old, new, "--all-tables", "--skip-columns=guid"],
        path,
        wp_binary,
    )


def flush_caches(path: Optional[Union[str, Path]] = None, wp_binary: Optional[str] = None) -> bool:
    """
    Flushes rewrite rules, deletes all transients and flushes the object cache

    Returns:
        bool: True if every step succeeded
    """
    steps = [
        (["rewrite", "flush"], "Rewrite rules flushed"),
        (["transient", "delete", "--all"], "Transients deleted"),
        (["cache", "flush"], "Object cache flushed"),
    ]

    success = True
    for command, message in steps:
        result = run_wp_cli(command, path, wp_binary)
        if result.ok:
            print(f"✅ {message}")
        else:
            print(f"⚠️ Error running 'wp {' '.join(command)}': {result.output}")
            success = False

    return success
