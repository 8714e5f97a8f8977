"""
Utilities for filesystem operations and project config files
"""

import os
import re
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values, set_key

CONFIG_INCLUDE_PATTERN = re.compile(r"^[a-z0-9_\-]+\.php$")


def ensure_dir_exists(directory: Path) -> None:
    """
    Ensures that a directory exists, creating it if necessary

    Args:
        directory: Directory path
    """
    directory.mkdir(parents=True, exist_ok=True)


def prepare_install_directory(directory: Path) -> Optional[str]:
    """
    Makes sure a directory exists and is writable by the current user

    Returns:
        Optional[str]: An error message, or None if the directory is usable
    """
    if not directory.is_dir():
        parent = directory.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        if not os.access(parent, os.W_OK):
            return f"Insufficient permission to create directory '{directory}'."

        print(f"ℹ️ Creating directory '{directory}'.")
        try:
            ensure_dir_exists(directory)
        except OSError as e:
            return f"Failed to create directory '{directory}': {e}."

    if not os.access(directory, os.W_OK):
        return f"'{directory}' is not writable by current user."

    if any(directory.iterdir()):
        return f"'{directory}' is not empty."

    return None


def read_env_file(env_file: Path) -> Dict[str, str]:
    """
    Reads a .env file without exporting anything into the process environment
    """
    if not env_file.exists():
        return {}
    return {key: value for key, value in dotenv_values(env_file).items() if value is not None}


def update_env_file(env_file: Path, values: Dict[str, str]) -> None:
    """
    Sets keys in a .env file, replacing existing values and appending new ones
    """
    if not env_file.exists():
        env_file.touch()
    for key, value in values.items():
        set_key(str(env_file), key, value, quote_mode="never")


def insert_after_marker(file_path: Path, marker: str, block: str, guard: Optional[str] = None) -> bool:
    """
    Inserts a block of text after the first line containing a marker

    Args:
        file_path: File to edit
        marker: Substring identifying the line to insert after
        block: Text to insert
        guard: If this substring is already in the file nothing is changed
               (defaults to the first line of the block)

    Returns:
        bool: True if the file was changed
    """
    if guard is None:
        guard = block.strip().splitlines()[0]

    content = file_path.read_text()
    if guard in content:
        return False

    lines = content.splitlines(keepends=True)
    for index, line in enumerate(lines):
        if marker in line:
            if not line.endswith("\n"):
                lines[index] = line + "\n"
            insertion = block if block.endswith("\n") else block + "\n"
            lines.insert(index + 1, insertion)
            file_path.write_text("".join(lines))
            return True

    return False


def prepend_block(file_path: Path, block: str, guard: Optional[str] = None) -> bool:
    """
    Writes a block of text at the top of a file, creating the file if needed

    Returns:
        bool: True if the file was changed
    """
    if guard is None:
        guard = block.strip().splitlines()[0]

    content = file_path.read_text() if file_path.exists() else ""
    if guard in content:
        return False

    file_path.write_text(block.rstrip("\n") + "\n\n" + content)
    return True


def append_line_if_missing(file_path: Path, line: str) -> bool:
    """
    Appends a line to a file (e.g. .gitignore) unless an identical line exists

    Returns:
        bool: True if the file was changed
    """
    content = file_path.read_text() if file_path.exists() else ""
    if line in (existing.strip() for existing in content.splitlines()):
        return False

    if content and not content.endswith("\n"):
        content += "\n"
    file_path.write_text(content + line + "\n")
    return True


def write_config_include(project_root: Path, filename: str, content: str) -> bool:
    """
    Writes a PHP file into the project's config/includes directory

    Args:
        project_root: Nebula project root
        filename: File name, lowercase letters, digits, _ and - only, .php extension
        content: PHP statements (without the opening tag)

    Returns:
        bool: True if the file was written
    """
    if not CONFIG_INCLUDE_PATTERN.match(filename):
        print(f"⚠️ Invalid config file name: {filename}")
        return False

    includes_dir = project_root / "config" / "includes"
    ensure_dir_exists(includes_dir)

    full_content = "<?php\n"
    full_content += "namespace Eighteen73\\Nebula;\n"
    full_content += "\n"
    full_content += "use Roots\\WPConfig\\Config;\n"
    full_content += "\n"
    full_content += content.strip() + "\n"

    (includes_dir / filename).write_text(full_content)
    return True
