"""
Utilities for running external commands (git, composer, npm)

Every helper returns a CommandResult instead of raising, so callers decide
whether a non-zero exit is fatal. Commands are argv lists and never go
through a shell.
"""

import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Any, NamedTuple, Optional, Union

# Echo every command before it runs (set by the CLI --verbose flag)
VERBOSE = False


class CommandResult(NamedTuple):
    """
    Outcome of an external command
    """
    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def output(self) -> str:
        """
        The most useful text to show a user: stderr when there is one
        """
        return (self.stderr or self.stdout).strip()


def set_verbose(verbose: bool):
    global VERBOSE
    VERBOSE = verbose


def format_command(cmd: List[str]) -> str:
    return " ".join(shlex.quote(str(arg)) for arg in cmd)


def prepare_command(parts: List[Union[str, Dict[str, Any]]]) -> List[str]:
    """
    Builds an argv list from strings and option mappings

    Strings are split like a shell would. In a mapping, a None value
    produces a bare flag (--skip-email), anything else --name=value.

    Args:
        parts: e.g. ["core install", {"skip-email": None, "url": "https://x"}]

    Returns:
        List[str]: The argv list
    """
    if isinstance(parts, (str, dict)):
        parts = [parts]

    cmd: List[str] = []
    for part in parts:
        if isinstance(part, str):
            cmd.extend(shlex.split(part))
            continue
        for name, value in part.items():
            if value is None:
                cmd.append(f"--{name}")
            else:
                cmd.append(f"--{name}={value}")
    return cmd


def run_command(cmd: List[str], cwd: Optional[Union[str, Path]] = None,
                input_text: Optional[str] = None,
                env: Optional[Dict[str, str]] = None) -> CommandResult:
    """
    Executes a command and captures its output

    Args:
        cmd: Command and arguments
        cwd: Working directory
        input_text: Text fed to the command's stdin
        env: Extra environment variables

    Returns:
        CommandResult: Exit code, standard output, standard error
    """
    if VERBOSE:
        print(f"🔄 Executing: {format_command(cmd)}")

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            input=input_text,
            capture_output=True,
            text=True,
            check=False,
            env=full_env,
        )
    except FileNotFoundError:
        return CommandResult(127, "", f"{cmd[0]}: command not found")
    except OSError as e:
        return CommandResult(126, "", f"Error executing {cmd[0]}: {e}")

    return CommandResult(result.returncode, result.stdout, result.stderr)


def run_streaming(cmd: List[str], cwd: Optional[Union[str, Path]] = None) -> int:
    """
    Executes a command showing its output in real time

    Returns:
        int: The exit code
    """
    print(f"🔄 Executing: {format_command(cmd)}")

    try:
        process = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError:
        print(f"❌ {cmd[0]}: command not found")
        return 127

    for line in process.stdout:
        print(line.rstrip())

    return process.wait()


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def git_command(args: Union[str, List[str]], working_dir: Optional[Union[str, Path]] = None) -> CommandResult:
    """
    Runs git, optionally against another working tree (git -C DIR)
    """
    cmd = ["git"]
    if working_dir:
        cmd.extend(["-C", str(working_dir)])
    cmd.extend(prepare_command(args) if isinstance(args, str) else args)
    return run_command(cmd)


def composer_command(args: Union[str, List[str]], working_dir: Optional[Union[str, Path]] = None,
                     quiet: bool = True) -> CommandResult:
    """
    Runs composer, optionally against another project (--working-dir)
    """
    cmd = ["composer"]
    cmd.extend(prepare_command(args) if isinstance(args, str) else args)
    if working_dir:
        cmd.append(f"--working-dir={working_dir}")
    if quiet:
        cmd.append("--quiet")
    return run_command(cmd)


def npm_command(args: Union[str, List[str]], prefix: Optional[Union[str, Path]] = None) -> CommandResult:
    cmd = ["npm"]
    cmd.extend(prepare_command(args) if isinstance(args, str) else args)
    if prefix:
        cmd.extend(["--prefix", str(prefix)])
    return run_command(cmd)


def repo_is_clean(working_dir: Optional[Union[str, Path]] = None) -> bool:
    """
    Checks that the git working tree has no uncommitted changes
    """
    result = git_command(["status", "--porcelain"], working_dir)
    return result.ok and not result.stdout.strip()


def has_package(package: str, working_dir: Optional[Union[str, Path]] = None) -> bool:
    """
    Checks whether a composer package is installed in the project
    """
    return composer_command(["show", package], working_dir).ok
