"""
Utilities for SSH operations with remote servers
"""

import os
import re
import shlex
import subprocess
from typing import Optional, List, Tuple

import paramiko

from nebula_tools.utils.shell import CommandResult, format_command, run_command

# ssh exits with 255 when the connection itself failed
SSH_CONNECTION_ERROR = 255


def ssh_destination(host: str, user: Optional[str] = None) -> str:
    return f"{user}@{host}" if user else host


def check_reachable(host: str, user: Optional[str] = None, port: int = 22) -> CommandResult:
    """
    Runs a no-op command over ssh to check that the server can be reached

    Returns:
        CommandResult: Exit code 255 means the host is unreachable
    """
    return run_command([
        "ssh",
        "-p", str(port),
        "-o", "BatchMode=yes",
        "-o", "ConnectTimeout=10",
        ssh_destination(host, user),
        "exit",
    ])


class SSHClient:
    """
    SSH Client to execute commands on remote servers
    """

    def __init__(self, host: str, user: Optional[str] = None, port: int = 22):
        """
        Initializes the SSH client

        Args:
            host: SSH host name or alias from ~/.ssh/config
            user: SSH user (overrides ~/.ssh/config)
            port: SSH port
        """
        self.host = host
        self.user = user
        self.port = int(port)
        self.client = None

    def connect(self) -> bool:
        """
        Establishes an SSH connection with the remote server

        Returns:
            bool: True if the connection was successful, False otherwise
        """
        hostname = self.host
        username = self.user
        port = self.port
        identity_file = None

        # Honour ~/.ssh/config for aliases and keys
        user_config_file = os.path.expanduser("~/.ssh/config")
        if os.path.exists(user_config_file):
            ssh_config = paramiko.SSHConfig()
            with open(user_config_file) as f:
                ssh_config.parse(f)
            host_config = ssh_config.lookup(self.host)
            hostname = host_config.get('hostname', self.host)
            username = username or host_config.get('user')
            if port == 22 and 'port' in host_config:
                port = int(host_config['port'])
            identity_files = host_config.get('identityfile')
            if identity_files:
                identity_file = os.path.expanduser(identity_files[0])

        try:
            self.client = paramiko.SSHClient()
            self.client.load_system_host_keys()
            self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            self.client.connect(
                hostname=hostname,
                port=port,
                username=username or os.getenv('USER'),
                key_filename=identity_file,
            )
        except (paramiko.SSHException, OSError) as e:
            print(f"❌ Error connecting to {self.host}: {e}")
            self.client = None
            return False

        return True

    def disconnect(self):
        """
        Closes the SSH connection
        """
        if self.client:
            self.client.close()
            self.client = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def execute(self, command: str) -> CommandResult:
        """
        Executes a command on the remote server

        Args:
            command: Command to execute

        Returns:
            CommandResult: Exit code, standard output, error output
        """
        if not self.client:
            return CommandResult(1, "", "No SSH connection established")

        try:
            _, stdout, stderr = self.client.exec_command(command)
            stdout_str = stdout.read().decode('utf-8', errors='replace')
            stderr_str = stderr.read().decode('utf-8', errors='replace')
            exit_code = stdout.channel.recv_exit_status()
        except paramiko.SSHException as e:
            return CommandResult(1, "", str(e))

        return CommandResult(exit_code, stdout_str, stderr_str)

    def open_stream(self, command: str) -> Tuple[paramiko.ChannelFile, paramiko.ChannelFile]:
        """
        Starts a remote command and returns its stdout and stderr unread, so
        large outputs can be consumed in chunks

        Raises:
            paramiko.SSHException: If there is no connection
        """
        if not self.client:
            raise paramiko.SSHException("No SSH connection established")

        _, stdout, stderr = self.client.exec_command(command)
        return stdout, stderr


def run_rsync(
    source: str,
    dest: str,
    port: int = 22,
    options: Optional[List[str]] = None,
    progress: bool = True,
) -> bool:
    """
    Executes rsync to mirror a remote directory locally

    Args:
        source: Source of the synchronization (user@host:path/)
        dest: Local destination
        port: SSH port
        options: rsync options (defaults to -az)
        progress: Show a progress indicator if rsync supports one

    Returns:
        bool: True if the synchronization was successful, False otherwise
    """
    if options is None:
        options = ["-az"]

    cmd = ["rsync", "-e", f"ssh -p {int(port)}"]
    cmd.extend(options)
    if progress:
        cmd.append(_rsync_progress_option())
    cmd.append(source)
    cmd.append(dest)

    print(f"🔄 Executing: {format_command(cmd)}")

    try:
        return_code = subprocess.call(cmd)
    except FileNotFoundError:
        print("❌ rsync is not installed or not in the PATH")
        return False

    if return_code == 0:
        print("✅ Synchronization completed successfully")
        return True

    print(f"❌ Error in synchronization (code {return_code})")
    return False


def _rsync_progress_option() -> str:
    """
    rsync 3.1+ has a whole-transfer progress line; older versions (and
    openrsync on macOS) only do per-file progress
    """
    result = run_command(["rsync", "--version"])
    match = re.search(r"version\s+(\d+)\.(\d+)", result.stdout)
    if match and (int(match.group(1)), int(match.group(2))) >= (3, 1):
        return "--info=progress2"
    return "--progress"


def remote_shell_command(path: str, command: str) -> str:
    """
    Builds a remote command line that runs inside a directory
    """
    return f"cd {shlex.quote(path)} && {command}"
