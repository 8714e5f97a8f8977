"""
Environment synchronization module

This module copies a remote environment's database and/or uploads into the
local environment over SSH, rewrites the home URL and reconciles plugins.
"""

import shlex
import subprocess
import tempfile
import zlib
from pathlib import Path
from typing import List, Optional

import paramiko
from tqdm import tqdm

from nebula_tools.config_yaml import YAMLConfig, get_yaml_config
from nebula_tools.utils.filesystem import ensure_dir_exists
from nebula_tools.utils.shell import format_command
from nebula_tools.utils.ssh import (
    SSH_CONNECTION_ERROR,
    SSHClient,
    check_reachable,
    remote_shell_command,
    run_rsync,
    ssh_destination,
)
from nebula_tools.utils.wp_cli import (
    WP_CLI_CANDIDATES,
    activate_plugin,
    deactivate_plugin,
    find_local_wp_binary,
    flush_caches,
    get_option,
    get_wp_path,
    is_plugin_active,
    run_wp_cli,
    search_replace,
)

# Environments a sync may overwrite
ALLOWED_ENVIRONMENTS = ["local", "development", "staging"]

# Payment gateway forced into test mode after a database fetch
STRIPE_PLUGIN = "woocommerce-gateway-stripe"
STRIPE_SETTINGS_OPTION = "woocommerce_stripe_settings"

UPLOADS_DIR = "web/app/uploads"

# Only MySQL exposes this variable; MariaDB's mysqldump rejects the flag
GTID_VARIABLE = "gtid_purged"
GTID_EXPORT_FLAG = "--set-gtid-purged=OFF"

CHUNK_SIZE = 64 * 1024


class EnvironmentSynchronizer:
    """
    Class to synchronize a remote environment into the local one
    """

    def __init__(self, config: Optional[YAMLConfig] = None, verbose: bool = False):
        """
        Initializes the synchronizer

        Args:
            config: Configuration to use (defaults to the global instance)
            verbose: If True, displays detailed messages
        """
        self.verbose = verbose
        self.config = config or get_yaml_config(verbose=verbose)
        self.project_root = Path(self.config.project_root)
        self.wp_path = get_wp_path(self.project_root)

        self.ssh_host: Optional[str] = None
        self.ssh_user: Optional[str] = None
        self.ssh_path: Optional[str] = None
        self.ssh_port = 22

        self.local_wp: Optional[str] = None
        self.remote_wp: Optional[str] = None
        self.local_home: Optional[str] = None

        self.activate_plugins = self.config.lookup_list("NEBULA_SYNC_ACTIVATE_PLUGINS")
        self.deactivate_plugins = self.config.lookup_list("NEBULA_SYNC_DEACTIVATE_PLUGINS")

    # Preconditions

    def detect_environment(self) -> Optional[str]:
        """
        Gets the local environment type from the configuration, falling back
        to asking WordPress

        Returns:
            Optional[str]: e.g. "development", or None if it can't be determined
        """
        environment = self.config.lookup("WP_ENVIRONMENT_TYPE") or self.config.lookup("WP_ENV")
        if environment:
            return str(environment).strip().lower()

        result = run_wp_cli(
            ["eval", "echo wp_get_environment_type();"],
            self.wp_path,
            self.local_wp,
        )
        if result.ok and result.stdout.strip():
            return result.stdout.strip().lower()
        return None

    def check_environment(self) -> bool:
        environment = self.detect_environment()
        if environment not in ALLOWED_ENVIRONMENTS:
            print(f"❌ Error: Sync cannot run in the '{environment or 'unknown'}' environment")
            print(f"   Allowed environments: {', '.join(ALLOWED_ENVIRONMENTS)}")
            return False

        if self.verbose:
            print(f"ℹ️ Environment: {environment}")
        return True

    def load_connection_settings(self) -> bool:
        """
        Resolves the SSH settings, failing if any required one is missing
        """
        self.ssh_host = self.config.lookup("NEBULA_SSH_HOST")
        self.ssh_user = self.config.lookup("NEBULA_SSH_USER")
        self.ssh_path = self.config.lookup("NEBULA_SSH_PATH")

        missing = [
            name for name, value in (
                ("NEBULA_SSH_HOST", self.ssh_host),
                ("NEBULA_SSH_USER", self.ssh_user),
                ("NEBULA_SSH_PATH", self.ssh_path),
            ) if not value
        ]
        if missing:
            print("❌ Error: Missing connection settings:")
            for name in missing:
                print(f"   - {name}")
            print("   Set them in the environment, the project .env or nebula-tools.yml")
            return False

        port = self.config.lookup("NEBULA_SSH_PORT", 22)
        try:
            self.ssh_port = int(port)
        except (TypeError, ValueError):
            print(f"❌ Error: NEBULA_SSH_PORT must be a number, got '{port}'")
            return False

        self.ssh_path = str(self.ssh_path).rstrip("/") or "/"
        return True

    def check_connection(self) -> bool:
        """
        Verifies the server answers over SSH
        """
        destination = ssh_destination(self.ssh_host, self.ssh_user)
        print(f"🔄 Checking connection to {destination} (port {self.ssh_port})...")

        result = check_reachable(self.ssh_host, self.ssh_user, self.ssh_port)
        if result.code == SSH_CONNECTION_ERROR:
            print(f"❌ Error: Could not connect to {destination}")
            if result.stderr.strip():
                print(f"   {result.stderr.strip()}")
            return False

        if not result.ok:
            print(f"⚠️ The connection test returned exit code {result.code}: {result.output}")
        else:
            print("✅ Connection verified")
        return True

    def locate_local_wp_cli(self) -> bool:
        self.local_wp = find_local_wp_binary()
        if not self.local_wp:
            print("❌ Error: WP-CLI could not be found locally")
            print(f"   Looked for: {', '.join(WP_CLI_CANDIDATES)}")
            return False
        return True

    def locate_remote_wp_cli(self, ssh: SSHClient) -> bool:
        """
        Probes the remote server for a WP-CLI binary
        """
        for candidate in WP_CLI_CANDIDATES:
            if "/" in candidate:
                # Left unquoted so the remote shell expands ~
                probe = f"test -x {candidate} && echo {candidate}"
            else:
                probe = f"command -v {candidate}"

            result = ssh.execute(probe)
            if result.ok and result.stdout.strip():
                self.remote_wp = result.stdout.strip().splitlines()[0]
                if self.verbose:
                    print(f"ℹ️ Remote WP-CLI: {self.remote_wp}")
                return True

        print("❌ Error: WP-CLI could not be found on the remote server")
        return False

    def _remote_wp(self, args: str) -> str:
        return remote_shell_command(self.ssh_path, f"{self.remote_wp} {args}")

    # Operations

    def database_export_flags(self, ssh: SSHClient) -> List[str]:
        """
        Decides the extra flags for the remote database export
        """
        query = shlex.quote(f"SHOW VARIABLES LIKE '{GTID_VARIABLE}'")
        result = ssh.execute(self._remote_wp(f"db query {query}"))
        if result.ok and GTID_VARIABLE in result.stdout:
            return [GTID_EXPORT_FLAG]
        return []

    def fetch_database(self, ssh: SSHClient) -> bool:
        """
        Streams the remote database into the local one

        The remote export is gzipped on the server, read in chunks over the
        SSH channel, decompressed here and written straight into the local
        import. Nothing is written to disk.
        """
        print("📥 Fetching the remote database...")

        flags = " ".join(self.database_export_flags(ssh))
        pipeline = f"{self.remote_wp} db export - {flags}".rstrip() + " | gzip -c"
        export_cmd = remote_shell_command(self.ssh_path, f"bash -o pipefail -c {shlex.quote(pipeline)}")

        import_cmd = [self.local_wp, "db", "import", "-"]
        if self.wp_path:
            import_cmd.append(f"--path={self.wp_path}")

        if self.verbose:
            print(f"🔄 Remote: {export_cmd}")
            print(f"🔄 Local: {format_command(import_cmd)}")

        try:
            remote_stdout, remote_stderr = ssh.open_stream(export_cmd)
        except paramiko.SSHException as e:
            print(f"❌ Error starting the remote export: {e}")
            return False

        with tempfile.TemporaryFile() as import_errors:
            importer = subprocess.Popen(
                import_cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=import_errors,
            )

            decompressor = zlib.decompressobj(zlib.MAX_WBITS | 16)
            stream_error = None
            completed = False
            try:
                with tqdm(unit="B", unit_scale=True, unit_divisor=1024, desc="Database") as progress:
                    while True:
                        chunk = remote_stdout.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        progress.update(len(chunk))
                        importer.stdin.write(decompressor.decompress(chunk))
                    importer.stdin.write(decompressor.flush())
                completed = True
            except zlib.error as e:
                stream_error = f"The export stream is not valid gzip data: {e}"
            except BrokenPipeError:
                stream_error = "The local import stopped before the export finished"
            finally:
                if not completed:
                    # An undrained channel never delivers the remote exit status
                    remote_stdout.channel.close()
                try:
                    importer.stdin.close()
                except BrokenPipeError:
                    pass
                if not completed and importer.poll() is None:
                    importer.kill()
                import_code = importer.wait()

            export_code = remote_stdout.channel.recv_exit_status()

            import_errors.seek(0)
            import_message = import_errors.read().decode("utf-8", errors="replace").strip()

        export_message = remote_stderr.read().decode("utf-8", errors="replace").strip()

        # After an aborted stream the remote status only reflects the closed channel
        if export_code != 0 and completed:
            print(f"❌ Error exporting the remote database (code {export_code})")
            if export_message:
                print(f"   {export_message}")
            return False

        if import_code != 0 or stream_error:
            print(f"❌ Error importing the database (code {import_code})")
            for message in (stream_error, import_message):
                if message:
                    print(f"   {message}")
            return False

        print("✅ Database imported")
        return True

    def replace_urls(self, ssh: SSHClient) -> bool:
        """
        Rewrites the remote home URL to the local one across the database
        """
        result = ssh.execute(self._remote_wp("option get home"))
        remote_home = result.stdout.strip()
        if not result.ok or not remote_home:
            print(f"❌ Error reading the remote home URL: {result.output}")
            return False

        local_home = self.local_home or get_option("home", self.wp_path, self.local_wp)
        if not local_home:
            print("❌ Error: The local home URL could not be determined")
            print("   Set WP_HOME in the project .env")
            return False

        remote_home = remote_home.rstrip("/")
        local_home = local_home.rstrip("/")

        if remote_home == local_home:
            print(f"ℹ️ Home URLs already match ({local_home}), nothing to replace")
            return True

        print(f"🔄 Replacing {remote_home} → {local_home}")
        result = search_replace(remote_home, local_home, self.wp_path, self.local_wp)
        if not result.ok:
            print(f"❌ Error replacing URLs: {result.output}")
            return False

        print("✅ URLs replaced")
        return True

    def fetch_uploads(self) -> bool:
        """
        Mirrors the remote uploads directory into the local one
        """
        print("📥 Fetching remote uploads...")

        local_uploads = self.project_root / UPLOADS_DIR
        ensure_dir_exists(local_uploads)

        source = f"{ssh_destination(self.ssh_host, self.ssh_user)}:{self.ssh_path}/{UPLOADS_DIR}/"
        return run_rsync(source, f"{local_uploads}/", port=self.ssh_port)

    def reconcile_plugins(self) -> bool:
        """
        Activates and deactivates the configured plugins
        """
        if not self.activate_plugins and not self.deactivate_plugins:
            return True

        print("🔌 Reconciling plugins...")
        success = True
        for plugin in self.activate_plugins:
            success = activate_plugin(plugin, self.wp_path, self.local_wp) and success
        for plugin in self.deactivate_plugins:
            success = deactivate_plugin(plugin, self.wp_path, self.local_wp) and success
        return success

    def enable_payment_sandbox(self) -> bool:
        """
        Puts Stripe into test mode so the local copy can't take real payments
        """
        if not is_plugin_active(STRIPE_PLUGIN, self.wp_path, self.local_wp):
            return True

        result = run_wp_cli(
            ["option", "patch", "update", STRIPE_SETTINGS_OPTION, "testmode", "yes"],
            self.wp_path,
            self.local_wp,
        )
        if not result.ok:
            print(f"⚠️ Could not enable Stripe test mode: {result.output}")
            return False

        print("✅ Stripe switched to test mode")
        return True

    def clear_caches(self) -> bool:
        print("🧹 Clearing caches...")
        return flush_caches(self.wp_path, self.local_wp)

    def run(self, database: bool = True, urls: bool = True, uploads: bool = True) -> bool:
        """
        Runs the selected sync operations

        Args:
            database: Fetch the remote database
            urls: Replace the remote home URL with the local one
            uploads: Fetch the remote uploads

        Returns:
            bool: True if everything selected completed
        """
        # The environment check may need to ask WordPress
        if not self.locate_local_wp_cli():
            return False
        if not self.check_environment():
            return False
        if not self.load_connection_settings():
            return False
        if not self.check_connection():
            return False

        ran_any = False
        try:
            if database or urls:
                # Read before the import replaces the local options table
                self.local_home = self.config.lookup("WP_HOME") or get_option("home", self.wp_path, self.local_wp)

                with SSHClient(self.ssh_host, self.ssh_user, self.ssh_port) as ssh:
                    if not ssh.client:
                        return False
                    if not self.locate_remote_wp_cli(ssh):
                        return False

                    if database:
                        if not self.fetch_database(ssh):
                            return False
                        ran_any = True
                        self.reconcile_plugins()
                        self.enable_payment_sandbox()

                    if urls:
                        if not self.replace_urls(ssh):
                            return False
                        ran_any = True

            if uploads:
                if not self.fetch_uploads():
                    return False
                ran_any = True

            return True
        finally:
            # Also after a later step failed, once the local site has changed
            if ran_any:
                self.clear_caches()


def sync_environment(database: bool = True, urls: bool = True, uploads: bool = True,
                     verbose: bool = False) -> bool:
    """
    Synchronizes the remote environment into the local one

    Returns:
        bool: True if the synchronization was successful, False otherwise
    """
    synchronizer = EnvironmentSynchronizer(verbose=verbose)
    success = synchronizer.run(database=database, urls=urls, uploads=uploads)
    if success:
        print("✅ Sync complete")
    return success
