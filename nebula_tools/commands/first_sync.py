"""
Gets a remote website's database running locally for the first time

The regular sync needs a bootable WordPress, so a throwaway install is made
first and then replaced by the remote database.
"""

import secrets

from nebula_tools.commands.sync import sync_environment
from nebula_tools.config_yaml import get_yaml_config
from nebula_tools.utils.wp_cli import get_wp_path, run_wp_cli


def first_sync(verbose: bool = False) -> bool:
    """
    Installs a placeholder WordPress and runs a full sync over it

    Returns:
        bool: True if the website was synchronized
    """
    config = get_yaml_config(verbose=verbose)
    wp_path = get_wp_path(config.project_root)

    # A version check also confirms that `composer install` has been run
    result = run_wp_cli(["core", "version"], wp_path)
    if not result.ok or not result.stdout.strip():
        print("❌ Error: Not a WordPress directory")
        return False

    if run_wp_cli(["core", "is-installed"], wp_path).ok:
        print("❌ Error: WordPress is already installed. Use `nebula-tools sync` instead.")
        return False

    # These credentials disappear with the database import
    result = run_wp_cli([
        "core", "install",
        "--url=example.com",
        "--title=Example",
        "--admin_user=admin",
        f"--admin_password={secrets.token_urlsafe(24)}",
        "--admin_email=admin@example.com",
        "--skip-email",
    ], wp_path)
    output = result.stdout + result.stderr
    if "already installed" in output:
        print("❌ Error: WordPress is already installed. Use `nebula-tools sync` instead.")
        return False
    if not result.ok:
        print(f"❌ Error: {result.output}")
        print("   Please check your .env")
        return False

    print("✅ Placeholder install created, syncing the remote website...")
    if not sync_environment(verbose=verbose):
        return False

    print("✅ All done!")
    return True
