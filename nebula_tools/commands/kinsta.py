"""
Prepares a website for hosting on Kinsta

Installs the Kinsta MU plugin and its config on Nebula, Bedrock and vanilla
WordPress websites. It is safe to re-run on a website that already has it.
"""

import io
import json
import re
import zipfile
from pathlib import Path
from typing import Optional

import requests

from nebula_tools.config_yaml import get_yaml_config
from nebula_tools.utils.filesystem import ensure_dir_exists, insert_after_marker
from nebula_tools.utils.shell import composer_command, git_command, has_package, repo_is_clean
from nebula_tools.utils.wp_cli import get_wp_path, run_wp_cli

PLUGIN_PACKAGE = "eighteen73-plugin/kinsta-mu-plugins"
PLUGIN_ZIP_URL = "https://kinsta.com/kinsta-tools/kinsta-mu-plugins.zip"
PLUGIN_DOCS_URL = "https://kinsta.com/docs/wordpress-hosting/kinsta-mu-plugin/"

COMPOSER_REPOSITORY_URL = "https://code.eighteen73.co.uk/pkg/wordpress"
COMPOSER_REPOSITORY_PATTERN = re.compile(r"^https://code\.(eighteen73|orphans)\.co\.uk/pkg/wordpress$")

CONFIG_KEYS = [
    "KINSTA_CDN_USERDIRS",
    "KINSTAMU_CUSTOM_MUPLUGIN_URL",
    "KINSTAMU_CAPABILITY",
    "KINSTAMU_WHITELABEL",
]

COMPOSER_CONFIG = """
/**
 * Kinsta
 */
$mu_plugins_url = Config::get( 'WP_CONTENT_URL' ) . '/mu-plugins';
Config::define( 'KINSTA_CDN_USERDIRS', 'app' );
Config::define( 'KINSTAMU_CUSTOM_MUPLUGIN_URL', "{$mu_plugins_url}/kinsta-mu-plugins" );
Config::define( 'KINSTAMU_CAPABILITY', 'publish_pages' );
Config::define( 'KINSTAMU_WHITELABEL', true );
"""

VANILLA_CONFIG = """
/**
 * Kinsta
 */
define( 'KINSTAMU_CAPABILITY', 'publish_pages' );
define( 'KINSTAMU_WHITELABEL', true );
"""


def has_our_repository(composer_json: Path) -> bool:
    """
    Checks composer.json for the eighteen73 package repository

    Repositories may be a list or a keyed object.
    """
    try:
        data = json.loads(composer_json.read_text())
    except (OSError, json.JSONDecodeError):
        return False

    repositories = data.get("repositories") or []
    if isinstance(repositories, dict):
        repositories = repositories.values()

    for repository in repositories:
        if isinstance(repository, dict) and COMPOSER_REPOSITORY_PATTERN.match(repository.get("url", "")):
            return True
    return False


def add_kinsta_config(config_file: Path, marker: str, block: str) -> bool:
    """
    Inserts the Kinsta constants after the marker line

    Returns:
        bool: False if the marker was not found
    """
    existing = config_file.read_text()
    if any(key in existing for key in CONFIG_KEYS):
        print("ℹ️ Config already exists so we'll leave it untouched.")
        return True

    if not insert_after_marker(config_file, marker, block, guard=CONFIG_KEYS[-1]):
        print(f"⚠️ Could not find '{marker}' in {config_file}")
        return False
    print(f"✅ Added Kinsta config to {config_file.name}")
    return True


class KinstaPreparer:
    """
    Installs and configures the Kinsta MU plugin
    """

    def __init__(self, wp_path: Optional[Path] = None):
        self.wp_path = wp_path
        self.root_directory = Path.cwd()
        self.is_composer = False

    def check_preconditions(self) -> bool:
        result = run_wp_cli(["core", "version"], self.wp_path)
        if not result.ok or not result.stdout.strip():
            print("❌ Error: Not a WordPress directory")
            return False

        if not repo_is_clean(self.root_directory):
            print("❌ Error: The Git repo must not have any uncommitted code. "
                  "Please commit/stash your changes then try again.")
            return False

        return True

    def detect_layout(self):
        result = run_wp_cli(["config", "get", "root_dir"], self.wp_path)
        if result.ok and result.stdout.strip():
            self.root_directory = Path(result.stdout.strip())
        self.is_composer = has_package("roots/wordpress", self.root_directory)

    def composer_install(self) -> bool:
        # Re-adding to a list of repositories would create a duplicate
        if not has_our_repository(self.root_directory / "composer.json"):
            result = composer_command(
                ["config", "repositories.eighteen73", "composer", COMPOSER_REPOSITORY_URL],
                self.root_directory,
                quiet=False,
            )
            if not result.ok:
                print(f"❌ Error adding the composer repository: {result.output}")
                return False

        result = composer_command(["require", PLUGIN_PACKAGE], self.root_directory, quiet=False)
        if not result.ok:
            print(f"❌ Error installing {PLUGIN_PACKAGE}: {result.output}")
            return False
        return True

    def manual_install(self) -> bool:
        plugins_dir = self.root_directory / "wp-content" / "plugins"
        mu_plugins_dir = self.root_directory / "wp-content" / "mu-plugins"

        if not plugins_dir.is_dir():
            print(f"❌ Error: Could not install the plugin. Please do it manually using {PLUGIN_DOCS_URL}")
            return False

        ensure_dir_exists(mu_plugins_dir)
        if (mu_plugins_dir / "kinsta-mu-plugins.php").exists():
            return True

        print(f"📥 Downloading {PLUGIN_ZIP_URL}")
        try:
            response = requests.get(PLUGIN_ZIP_URL, timeout=60)
            response.raise_for_status()
            with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
                archive.extractall(mu_plugins_dir)
        except (requests.RequestException, zipfile.BadZipFile) as e:
            print(f"❌ Error: Could not install the plugin ({e}). "
                  f"Please do it manually using {PLUGIN_DOCS_URL}")
            return False

        return True

    def add_config(self) -> bool:
        config_file = self.root_directory / "config" / "application.php"
        if config_file.exists():
            return add_kinsta_config(config_file, "NONCE_SALT", COMPOSER_CONFIG)

        config_file = self.root_directory / "wp-config.php"
        if config_file.exists():
            return add_kinsta_config(config_file, "$table_prefix", VANILLA_CONFIG)

        print("⚠️ No config file found, the Kinsta constants were not added")
        return True

    def commit(self) -> bool:
        for args in (["add", "."], ["commit", "-m", "Add kinsta-mu-plugins"]):
            result = git_command(args, self.root_directory)
            if not result.ok:
                print(f"❌ Error running 'git {' '.join(args)}': {result.output}")
                return False
        return True

    def run(self) -> bool:
        if not self.check_preconditions():
            return False

        self.detect_layout()

        installed = self.composer_install() if self.is_composer else self.manual_install()
        if not installed:
            return False

        if not self.add_config():
            return False

        return self.commit()


def kinsta_prep() -> bool:
    config = get_yaml_config()
    preparer = KinstaPreparer(get_wp_path(config.project_root))
    success = preparer.run()
    if success:
        print("✅ Complete")
    return success
