"""
Creates a new Nebula website from scratch

Installs Nebula with composer, WordPress with WP-CLI, the Pulsar theme and
the house plugins. Every stage ends with a git commit.
"""

import json
import re
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urlparse

import click

from nebula_tools.utils.filesystem import (
    append_line_if_missing,
    prepare_install_directory,
    prepend_block,
    read_env_file,
    update_env_file,
    write_config_include,
)
from nebula_tools.utils.shell import CommandResult, composer_command, git_command, npm_command, run_streaming
from nebula_tools.utils.wp_cli import add_option, run_wp_cli, update_option

NEBULA_PACKAGE = "eighteen73/nebula"
PULSAR_PACKAGE = "eighteen73/pulsar"
SITE_LANGUAGE = "en_GB"

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ADMIN_PASSWORD_PATTERN = re.compile(r"^Admin password: (.+)$", re.MULTILINE)

HOUSE_OPTIONS = [
    ("blogdescription", ""),
    ("date_format", "d/m/Y"),
    ("timezone_string", "Europe/London"),
    ("default_ping_status", ""),
    ("default_pingback_flag", ""),
    ("comments_notify", ""),
    ("default_comment_status", ""),
    ("comment_moderation", "1"),
    ("comment_registration", "1"),
    ("moderation_notify", ""),
    ("page_comments", ""),
    ("comment_previously_approved", "1"),
    ("show_avatars", ""),
    ("permalink_structure", "/%postname%/"),
]

HOUSE_PLUGINS = {
    "always": [
        "wp-media/wp-rocket",
        "wpackagist-plugin/duracelltomi-google-tag-manager",
        "wpackagist-plugin/limit-login-attempts-reloaded",
        "wpackagist-plugin/mailgun",
        "wpackagist-plugin/redirection",
        "wpackagist-plugin/webp-express",
        "wpackagist-plugin/wordpress-seo",
    ],
    "dev": [
        "wpackagist-plugin/spatie-ray",
    ],
}

LIMIT_LOGIN_OPTIONS = [
    ("limit_login_lockout_notify", ""),
    ("limit_login_show_warning_badge", "0"),
    ("limit_login_hide_dashboard_widget", "1"),
    ("limit_login_show_top_level_menu_item", "0"),
]

MAILGUN_OPTIONS = {
    "region": "eu",
    "useAPI": "1",
    "domain": "site-email.com",
    "apiKey": "",
    "username": "",
    "password": "",
    "secure": "1",
    "sectype": "ssl",
    "track-clicks": "no",
    "track-opens": "1",
    "from-address": "",
    "from-name": "",
    "override-from": "0",
    "campaign-id": "",
}

# (name, rate, tax class)
WOOCOMMERCE_TAX_RATES = [
    ("Standard", "20", "standard"),
    ("Reduced rate", "5", "reduced-rate"),
    ("Zero rate", "0", "zero-rate"),
]

MULTISITE_TOPOLOGIES = ["subdirectory", "subdomain"]

MULTISITE_CONFIG = """
Config::define('WP_ALLOW_MULTISITE', true);
Config::define('MULTISITE', env('MULTISITE') ?? false);
Config::define('SUBDOMAIN_INSTALL', env('SUBDOMAIN_INSTALL') ?? false);
Config::define('DOMAIN_CURRENT_SITE', env('DOMAIN_CURRENT_SITE') ?: parse_url(env('WP_HOME'), PHP_URL_HOST));
Config::define('PATH_CURRENT_SITE', env('PATH_CURRENT_SITE') ?: '/');
Config::define('SITE_ID_CURRENT_SITE', env('SITE_ID_CURRENT_SITE') ?: 1);
Config::define('BLOG_ID_CURRENT_SITE', env('BLOG_ID_CURRENT_SITE') ?: 1);
"""

HTACCESS_MARKER = "# BEGIN WordPress Multisite"

HTACCESS_SUBDIRECTORY = r"""# BEGIN WordPress Multisite
RewriteEngine On
RewriteRule .* - [E=HTTP_AUTHORIZATION:%{HTTP:Authorization}]
RewriteBase /
RewriteRule ^index\.php$ - [L]
RewriteRule ^([_0-9a-zA-Z-]+/)?wp-admin$ $1wp-admin/ [R=301,L]
RewriteCond %{REQUEST_FILENAME} -f [OR]
RewriteCond %{REQUEST_FILENAME} -d
RewriteRule ^ - [L]
RewriteRule ^([_0-9a-zA-Z-]+/)?(wp-(content|admin|includes).*) wp/$2 [L]
RewriteRule ^([_0-9a-zA-Z-]+/)?(.*\.php)$ wp/$2 [L]
RewriteRule . index.php [L]
# END WordPress Multisite
"""

HTACCESS_SUBDOMAIN = r"""# BEGIN WordPress Multisite
RewriteEngine On
RewriteRule .* - [E=HTTP_AUTHORIZATION:%{HTTP:Authorization}]
RewriteBase /
RewriteRule ^index\.php$ - [L]
RewriteRule ^wp-admin$ wp-admin/ [R=301,L]
RewriteCond %{REQUEST_FILENAME} -f [OR]
RewriteCond %{REQUEST_FILENAME} -d
RewriteRule ^ - [L]
RewriteRule ^(wp-(content|admin|includes).*) wp/$1 [L]
RewriteRule ^(.*\.php)$ wp/$1 [L]
RewriteRule . index.php [L]
# END WordPress Multisite
"""

MULTISITE_GITIGNORE = "web/app/blogs.dir"


def status_message(message: str):
    """
    Prints a framed banner for a long-running stage
    """
    border = "*" * (len(message) + 4)
    print()
    print(border)
    print(f"* {message} *")
    print(border)
    print()


def resolve_install_directory(name: str, cwd: Optional[Path] = None) -> Path:
    """
    Resolves the install directory: absolute names are used as-is, relative
    ones are joined to the current directory
    """
    stripped = name.rstrip("/") or "/"
    path = Path(stripped)
    if path.is_absolute():
        return path
    return (cwd or Path.cwd()) / path


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def plugin_slug(package: str) -> str:
    """
    The WordPress plugin slug of a composer package: "vendor/slug" -> "slug"
    """
    return package.split("/", 1)[-1]


def parse_admin_password(output: str) -> str:
    match = ADMIN_PASSWORD_PATTERN.search(output)
    return match.group(1).strip() if match else ""


class SiteProvisioner:
    """
    Builds a complete website in an empty directory
    """

    def __init__(self, name: str, woocommerce: bool = False, multisite: bool = False,
                 nebula_branch: Optional[str] = None, assume_yes: bool = False,
                 prompt: Optional[Callable[..., str]] = None,
                 confirm: Optional[Callable[..., bool]] = None):
        self.install_directory = resolve_install_directory(name)
        self.site_name = self.install_directory.name
        self.wp_directory = self.install_directory / "web" / "wp"
        self.woocommerce = woocommerce
        self.multisite = multisite
        self.nebula_branch = nebula_branch
        self.assume_yes = assume_yes
        self.prompt = prompt or click.prompt
        self.confirm = confirm or click.confirm

        self.site_url = ""
        self.site_username = ""
        self.site_password = ""

    def _require(self, result: CommandResult, action: str) -> CommandResult:
        if not result.ok:
            raise RuntimeError(f"{action} failed: {result.output}")
        return result

    def _wp(self, args: List[str], action: str) -> CommandResult:
        return self._require(run_wp_cli(args, self.wp_directory), action)

    def _composer(self, args: List[str], action: str) -> CommandResult:
        return self._require(composer_command(args, self.install_directory), action)

    def _create_project(self, package: str, directory: Path, action: str):
        # Output is shown live
        code = run_streaming(["composer", "create-project", package, str(directory), "--stability=dev"])
        if code != 0:
            raise RuntimeError(f"{action} failed (composer exited with code {code})")

    def commit(self, message: str):
        self._require(git_command(["add", "."], self.install_directory), "git add")
        self._require(git_command(["commit", "-m", message], self.install_directory), "git commit")

    def check_path(self) -> bool:
        """
        Confirms the target with the user and makes sure it is usable
        """
        if not self.assume_yes:
            self.confirm(
                f"Installing \"{self.site_name}\" to \"{self.install_directory}\". Is this OK?",
                abort=True,
            )

        error = prepare_install_directory(self.install_directory)
        if error:
            print(f"❌ Error: {error}")
            return False
        return True

    def download_nebula(self):
        package = NEBULA_PACKAGE
        if self.nebula_branch:
            package += f":dev-{self.nebula_branch}"

        self._create_project(package, self.install_directory, "Downloading Nebula")
        self._composer(["update"], "Updating Nebula dependencies")
        print("   ... done")

    def create_repo(self):
        self._require(git_command(["init"], self.install_directory), "git init")
        self.commit("Initial commit")

    def ask_admin_details(self):
        self.site_username = self.prompt("Enter your admin username").strip().lower()

        while True:
            email = self.prompt("Enter your admin email address").strip().lower()
            if is_valid_email(email):
                return email
            print(f"⚠️ '{email}' is not a valid email address")

    def install_wordpress(self):
        env = read_env_file(self.install_directory / ".env")
        self.site_url = env.get("WP_HOME", "").rstrip("/")
        if not self.site_url:
            raise RuntimeError("WP_HOME is not set in the new project's .env")

        email = self.ask_admin_details()

        result = self._wp([
            "core", "install",
            "--skip-email",
            f"--url={self.site_url}",
            f"--title={self.site_name}",
            f"--admin_user={self.site_username}",
            f"--admin_email={email}",
        ], "Installing WordPress")
        self.site_password = parse_admin_password(result.stdout)

        self._wp(["language", "core", "install", SITE_LANGUAGE], "Installing the site language")
        self._wp(["site", "switch-language", SITE_LANGUAGE], "Switching the site language")

        for name, value in HOUSE_OPTIONS:
            update_option(name, value, self.wp_directory)

        self.commit("Install WordPress")
        print("   ... done")

    def download_pulsar(self):
        theme_directory = self.install_directory / "web" / "app" / "themes" / "pulsar"

        self._create_project(PULSAR_PACKAGE, theme_directory, "Downloading Pulsar")
        self._require(npm_command(["install"], prefix=theme_directory), "npm install")
        self._wp(["theme", "activate", "pulsar"], "Activating Pulsar")

        self.commit("Add Pulsar theme")
        print("   ... done")

    def install_plugins(self):
        self._composer(["require"] + HOUSE_PLUGINS["always"], "Installing plugins")
        self._composer(["require", "--dev"] + HOUSE_PLUGINS["dev"], "Installing dev plugins")

        slugs = [plugin_slug(package) for package in HOUSE_PLUGINS["always"] + HOUSE_PLUGINS["dev"]]
        self._wp(["plugin", "activate"] + slugs, "Activating plugins")

        for name, value in LIMIT_LOGIN_OPTIONS:
            add_option(name, value, autoload=True, path=self.wp_directory)
        add_option(
            "mailgun",
            json.dumps(MAILGUN_OPTIONS),
            autoload=True,
            path=self.wp_directory,
            value_format="json",
        )
        run_wp_cli(["transient", "delete", "llar_welcome_redirect"], self.wp_directory)

        self.commit("Add house plugins")
        print("   ... done")

    def install_woocommerce(self):
        self._composer(["require", "wpackagist-plugin/woocommerce"], "Installing WooCommerce")
        self._wp(["plugin", "activate", "woocommerce"], "Activating WooCommerce")

        for name, rate, tax_class in WOOCOMMERCE_TAX_RATES:
            self._wp([
                "wc", "tax", "create",
                "--country=GB",
                f"--rate={rate}",
                f"--name={name}",
                f"--class={tax_class}",
                f"--user={self.site_username}",
            ], f"Creating the '{name}' tax rate")

        self.commit("Add WooCommerce")
        print("   ... done")

    def convert_to_multisite(self):
        topology = self.prompt(
            "Multisite type",
            type=click.Choice(MULTISITE_TOPOLOGIES),
            default=MULTISITE_TOPOLOGIES[0],
        )
        subdomains = topology == "subdomain"

        args = ["core", "multisite-convert"]
        if subdomains:
            args.append("--subdomains")
        self._wp(args, "Converting to multisite")

        update_env_file(self.install_directory / ".env", {
            "MULTISITE": "true",
            "SUBDOMAIN_INSTALL": "true" if subdomains else "false",
            "DOMAIN_CURRENT_SITE": urlparse(self.site_url).hostname or "",
        })

        if not write_config_include(self.install_directory, "multisite.php", MULTISITE_CONFIG):
            raise RuntimeError("Could not write config/includes/multisite.php")

        htaccess = HTACCESS_SUBDOMAIN if subdomains else HTACCESS_SUBDIRECTORY
        prepend_block(self.install_directory / "web" / ".htaccess", htaccess, guard=HTACCESS_MARKER)
        append_line_if_missing(self.install_directory / ".gitignore", MULTISITE_GITIGNORE)

        self.commit("Convert to multisite")
        print("   ... done")

    def print_summary(self):
        print()
        print("✅ Your website is ready.")
        print()
        print(f"URL:      {self.site_url}")
        print(f"Admin:    {self.site_url}/wp/wp-admin")
        print()
        print(f"Username: {self.site_username}")
        print(f"Password: {self.site_password}")

    def run(self) -> bool:
        if not self.check_path():
            return False

        try:
            status_message("Installing WordPress...")
            self.download_nebula()
            self.create_repo()
            self.install_wordpress()

            status_message("Installing theme...")
            self.download_pulsar()

            status_message("Installing default plugins...")
            self.install_plugins()

            if self.woocommerce:
                status_message("Installing WooCommerce...")
                self.install_woocommerce()

            if self.multisite:
                status_message("Converting to multisite...")
                self.convert_to_multisite()
        except RuntimeError as e:
            print(f"❌ Error: {e}")
            return False

        self.print_summary()
        return True


def create_site(name: str, woocommerce: bool = False, multisite: bool = False,
                nebula_branch: Optional[str] = None, assume_yes: bool = False) -> bool:
    """
    Creates a new website

    Args:
        name: Directory for the website (its basename is the site title)
        woocommerce: Include WooCommerce
        multisite: Convert the install to a multisite network
        nebula_branch: Install Nebula from this branch instead of the release
        assume_yes: Skip the confirmation prompt

    Returns:
        bool: True if the website was created
    """
    provisioner = SiteProvisioner(
        name,
        woocommerce=woocommerce,
        multisite=multisite,
        nebula_branch=nebula_branch,
        assume_yes=assume_yes,
    )
    return provisioner.run()
