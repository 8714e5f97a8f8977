#!/usr/bin/env python3
"""
CLI for nebula-tools

This script provides a command-line interface for creating, syncing and
maintaining Nebula WordPress websites.
"""

import os
import sys

import click

from nebula_tools import __version__
from nebula_tools.config_yaml import get_yaml_config
from nebula_tools.commands.content import seed_sample_content, seed_style_guide
from nebula_tools.commands.create_site import create_site
from nebula_tools.commands.first_sync import first_sync
from nebula_tools.commands.just_launched import just_launched
from nebula_tools.commands.kinsta import kinsta_prep
from nebula_tools.commands.sync import sync_environment
from nebula_tools.commands.version import check_version
from nebula_tools.utils.shell import command_exists, set_verbose

# Commands that run without the version gate
UNGATED_COMMANDS = ("version",)

REQUIRED_TOOLS = [
    ("wp", "required for every WordPress command"),
    ("composer", "required for create-site and kinsta-prep"),
    ("git", "required for create-site and kinsta-prep"),
    ("npm", "required for create-site"),
    ("ssh", "required for sync"),
    ("rsync", "required for sync --uploads"),
]


# Main command group
@click.group()
@click.version_option(__version__)
@click.option("--skip-version-check", is_flag=True, help="Don't check for a newer release first")
@click.option("--verbose", "-v", is_flag=True, help="Show every external command before it runs")
@click.pass_context
def cli(ctx, skip_version_check, verbose):
    """
    Tools for eighteen73 WordPress websites.

    Creates new Nebula websites, copies remote environments into the local
    one and tidies up websites after launch.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    set_verbose(verbose)

    if ctx.invoked_subcommand in UNGATED_COMMANDS:
        return

    config = get_yaml_config(verbose=verbose)
    if skip_version_check or config.lookup_bool("NEBULA_SKIP_VERSION_CHECK"):
        return

    if not check_version():
        sys.exit(1)


@cli.command("create-site")
@click.argument("name")
@click.option("--woocommerce", is_flag=True, help="Include WooCommerce")
@click.option("--multisite", is_flag=True, help="Convert the website to a multisite network")
@click.option("--nebula-branch", help="Install Nebula from this branch")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask for confirmation")
def create_site_command(name, woocommerce, multisite, nebula_branch, assume_yes):
    """
    Creates a new website.

    NAME is the directory for the website. Its basename is used as the
    website title.
    """
    success = create_site(
        name,
        woocommerce=woocommerce,
        multisite=multisite,
        nebula_branch=nebula_branch,
        assume_yes=assume_yes,
    )
    if not success:
        sys.exit(1)


@cli.command("sync")
@click.option("--database", is_flag=True, help="Fetch the remote database")
@click.option("--urls", is_flag=True, help="Replace the remote home URL with the local one")
@click.option("--uploads", is_flag=True, help="Fetch the remote uploads")
@click.pass_context
def sync_command(ctx, database, urls, uploads):
    """
    Copies the remote environment into the local one.

    Without any option everything is synchronized. With options, only the
    selected operations run. Refuses to run in production.
    """
    if not (database or urls or uploads):
        database = urls = uploads = True

    success = sync_environment(
        database=database,
        urls=urls,
        uploads=uploads,
        verbose=ctx.obj["verbose"],
    )
    if not success:
        sys.exit(1)


@cli.command("first-sync")
@click.pass_context
def first_sync_command(ctx):
    """
    Sets up a website locally from a remote database.

    For a checkout that has its code and .env but no database yet.
    """
    if not first_sync(verbose=ctx.obj["verbose"]):
        sys.exit(1)


@cli.command("just-launched")
@click.option("--old-domain", help="Comma separated domains to replace")
@click.option("--new-domain", help="The live domain")
def just_launched_command(old_domain, new_domain):
    """
    Configures a website that has just gone live.

    Replaces the old domains and resets caches and search indexes.
    """
    if not just_launched(old_domain=old_domain, new_domain=new_domain):
        sys.exit(1)


@cli.command("style-guide")
@click.option("--force", is_flag=True, help="Overwrite existing pages without asking")
def style_guide_command(force):
    """
    Creates or updates the style guide pages.
    """
    if not seed_style_guide(force=force):
        sys.exit(1)


@cli.command("sample-content")
@click.option("--force", is_flag=True, help="Overwrite existing pages without asking")
def sample_content_command(force):
    """
    Creates or updates the sample content pages.
    """
    if not seed_sample_content(force=force):
        sys.exit(1)


@cli.command("kinsta-prep")
def kinsta_prep_command():
    """
    Installs and configures the Kinsta MU plugin.

    The project's Git repository must be clean before running this.
    """
    if not kinsta_prep():
        sys.exit(1)


@cli.command("version")
def version_command():
    """
    Checks whether a newer release is available.
    """
    click.echo(f"nebula-tools {__version__}")
    if not check_version():
        sys.exit(1)
    click.echo("✅ Up to date")


@cli.command("config")
@click.option("--show", is_flag=True, help="Show current configuration")
@click.pass_context
def config_command(ctx, show):
    """
    Shows the merged configuration.
    """
    config = get_yaml_config(verbose=ctx.obj["verbose"])
    if show:
        config.display()
    else:
        click.echo("Usage: nebula-tools config --show")


@cli.command("check")
@click.pass_context
def check_command(ctx):
    """
    Verifies system requirements and configuration.
    """
    config = get_yaml_config(verbose=ctx.obj["verbose"])

    click.echo("🔍 Verifying system requirements...")
    for tool, purpose in REQUIRED_TOOLS:
        if command_exists(tool):
            click.echo(f"✅ {tool}: Installed")
        else:
            click.echo(f"⚠️ {tool}: Not found ({purpose})")

    ssh_config = os.path.expanduser("~/.ssh/config")
    if os.path.exists(ssh_config):
        click.echo("✅ SSH configuration file: Found")
    else:
        click.echo("ℹ️ SSH configuration file: Not found")

    click.echo("\n🔍 Verifying configuration...")
    click.echo(f"ℹ️ Project root: {config.project_root}")
    for name in ("NEBULA_SSH_HOST", "NEBULA_SSH_USER", "NEBULA_SSH_PATH"):
        if config.lookup(name):
            click.echo(f"✅ {name}: Configured")
        else:
            click.echo(f"⚠️ {name}: Not configured (required for sync)")


def main():
    """
    Main entry point
    """
    try:
        cli()
    except Exception as e:
        click.echo(f"❌ Error: {str(e)}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
