"""
Post-launch clean-up for a website that has just gone live

Replaces old domains with the new one and resets caches and indexes. There is
no harm in running it several times or long after a launch.
"""

import re
from pathlib import Path
from typing import List, Optional

from nebula_tools.config_yaml import get_yaml_config
from nebula_tools.utils.wp_cli import get_plugin_status, get_wp_path, run_wp_cli, search_replace

HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")

YOAST_PLUGIN = "wordpress-seo"


def is_valid_domain(domain: Optional[str]) -> bool:
    """
    Checks that a value is a bare hostname: no scheme, path, port or spaces
    """
    if not domain or len(domain) > 253:
        return False

    labels = domain[:-1].split(".") if domain.endswith(".") else domain.split(".")
    return all(HOSTNAME_LABEL.match(label) for label in labels)


def parse_domain_list(value: Optional[str]) -> List[str]:
    domains = []
    for domain in (value or "").split(","):
        domain = domain.strip()
        if domain and domain not in domains:
            domains.append(domain)
    return domains


class PostLaunchNormalizer:
    """
    Runs the post-launch domain replacement and cache resets
    """

    def __init__(self, old_domains: Optional[List[str]] = None, new_domain: Optional[str] = None,
                 wp_path: Optional[Path] = None):
        self.old_domains = old_domains or []
        self.new_domain = new_domain
        self.wp_path = wp_path

    def validate(self) -> bool:
        """
        Rejects malformed domains before anything is changed
        """
        if not self.old_domains and not self.new_domain:
            return True

        if not self.old_domains or not self.new_domain:
            print("❌ Error: --old-domain and --new-domain must be used together")
            return False

        for domain in self.old_domains + [self.new_domain]:
            if not is_valid_domain(domain):
                print(f"❌ Error: {domain} is not a valid domain. "
                      "If you have a complex replacement please use `wp search-replace`")
                return False

        return True

    def change_domain(self) -> bool:
        for old_domain in self.old_domains:
            print(f"\n🔄 Replacing: {old_domain} → {self.new_domain}\n")
            result = search_replace(f"//{old_domain}", f"//{self.new_domain}", self.wp_path)
            if not result.ok:
                print(f"❌ Error replacing {old_domain}: {result.output}")
                return False
            print(result.stdout.strip())
        return True

    def reset_data_and_caches(self) -> bool:
        print("\n🧹 Clearing caches\n")
        for command in (["transient", "delete", "--all"], ["cache", "flush"]):
            result = run_wp_cli(command, self.wp_path)
            if not result.ok:
                print(f"❌ Error running 'wp {' '.join(command)}': {result.output}")
                return False

        if get_plugin_status(YOAST_PLUGIN, self.wp_path) is not None:
            print("\n🔄 Reindexing Yoast\n")
            result = run_wp_cli(["yoast", "index", "--reindex"], self.wp_path)
            if not result.ok:
                print(f"⚠️ Yoast reindex failed: {result.output}")

        return True

    def run(self) -> bool:
        if not self.validate():
            return False
        if not self.change_domain():
            return False
        return self.reset_data_and_caches()


def just_launched(old_domain: Optional[str] = None, new_domain: Optional[str] = None) -> bool:
    """
    Configures a newly launched website

    Args:
        old_domain: Comma separated list of domains to replace
        new_domain: The live domain

    Returns:
        bool: True if everything completed
    """
    config = get_yaml_config()
    normalizer = PostLaunchNormalizer(
        old_domains=parse_domain_list(old_domain),
        new_domain=new_domain.strip() if new_domain else None,
        wp_path=get_wp_path(config.project_root),
    )
    success = normalizer.run()
    if success:
        print("\n✅ Complete")
    return success
