"""
Checks whether a newer release of nebula_tools is available
"""

import re
from typing import Iterable, NamedTuple, Optional

from nebula_tools import __version__
from nebula_tools.config_yaml import get_yaml_config
from nebula_tools.utils.shell import git_command

LOCAL_VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)")
REMOTE_TAG_PATTERN = re.compile(r"refs/tags/v?(\d+)\.(\d+)\.(\d+)$")

UPGRADE_HINT = "pip install --upgrade nebula-tools"


class Version(NamedTuple):
    version: str
    major: int
    minor: int
    patch: int

    @property
    def parts(self):
        return (self.major, self.minor, self.patch)


def parse_version(text: str) -> Optional[Version]:
    """
    Parses a three-part version such as "1.2.3" or "v1.2.3-beta"
    """
    match = LOCAL_VERSION_PATTERN.match(text.strip())
    if not match:
        return None
    return Version(match.group(0), *(int(part) for part in match.groups()))


def latest_remote_version(ls_remote_output: Iterable[str]) -> Optional[Version]:
    """
    Picks the highest version among the lines of `git ls-remote --tags`
    """
    latest = None
    for line in ls_remote_output:
        match = REMOTE_TAG_PATTERN.search(line.strip())
        if not match:
            continue
        version = Version(match.group(0).rsplit("/", 1)[-1], *(int(part) for part in match.groups()))
        if latest is None or version.parts > latest.parts:
            latest = version
    return latest


def needs_update(local: Version, remote: Version) -> bool:
    return local.parts < remote.parts


def fetch_remote_version(repository: str) -> Optional[Version]:
    result = git_command(["ls-remote", "--tags", repository])
    if not result.ok:
        return None
    return latest_remote_version(result.stdout.splitlines())


def check_version(local_version: str = __version__, repository: Optional[str] = None) -> bool:
    """
    Compares the installed version with the latest tagged release

    Returns:
        bool: False if an update is required
    """
    local = parse_version(local_version)
    if local is None:
        print(f"❌ Error: Update required. Please run: {UPGRADE_HINT}")
        return False

    if repository is None:
        repository = get_yaml_config().get_strict("NEBULA_TOOLS_REPOSITORY")

    remote = fetch_remote_version(repository)
    if remote is None:
        print(f"⚠️ Could not detect latest version. You may need to run: {UPGRADE_HINT}")
        return True

    if needs_update(local, remote):
        print(f"❌ Error: Update required ({local.version} to {remote.version}). Please run: {UPGRADE_HINT}")
        return False

    return True
