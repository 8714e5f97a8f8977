"""
nebula_tools
============

Scaffold, sync and configure WordPress websites built on the Nebula framework.
Drives composer, npm, git, WP-CLI, ssh and rsync from a single command line.
"""

__version__ = "1.4.0"
__author__ = "eighteen73"
__email__ = "hello@eighteen73.co.uk"
