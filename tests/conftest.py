import os

import pytest

from nebula_tools.config_yaml import reset_yaml_config
from nebula_tools.utils import shell


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """
    Keeps the developer's own environment and user config out of every test
    """
    for name in list(os.environ):
        if name.startswith("NEBULA_") or name in ("WP_ENV", "WP_ENVIRONMENT_TYPE", "WP_HOME"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("nebula_tools.config_yaml.USER_CONFIG_FILE", tmp_path / "no-user-config.yml")
    monkeypatch.setattr(shell, "VERBOSE", False)
    reset_yaml_config()
    yield
    reset_yaml_config()
