import pytest

from nebula_tools.config_yaml import YAMLConfig, get_yaml_config, reset_yaml_config


def _project(tmp_path, yaml_text=None, env_text=None):
    if yaml_text is not None:
        (tmp_path / "nebula-tools.yml").write_text(yaml_text)
    if env_text is not None:
        (tmp_path / ".env").write_text(env_text)
    return YAMLConfig(project_root=tmp_path)


def test_environment_beats_env_file_beats_yaml(tmp_path, monkeypatch):
    config = _project(
        tmp_path,
        yaml_text="NEBULA_SSH_HOST: yaml.example.com\nNEBULA_SSH_USER: yaml-user\nNEBULA_SSH_PATH: /yaml\n",
        env_text="NEBULA_SSH_HOST=env-file.example.com\nNEBULA_SSH_USER=env-file-user\n",
    )
    monkeypatch.setenv("NEBULA_SSH_HOST", "process.example.com")

    assert config.lookup("NEBULA_SSH_HOST") == "process.example.com"
    assert config.lookup("NEBULA_SSH_USER") == "env-file-user"
    assert config.lookup("NEBULA_SSH_PATH") == "/yaml"


def test_empty_values_count_as_unset(tmp_path, monkeypatch):
    config = _project(tmp_path, yaml_text="NEBULA_SSH_HOST: yaml.example.com\n", env_text="NEBULA_SSH_HOST=\n")
    monkeypatch.setenv("NEBULA_SSH_HOST", "")

    assert config.lookup("NEBULA_SSH_HOST") == "yaml.example.com"


def test_nested_yaml_keys_map_to_flat_names(tmp_path):
    config = _project(tmp_path, yaml_text="ssh:\n  host: nested.example.com\n  port: 2222\n")

    assert config.lookup("NEBULA_SSH_HOST") == "nested.example.com"
    assert config.lookup("NEBULA_SSH_PORT") == 2222


def test_defaults_apply_without_any_files(tmp_path):
    config = _project(tmp_path)

    assert config.lookup("NEBULA_SSH_PORT") == "22"
    assert config.lookup("NEBULA_SSH_HOST") is None
    assert config.lookup("NEBULA_SSH_HOST", "fallback") == "fallback"


def test_lookup_list_accepts_strings_and_yaml_lists(tmp_path, monkeypatch):
    config = _project(tmp_path, yaml_text="sync:\n  deactivate_plugins:\n    - wp-rocket\n    - mailgun\n")
    monkeypatch.setenv("NEBULA_SYNC_ACTIVATE_PLUGINS", " query-monitor, ,spatie-ray,query-monitor ")

    assert config.lookup_list("NEBULA_SYNC_ACTIVATE_PLUGINS") == ["query-monitor", "spatie-ray"]
    assert config.lookup_list("NEBULA_SYNC_DEACTIVATE_PLUGINS") == ["wp-rocket", "mailgun"]


def test_lookup_bool(tmp_path, monkeypatch):
    config = _project(tmp_path)

    assert config.lookup_bool("NEBULA_SKIP_VERSION_CHECK") is False
    monkeypatch.setenv("NEBULA_SKIP_VERSION_CHECK", "1")
    assert config.lookup_bool("NEBULA_SKIP_VERSION_CHECK") is True


def test_get_strict_raises_for_missing_setting(tmp_path):
    config = _project(tmp_path)

    with pytest.raises(ValueError, match="NEBULA_SSH_HOST"):
        config.get_strict("NEBULA_SSH_HOST")


def test_invalid_yaml_is_an_error(tmp_path):
    with pytest.raises(ValueError, match="Invalid YAML"):
        _project(tmp_path, yaml_text="ssh: [unclosed\n")


def test_display_masks_secrets(tmp_path, capsys):
    config = _project(tmp_path, yaml_text="MAILGUN_API_KEY: secret-value\nNEBULA_SSH_HOST: host.example.com\n")

    config.display()

    out = capsys.readouterr().out
    assert "secret-value" not in out
    assert "host.example.com" in out


def test_project_root_is_detected_from_a_subdirectory(tmp_path, monkeypatch):
    (tmp_path / "composer.json").write_text("{}")
    subdirectory = tmp_path / "web" / "app"
    subdirectory.mkdir(parents=True)
    monkeypatch.chdir(subdirectory)

    assert YAMLConfig().project_root == tmp_path.resolve()


def test_get_yaml_config_is_a_singleton(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    first = get_yaml_config()
    assert get_yaml_config() is first

    reset_yaml_config()
    assert get_yaml_config() is not first
