import pytest

from plinth.config import LifecycleConfig
from plinth.domain import Key
from plinth.errors import ConfigurationError


def test_defaults():
    config = LifecycleConfig()

    assert config.self_plugin_id == "plinth.boot"
    assert config.boot_hook_key == Key("plinth.boot", "boot-fn")
    assert config.api_key == Key("plinth.boot", "api")
    assert config.initially_disabled == frozenset()


def test_boot_hook_defaults_to_self_plugin_namespace():
    assert LifecycleConfig(self_plugin_id="system").boot_hook_key == Key("system", "boot-fn")


def test_from_mapping_accepts_dashed_and_underscored_names():
    config = LifecycleConfig.from_mapping(
        {
            "self-plugin-id": "system",
            "boot_hook": "todo.app/start",
            "initially-disabled": ["todo.calendar"],
        }
    )

    assert config == LifecycleConfig(
        "system", Key("todo.app", "start"), frozenset({"todo.calendar"})
    )


def test_bare_boot_hook_is_qualified_with_self_plugin_id():
    assert LifecycleConfig.from_mapping({"boot-hook": "start"}).boot_hook == Key(
        "plinth.boot", "start"
    )


def test_unknown_option_raises():
    with pytest.raises(ConfigurationError, match=r"Unknown configuration options \['verbose'\]"):
        LifecycleConfig.from_mapping({"verbose": True})


def test_load_from_yaml(tmp_path):
    path = tmp_path / "lifecycle.yaml"
    path.write_text("boot-hook: todo.app/start\ninitially-disabled: todo.calendar\n")

    config = LifecycleConfig.load(path)

    assert config.boot_hook_key == Key("todo.app", "start")
    assert config.initially_disabled == {"todo.calendar"}


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "lifecycle.yaml"
    path.write_text("")

    assert LifecycleConfig.load(path) == LifecycleConfig()


def test_malformed_file_raises(tmp_path):
    path = tmp_path / "lifecycle.yaml"
    path.write_text("boot-hook: [unterminated\n")

    with pytest.raises(ConfigurationError, match="Cannot load configuration"):
        LifecycleConfig.load(path)


def test_file_must_hold_a_mapping(tmp_path):
    path = tmp_path / "lifecycle.yaml"
    path.write_text("- plinth.boot\n")

    with pytest.raises(ConfigurationError, match="must contain a mapping, got list"):
        LifecycleConfig.load(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigurationError, match="Cannot load configuration"):
        LifecycleConfig.load(tmp_path / "missing.yaml")
