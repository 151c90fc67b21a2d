"""Tests for YAML + environment configuration loading."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from channelsense.config.settings import (
    Settings,
    deep_merge,
    load_all_configs,
    validate_config_section,
    validate_timezone,
)

MAIN_SCHEMA = Path(__file__).resolve().parents[1] / "config" / "schemas"


def write_config(root: Path, name: str, content: dict[str, Any]) -> None:
    config_dir = root / "config"
    config_dir.mkdir(exist_ok=True)
    with open(config_dir / name, "w", encoding="utf-8") as f:
        yaml.safe_dump(content, f)


def copy_main_schema(root: Path) -> None:
    schema_dir = root / "config" / "schemas"
    schema_dir.mkdir(parents=True, exist_ok=True)
    schema = json.loads((MAIN_SCHEMA / "main.schema.json").read_text(encoding="utf-8"))
    (schema_dir / "main.schema.json").write_text(json.dumps(schema), encoding="utf-8")


def test_deep_merge_nested() -> None:
    base = {"rewards": {"min_messages": 10, "top_users_count": 3}}
    override = {"rewards": {"top_users_count": 5}}

    assert deep_merge(base, override) == {
        "rewards": {"min_messages": 10, "top_users_count": 5}
    }


def test_yaml_values_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """YAML overrides field defaults."""
    write_config(
        tmp_path,
        "main.yaml",
        {
            "rewards": {"min_messages": 25, "issue_concurrency": 4},
            "runtime": {"tz_default": "Europe/Berlin"},
            "database": {"path": "var/engagement.db"},
        },
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MIN_MESSAGES_FOR_REWARD", raising=False)

    settings = Settings()

    assert settings.min_messages_for_reward == 25
    assert settings.reward_issue_concurrency == 4
    assert settings.tz_default == "Europe/Berlin"
    assert settings.db_path == "var/engagement.db"
    assert settings.top_users_count == 3


def test_environment_beats_yaml(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_config(tmp_path, "main.yaml", {"rewards": {"top_users_count": 3}})
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TOP_USERS_COUNT", "5")

    assert Settings().top_users_count == 5


def test_secrets_come_from_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("REWARD_SERVICE_URL", "https://mint.example.org/")

    settings = Settings()

    assert settings.telegram_bot_token is not None
    assert settings.telegram_bot_token.get_secret_value() == "123:abc"
    assert "123:abc" not in repr(settings)
    assert settings.reward_service_url == "https://mint.example.org"


def test_defaults_without_config_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    assert load_all_configs() == {}
    settings = Settings()
    assert settings.min_messages_for_reward == 10
    assert settings.active_channel_lookback_hours == 168


def test_invalid_yaml_value_rejected_by_schema(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_config(tmp_path, "main.yaml", {"rewards": {"issue_concurrency": 0}})
    copy_main_schema(tmp_path)
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ValueError, match="Config validation failed for main"):
        load_all_configs()


def test_unknown_key_rejected_by_schema() -> None:
    with pytest.raises(ValueError, match="main"):
        validate_config_section(
            {"rewards": {"bonus_multiplier": 2}}, "main", schema_dir=MAIN_SCHEMA
        )


def test_repository_config_is_valid() -> None:
    config_file = MAIN_SCHEMA.parent / "main.yaml"
    with open(config_file, encoding="utf-8") as f:
        config = yaml.safe_load(f)

    validate_config_section(config, "main", schema_dir=MAIN_SCHEMA)


def test_timezone_names_checked() -> None:
    assert validate_timezone("Europe/Berlin") == "Europe/Berlin"
    with pytest.raises(ValueError, match="Unknown timezone"):
        validate_timezone("Mars/Olympus_Mons")


def test_unknown_timezone_from_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TZ_DEFAULT", "Mars/Olympus_Mons")

    with pytest.raises(ValueError, match="Unknown timezone"):
        Settings()


def test_unknown_timezone_from_yaml(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_config(
        tmp_path, "main.yaml", {"runtime": {"tz_default": "Mars/Olympus_Mons"}}
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TZ_DEFAULT", raising=False)

    with pytest.raises(ValueError, match="Unknown timezone"):
        Settings()
