"""Tests for YAML configuration loading and validation."""

from __future__ import annotations

import pytest
import yaml

from config import ConfigError, load_config, parse_settings


def test_defaults(raw_config):
    raw_config.pop("retry")
    settings = parse_settings(raw_config)
    assert settings.retry.max_attempts == 3
    assert settings.webhook_path == "/webhook"
    assert settings.verify_signatures is True
    assert settings.argocd.pin_revision is False
    assert settings.repo_sync_map["org/app"][0].application == "T"


def test_load_config_from_file(tmp_path, raw_config):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw_config))
    settings = load_config(str(path))
    assert settings.argocd.base_url == "https://argocd.test"
    assert settings.applications() == ["T", "T-staging", "ingress", "monitoring"]


def test_config_path_env(tmp_path, raw_config, monkeypatch):
    path = tmp_path / "dispatcher.yaml"
    path.write_text(yaml.safe_dump(raw_config))
    monkeypatch.setenv("CONFIG_PATH", str(path))
    assert load_config().sync_api_key == "manual-key"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("repo_sync_map: [unclosed")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_non_mapping_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(path))


def test_secret_required_when_verifying(raw_config):
    raw_config["github_webhook_secret"] = ""
    with pytest.raises(ConfigError, match="github_webhook_secret"):
        parse_settings(raw_config)


def test_base_url_required(raw_config):
    raw_config["argocd"] = {}
    with pytest.raises(ConfigError, match="base_url"):
        parse_settings(raw_config)


def test_invalid_values_are_config_errors(raw_config):
    raw_config["retry"] = {"max_attempts": 0}
    with pytest.raises(ConfigError):
        parse_settings(raw_config)


def test_route_needs_application(raw_config):
    raw_config["repo_sync_map"] = {"org/app": [{"branch": "main"}]}
    with pytest.raises(ConfigError):
        parse_settings(raw_config)


def test_env_overrides_secrets(raw_config, monkeypatch):
    monkeypatch.setenv("WEBHOOK_SECRET", "from-env")
    monkeypatch.setenv("ARGOCD_TOKEN", "env-token")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.test/x")
    settings = parse_settings(raw_config)
    assert settings.github_webhook_secret == "from-env"
    assert settings.argocd.token == "env-token"
    assert settings.notifications.slack_webhook_url == "https://hooks.slack.test/x"
    # The caller's mapping is left untouched
    assert raw_config["argocd"]["token"] == "t0ken"


def test_email_env_overrides(raw_config, monkeypatch):
    raw_config["notifications"] = {"email": {"smtp_server": "smtp.test", "username": "bot", "recipients": ["ops@test"]}}
    monkeypatch.setenv("EMAIL_PASSWORD", "hunter2")
    monkeypatch.setenv("SMTP_PORT", "465")
    monkeypatch.setenv("EMAIL_USE_TLS", "false")
    email = parse_settings(raw_config).notifications.email
    assert email.password == "hunter2"
    assert email.smtp_port == 465
    assert email.use_tls is False


def test_webhook_path_gets_leading_slash(raw_config):
    raw_config["webhook_path"] = "hooks/github"
    assert parse_settings(raw_config).webhook_path == "/hooks/github"
