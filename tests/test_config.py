"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from src.relay.config import RelaySettings, get_settings


@pytest.fixture
def required_env(monkeypatch):
    monkeypatch.setenv("RELAY_GCR_PUBSUB_SECRET", "pubsub-secret")
    monkeypatch.setenv("RELAY_JENKINS_URL", "https://ci.example.com")


class TestRelaySettings:
    """Tests for RelaySettings."""

    def test_defaults(self, required_env):
        settings = get_settings()

        assert settings.allowed_namespaces == frozenset()
        assert settings.jenkins_job == "registry-push"
        assert settings.callback_timeout_seconds == 10.0
        assert settings.dispatch_timeout_seconds == 30.0
        assert settings.port == 8080
        assert settings.log_level == "INFO"

    def test_comma_separated_namespaces(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_DOCKERHUB_NAMESPACES", "acme, Widgets ,,acme")

        settings = get_settings()

        assert settings.allowed_namespaces == frozenset({"acme", "Widgets"})

    def test_json_namespaces(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_DOCKERHUB_NAMESPACES", '["acme", "widgets"]')

        assert get_settings().allowed_namespaces == frozenset({"acme", "widgets"})

    def test_invalid_json_namespaces(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_DOCKERHUB_NAMESPACES", '["acme", 42]')

        with pytest.raises(ValidationError):
            get_settings()

    def test_missing_secret(self, monkeypatch):
        monkeypatch.delenv("RELAY_GCR_PUBSUB_SECRET", raising=False)
        monkeypatch.setenv("RELAY_JENKINS_URL", "https://ci.example.com")

        with pytest.raises(ValidationError):
            get_settings()

    def test_blank_secret(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_GCR_PUBSUB_SECRET", "   ")

        with pytest.raises(ValidationError):
            get_settings()

    def test_jenkins_url_scheme(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_JENKINS_URL", "ci.example.com")

        with pytest.raises(ValidationError):
            get_settings()

    @pytest.mark.parametrize("field", ["CALLBACK_TIMEOUT_SECONDS", "DISPATCH_TIMEOUT_SECONDS"])
    def test_timeouts_must_be_positive(self, required_env, monkeypatch, field):
        monkeypatch.setenv(f"RELAY_{field}", "0")

        with pytest.raises(ValidationError):
            get_settings()

    def test_port_range(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_PORT", "70000")

        with pytest.raises(ValidationError):
            get_settings()

    def test_log_level_normalized(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_LOG_LEVEL", "debug")

        assert get_settings().log_level == "DEBUG"

    def test_unknown_log_level(self, required_env, monkeypatch):
        monkeypatch.setenv("RELAY_LOG_LEVEL", "chatty")

        with pytest.raises(ValidationError):
            get_settings()

    def test_constructed_directly(self):
        settings = RelaySettings(
            gcr_pubsub_secret="s",
            jenkins_url="http://jenkins:8080",
            dockerhub_namespaces="acme",
        )

        assert settings.allowed_namespaces == frozenset({"acme"})
