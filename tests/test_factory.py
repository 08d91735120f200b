"""Tests for configuration and component wiring."""

import pytest

from sequence_engine.config import AppConfig, get_testing_config
from sequence_engine.core.exceptions import ConfigurationError
from sequence_engine.core.remote_client import LocalExecutionClient, RemoteExecutionClient
from sequence_engine.core.repository import HttpWorkflowRepository
from sequence_engine.factory import build_execution_client, build_poller, build_remote_repository
from sequence_engine.models.core import RunStatus

from factories import city_workflow


class TestConfig:

    def test_polling_and_remote_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("SEQUENCE_ENGINE_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("SEQUENCE_ENGINE_POLL_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("SEQUENCE_ENGINE_REMOTE_BASE_URL", "https://engine.example.com/api/v1")
        monkeypatch.setenv("SEQUENCE_ENGINE_HTTP_TIMEOUT", "3")

        config = AppConfig.from_env()

        assert config.poll_interval == 0.5
        assert config.poll_max_attempts == 7
        assert config.remote_base_url == "https://engine.example.com/api/v1"
        assert config.http_timeout == 3.0

    def test_rejects_zero_poll_attempts(self):
        with pytest.raises(ValueError):
            AppConfig(poll_max_attempts=0)


class TestComponentWiring:

    def test_local_client_without_remote_url(self, runner):
        client = build_execution_client(get_testing_config(), runner)
        assert isinstance(client, LocalExecutionClient)

    def test_remote_client_uses_url_and_timeout(self):
        config = AppConfig(remote_base_url="https://engine.example.com/api/v1/", http_timeout=4.0)

        client = build_execution_client(config)

        assert isinstance(client, RemoteExecutionClient)
        assert client.client.base_url == "https://engine.example.com/api/v1"
        assert client.client.timeout == 4.0

    def test_client_needs_runner_or_remote_url(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_execution_client(AppConfig())
        assert exc_info.value.context["config_key"] == "remote_base_url"

    def test_poller_uses_polling_settings(self, runner):
        config = AppConfig(poll_interval=0.25, poll_max_attempts=12)

        poller = build_poller(config, build_execution_client(config, runner))

        assert poller.interval == 0.25
        assert poller.max_attempts == 12

    def test_configured_poller_follows_local_run(self, runner, repository):
        workflow = repository.create("City greeting", city_workflow())
        config = get_testing_config()

        result = build_poller(config, build_execution_client(config, runner)).submit_and_poll(
            workflow.id, {"city": "NYC"}
        )

        assert result.record.status == RunStatus.SUCCEEDED

    def test_remote_repository(self):
        config = AppConfig(remote_base_url="https://store.example.com/api/v1", http_timeout=2.0)

        repository = build_remote_repository(config)

        assert isinstance(repository, HttpWorkflowRepository)
        assert repository.client.base_url == "https://store.example.com/api/v1"

    def test_remote_repository_requires_url(self):
        with pytest.raises(ConfigurationError):
            build_remote_repository(AppConfig())
