#!/usr/bin/env python3
"""
Tests for configuration loading and client option validation.
"""

import pytest

from mistral_client import ClientOptions, Configuration, MistralClient

CONFIG_YAML = """
client:
  base_url: "https://api.test/v1"
  timeout_seconds: 15
  throw_on_error: true

streaming:
  enable_recovery: false
  read_timeout: 5

cache:
  enabled: true
  expiration_minutes: 2

logging:
  level: "DEBUG"
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    return str(path)


class TestClientOptions:

    def test_defaults(self):
        options = ClientOptions(api_key="key")
        options.validate()
        assert options.base_url == "https://api.mistral.ai/v1"
        assert options.timeout_seconds == 30.0
        assert not options.throw_on_error
        assert options.validate_requests
        assert options.enable_streaming_recovery
        assert not options.enable_caching

    @pytest.mark.parametrize(
        ("fields", "message"),
        [
            ({"api_key": "  "}, "API key is required"),
            ({"base_url": ""}, "Base URL is required"),
            ({"base_url": "ftp://api.test"}, "valid HTTP or HTTPS URL"),
            ({"base_url": "not a url"}, "valid HTTP or HTTPS URL"),
            ({"timeout_seconds": 0}, "timeout_seconds must be greater than 0"),
            ({"streaming_read_timeout": -1}, "read_timeout must be greater than 0"),
            ({"cache_expiration_minutes": 0}, "expiration_minutes must be greater than 0"),
        ],
    )
    def test_invalid_values(self, fields, message):
        options = ClientOptions(**{"api_key": "key", **fields})
        with pytest.raises(ValueError, match=message):
            options.validate()

    def test_read_timeout_may_be_disabled(self):
        ClientOptions(api_key="key", streaming_read_timeout=None).validate()


class TestConfiguration:

    def test_bundled_config_loads(self, monkeypatch):
        monkeypatch.setenv("MISTRAL_API_KEY", "env-key")
        options = Configuration().get_client_options()
        assert options.api_key == "env-key"
        assert options.base_url.startswith("https://")

    def test_values_from_yaml(self, monkeypatch, config_file):
        monkeypatch.setenv("MISTRAL_API_KEY", "env-key")
        config = Configuration(config_file)

        assert config.get_logging_config() == {"level": "DEBUG"}
        assert config.get_streaming_config() == {"enable_recovery": False, "read_timeout": 5}

        options = config.get_client_options()
        assert options.base_url == "https://api.test/v1"
        assert options.timeout_seconds == 15
        assert options.throw_on_error
        assert options.validate_requests
        assert not options.enable_streaming_recovery
        assert options.streaming_read_timeout == 5
        assert options.enable_caching
        assert options.cache_expiration_minutes == 2

    def test_missing_api_key(self, monkeypatch, config_file):
        monkeypatch.setattr("mistral_client.config.load_dotenv", lambda: None)
        monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
        with pytest.raises(ValueError, match="MISTRAL_API_KEY"):
            Configuration(config_file).get_client_options()

    def test_missing_required_client_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("client:\n  base_url: https://api.test/v1\n")
        with pytest.raises(ValueError, match="client.timeout_seconds"):
            Configuration(str(path)).get_client_config()

    def test_non_mapping_yaml_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="YAML dict"):
            Configuration(str(path))

    @pytest.mark.asyncio
    async def test_client_from_config(self, monkeypatch, config_file):
        monkeypatch.setenv("MISTRAL_API_KEY", "env-key")
        async with MistralClient.from_config(Configuration(config_file)) as client:
            assert client.options.throw_on_error
            assert str(client.client.base_url).startswith("https://api.test/v1")
            assert client.client.headers["authorization"] == "Bearer env-key"
            assert client.cache.expiration.total_seconds() == 120
