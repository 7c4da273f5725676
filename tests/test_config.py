"""Tests for runtime settings and the channel directory."""

import pytest

from chat_archiver.config import ChannelDirectory, Settings
from chat_archiver.errors import ConfigurationError

VALID_YAML = """
servers:
  - id: "900"
    name: "Test Server"
    channels:
      - id: "100"
        name: "general"
      - id: "101"
        name: "random"
  - id: "901"
    name: "Other"
    channels:
      - id: "200"
        name: "lobby"
"""


class TestChannelDirectory:
    def test_load_and_resolve(self, tmp_path):
        path = tmp_path / "channels.yaml"
        path.write_text(VALID_YAML)

        directory = ChannelDirectory.load(str(path))
        resolved = directory.resolve("200")

        assert resolved.server_id == "901"
        assert resolved.server_name == "Other"
        assert resolved.channel_name == "lobby"

    def test_unknown_channel_resolves_to_none(self, directory):
        assert directory.resolve("does-not-exist") is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            ChannelDirectory.load(str(tmp_path / "missing.yaml"))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "channels.yaml"
        path.write_text("servers: [unclosed")

        with pytest.raises(ConfigurationError):
            ChannelDirectory.load(str(path))

    def test_requires_servers_list(self):
        with pytest.raises(ConfigurationError):
            ChannelDirectory.from_mapping(None)
        with pytest.raises(ConfigurationError):
            ChannelDirectory.from_mapping({"servers": "nope"})

    def test_channel_needs_id_and_name(self):
        with pytest.raises(ConfigurationError):
            ChannelDirectory.from_mapping({"servers": [{"id": "1", "name": "s", "channels": [{"id": "2"}]}]})

    def test_duplicate_server_ids(self):
        data = {"servers": [
            {"id": "1", "name": "a", "channels": []},
            {"id": "1", "name": "b", "channels": []},
        ]}
        with pytest.raises(ConfigurationError, match="Duplicate server ID: 1"):
            ChannelDirectory.from_mapping(data)

    def test_duplicate_channel_ids_across_servers(self):
        data = {"servers": [
            {"id": "1", "name": "a", "channels": [{"id": "c", "name": "x"}]},
            {"id": "2", "name": "b", "channels": [{"id": "c", "name": "y"}]},
        ]}
        with pytest.raises(ConfigurationError, match="Duplicate channel ID: c"):
            ChannelDirectory.from_mapping(data)


class TestSettings:
    def test_sqlite_url(self):
        settings = Settings(db_type="sqlite", db_name="archive.db")
        assert settings.database_url == "sqlite:///archive.db"

    def test_server_database_url(self):
        settings = Settings(db_type="postgresql", db_username="u", db_password="p",
                            db_host="localhost", db_name="archive")
        assert settings.database_url == "postgresql://u:p@localhost/archive"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("SOURCE_BACKEND", "telegram")
        monkeypatch.setenv("MAX_ITERATIONS", "7")

        settings = Settings()
        assert settings.source_backend == "telegram"
        assert settings.max_iterations == 7
